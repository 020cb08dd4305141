"""Agent pool: slot management for worker-agent sessions, and task prompts."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from workforce.core.errors import InvalidStateError, PoolExhaustedError
from workforce.core.models import (
    ROOT_TASK_ID,
    MessageComplete,
    MessageOrigin,
    SessionContext,
    StreamChunk,
    Task,
    TaskStatus,
    ToolCallRequest,
    ToolCallResponse,
    ToolInfo,
    UserMessage,
)
from workforce.core.pseudo_tools import PseudoTool
from workforce.core.tasks import TaskStore

logger = logging.getLogger(__name__)

SessionInput = UserMessage | ToolCallResponse
SessionSignal = StreamChunk | MessageComplete | ToolCallRequest


class AgentSession(Protocol):
    """One worker agent's conversation, driven by an external runtime."""

    def dispatch(self, message: SessionInput) -> None: ...

    def subscribe(self, handler: Callable[[SessionSignal], None]) -> Callable[[], None]: ...

    def destroy(self) -> None: ...


SessionFactory = Callable[[SessionContext], AgentSession]


@dataclass(eq=False)
class AgentSessionHandle:
    """A live session bound to exactly one processing task."""

    task_id: str
    session: AgentSession
    unsubscribe: Callable[[], None] | None = None
    closed: bool = False

    def dispatch(self, message: SessionInput):
        if self.closed:
            logger.warning("Dropping %s for released session of task %s",
                           type(message).__name__, self.task_id)
            return
        self.session.dispatch(message)

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self.unsubscribe:
            self.unsubscribe()
        self.session.destroy()


class AgentPool:
    """A bounded set of live sessions, at most one per task."""

    def __init__(
        self,
        max_agents: int,
        session_factory: SessionFactory,
        tools: list[ToolInfo] | tuple[ToolInfo, ...] = (),
    ):
        if not isinstance(max_agents, int) or max_agents < 1:
            raise ValueError(f"max_agents must be a positive integer, got {max_agents!r}")
        self.max_agents = max_agents
        self.session_factory = session_factory
        self.tools = tuple(tools)
        self._handles: dict[str, AgentSessionHandle] = {}

    @property
    def in_use(self) -> int:
        return len(self._handles)

    def get(self, task_id: str) -> AgentSessionHandle | None:
        return self._handles.get(task_id)

    def acquire(
        self,
        task: Task,
        on_signal: Callable[[AgentSessionHandle, SessionSignal], None],
        has_subtasks: bool = False,
    ) -> AgentSessionHandle:
        """Create a session for a task and take a slot for it.

        Raises PoolExhaustedError when every slot is taken. Errors from the
        session factory propagate and leave the pool unchanged.
        """
        if len(self._handles) >= self.max_agents:
            raise PoolExhaustedError(
                f"All {self.max_agents} agent slots are occupied"
            )
        if task.id in self._handles:
            raise InvalidStateError(f"Task '{task.id}' already has a running agent")

        context = SessionContext(
            task_id=task.id,
            title=task.title,
            goal=task.goal,
            tools=self.tools,
            has_subtasks=has_subtasks,
        )
        session = self.session_factory(context)
        handle = AgentSessionHandle(task_id=task.id, session=session)
        try:
            handle.unsubscribe = session.subscribe(lambda signal: on_signal(handle, signal))
        except Exception:
            session.destroy()
            raise
        self._handles[task.id] = handle
        logger.debug("Slot taken by task %s (%d/%d)", task.id, self.in_use, self.max_agents)
        return handle

    def release(self, task_id: str) -> bool:
        """Destroy a task's session and free its slot. Unknown tasks are a no-op."""
        handle = self._handles.pop(task_id, None)
        if handle is None:
            return False
        try:
            handle.close()
        except Exception:
            logger.exception("Error destroying session for task %s", task_id)
        logger.debug("Slot released by task %s (%d/%d)", task_id, self.in_use, self.max_agents)
        return True

    def release_all(self) -> list[str]:
        released = list(self._handles)
        for task_id in released:
            self.release(task_id)
        return released


# ── Prompt Construction ──────────────────────────────────────────────────────


def build_task_prompt(store: TaskStore, task: Task) -> str:
    """Build the prompt a fresh session gets when its task is admitted."""
    parts = []
    parts.append(f"# Task: {task.title}")
    parts.append(f"Task ID: {task.id}")
    if task.goal:
        parts.append(f"\n## Goal\n{task.goal}")

    if task.parent_id != ROOT_TASK_ID:
        parent = store.get(task.parent_id)
        parts.append("\n## Parent Task")
        parts.append(f"This task is part of: {parent.title} ({parent.id})")
        if parent.goal:
            parts.append(parent.goal)

    child_ids = store.child_ids(task.id)
    if child_ids:
        parts.append("\n## Subtask Outcomes")
        parts.append("You broke this task down earlier. The subtasks have finished:")
        for child_id in child_ids:
            child = store.get(child_id)
            outcome = child.result if child.status is TaskStatus.SUCCEEDED else child.error
            line = f"- {child.title} ({child.id}): {child.status.value}"
            if outcome:
                line += f" - {outcome}"
            parts.append(line)

    earlier = [m for m in task.user_messages if m.origin is MessageOrigin.USER]
    if earlier:
        parts.append("\n## Supplementary Information")
        for message in earlier:
            parts.append(f"- {message.content}")

    parts.append(
        "\n## Completion\n"
        "Finish by calling exactly one of these tools:\n"
        f"- `{PseudoTool.SUCCEED.value}` with a `conclusion` when the goal is accomplished.\n"
        f"- `{PseudoTool.FAIL.value}` with an `error` when it cannot be accomplished.\n"
        f"- `{PseudoTool.BREAKDOWN.value}` with a list of `subtasks` (title and description) "
        "when the task is too large for one step. You will be resumed with their outcomes."
    )

    return "\n".join(parts)
