"""Scheduler: the single decision point for the task tree and the agent pool.

Every mutation happens while holding one re-entrant lock. Signals coming from
sessions are queued and handled one at a time; a signal raised while the loop
is already handling another one waits its turn instead of recursing. After the
inbox drains, a scheduling pass admits ready tasks into free slots, oldest
first. The loop never waits on a session or a tool.
"""

import json
import logging
import threading
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

from workforce.core.agents import AgentPool, AgentSessionHandle, SessionSignal, build_task_prompt
from workforce.core.errors import InvalidStateError, PoolExhaustedError, ToolProtocolViolation
from workforce.core.events import EventLog
from workforce.core.models import (
    ROOT_TASK_ID,
    AssistantMessageRecord,
    MessageComplete,
    MessageOrigin,
    StreamChunk,
    Task,
    TaskDetailEvent,
    TaskDetailEventType,
    TaskEvent,
    TaskEventType,
    TaskSpec,
    TaskStatus,
    ToolCallRequest,
    ToolCallRequestRecord,
    ToolCallResponse,
    ToolCallResponseRecord,
    UserMessage,
    UserMessageRecord,
)
from workforce.core.pseudo_tools import (
    ACKNOWLEDGED,
    BreakdownCall,
    FailCall,
    SucceedCall,
    parse_pseudo_tool_call,
    violation_result,
)
from workforce.core.tasks import TaskStore
from workforce.core.toolkit import ToolExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    """Result of an ordinary tool call, handed back to the loop."""

    call_id: str
    result: str


class Scheduler:
    def __init__(
        self,
        store: TaskStore,
        pool: AgentPool,
        task_events: EventLog[TaskEvent],
        detail_events: EventLog[TaskDetailEvent],
        tool_executor: ToolExecutor,
        tool_threads: int = 0,
    ):
        self.store = store
        self.pool = pool
        self.task_events = task_events
        self.detail_events = detail_events
        self.tool_executor = tool_executor
        self.lock = threading.RLock()
        self._changed = threading.Condition(self.lock)
        self._inbox: deque[tuple[AgentSessionHandle, SessionSignal | ToolResult]] = deque()
        self._draining = False
        self._stopped = False
        self._tool_pool = (
            ThreadPoolExecutor(max_workers=tool_threads, thread_name_prefix="wf-tool")
            if tool_threads > 0
            else None
        )

    # ── Entry points ────────────────────────────────────────────────────────

    def submit(self, handle: AgentSessionHandle, signal: SessionSignal | ToolResult):
        """Queue a signal from a session (any thread) and run the loop."""
        with self.lock:
            if self._stopped:
                return
            self._inbox.append((handle, signal))
            self._pump()

    def create_tasks(self, specs: list[TaskSpec]) -> list[str]:
        with self.lock:
            created = self.store.create_tasks(specs)
            for task in created:
                self._emit(TaskEventType.CREATED, task.id,
                           title=task.title, goal=task.goal, parent_id=task.parent_id)
            self._pump()
            return [task.id for task in created]

    def append_message(self, task_id: str, content: str) -> str:
        with self.lock:
            task = self.store.get(task_id)
            if task.status.is_terminal:
                raise InvalidStateError(
                    f"Cannot append a message to task '{task_id}': it is {task.status.value}"
                )
            message = UserMessageRecord(id=f"msg-{task_id}-{uuid.uuid4().hex[:8]}", content=content)
            self._emit(TaskEventType.MESSAGE_APPENDED, task_id,
                       message_id=message.id, content=content)

            handle = self.pool.get(task_id)
            if handle is not None:
                self._deliver(handle, task, message)
            else:
                task.queued_messages.append(message)
            self._pump()
            return message.id

    def cancel_tasks(self, task_ids: list[str], reason: str = "cancelled") -> list[str]:
        """Cancel tasks and every non-terminal descendant. Returns affected ids."""
        with self.lock:
            for task_id in task_ids:
                self.store.get(task_id)

            affected = []
            for task_id in task_ids:
                affected.extend(self._cancel_subtree(task_id, reason))
            self._pump()
            return affected

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        with self._changed:
            return self._changed.wait_for(
                lambda: self._stopped or self.store.is_idle(), timeout
            )

    def shutdown(self, reason: str = "workforce destroyed") -> list[str]:
        """Cancel everything still open, free every slot and stop the loop."""
        with self.lock:
            if self._stopped:
                return []
            self._stopped = True
            self._inbox.clear()
            affected = []
            for task_id in self.store.all_ids():
                if not self.store.status(task_id).is_terminal:
                    self.pool.release(task_id)
                    self.store.transition(task_id, TaskStatus.CANCELLED, error=reason)
                    self._emit(TaskEventType.CANCELLED, task_id, reason=reason)
                    affected.append(task_id)
            self.pool.release_all()
            self._changed.notify_all()

        if self._tool_pool is not None:
            self._tool_pool.shutdown(wait=False, cancel_futures=True)
        logger.info("Scheduler stopped, %d open tasks cancelled", len(affected))
        return affected

    # ── Loop ────────────────────────────────────────────────────────────────

    def _pump(self):
        if self._draining:
            return
        self._draining = True
        try:
            while True:
                while self._inbox:
                    handle, signal = self._inbox.popleft()
                    try:
                        self._handle_signal(handle, signal)
                    except Exception:
                        logger.exception(
                            "Error handling %s from task %s", type(signal).__name__, handle.task_id
                        )
                self._schedule()
                if not self._inbox:
                    break
        finally:
            self._draining = False
            self._changed.notify_all()

    def _schedule(self):
        """Admit ready tasks, oldest first, until the pool is full."""
        while not self._stopped:
            task = self.store.next_ready()
            if task is None:
                return
            try:
                handle = self.pool.acquire(
                    task, self.submit, has_subtasks=bool(self.store.child_ids(task.id))
                )
            except PoolExhaustedError:
                return
            except Exception as e:
                logger.exception("Could not start an agent session for task %s", task.id)
                self._finish(task.id, TaskStatus.FAILED, error=f"Could not start agent session: {e}")
                continue
            self._start(task, handle)

    def _start(self, task: Task, handle: AgentSessionHandle):
        prompt = build_task_prompt(self.store, task)
        self.store.transition(task.id, TaskStatus.PROCESSING)
        self._emit(TaskEventType.STARTED, task.id, title=task.title)
        logger.info("Task %s started (%d/%d agents busy)",
                    task.id, self.pool.in_use, self.pool.max_agents)

        queued, task.queued_messages = task.queued_messages, []
        try:
            for message in queued:
                self._deliver(handle, task, message)
            self._deliver(
                handle,
                task,
                UserMessageRecord(
                    id=f"msg-{task.id}-{uuid.uuid4().hex[:8]}",
                    content=prompt,
                    origin=MessageOrigin.SCHEDULER,
                ),
            )
        except Exception as e:
            logger.exception("Session for task %s rejected its first messages", task.id)
            if self.pool.get(task.id) is handle:
                self._finish(task.id, TaskStatus.FAILED, error=f"Agent session failed: {e}")

    # ── Session signals ─────────────────────────────────────────────────────

    def _handle_signal(self, handle: AgentSessionHandle, signal: SessionSignal | ToolResult):
        if self.pool.get(handle.task_id) is not handle:
            logger.debug("Ignoring %s from released session of task %s",
                         type(signal).__name__, handle.task_id)
            return
        task = self.store.get(handle.task_id)

        if isinstance(signal, StreamChunk):
            self._on_stream_chunk(task, signal)
        elif isinstance(signal, MessageComplete):
            self._on_message_complete(task, signal)
        elif isinstance(signal, ToolCallRequest):
            self._on_tool_call_request(handle, task, signal)
        elif isinstance(signal, ToolResult):
            self._respond(handle, task, signal.call_id, signal.result)
        else:
            logger.warning("Unknown signal %r from task %s", signal, task.id)

    def _on_stream_chunk(self, task: Task, signal: StreamChunk):
        message = self._assistant_message(task, signal.message_id)
        message.content += signal.chunk
        self._emit_detail(TaskDetailEventType.STREAM_CHUNK, task.id,
                          message_id=signal.message_id, chunk=signal.chunk)

    def _on_message_complete(self, task: Task, signal: MessageComplete):
        message = self._assistant_message(task, signal.message_id)
        message.content = signal.content
        message.streaming = False
        self._emit_detail(TaskDetailEventType.STREAM_COMPLETE, task.id,
                          message_id=signal.message_id, content=signal.content)

    def _assistant_message(self, task: Task, message_id: str) -> AssistantMessageRecord:
        for message in task.assistant_messages:
            if message.id == message_id:
                return message
        message = AssistantMessageRecord(id=message_id, timestamp=datetime.now())
        task.assistant_messages.append(message)
        return message

    def _on_tool_call_request(self, handle: AgentSessionHandle, task: Task, request: ToolCallRequest):
        task.tool_call_requests.append(
            ToolCallRequestRecord(request.call_id, request.name, request.arguments, datetime.now())
        )
        self._emit_detail(TaskDetailEventType.TOOL_CALL_REQUEST, task.id,
                          call_id=request.call_id, name=request.name, arguments=request.arguments)

        try:
            call = parse_pseudo_tool_call(request.name, request.arguments)
        except ToolProtocolViolation as e:
            logger.warning("Task %s: %s", task.id, e)
            self._respond(handle, task, request.call_id, violation_result(e))
            return

        if call is None:
            self._run_tool(handle, task, request)
            return

        # Close the call inside the session before it is released.
        self._respond(handle, task, request.call_id, ACKNOWLEDGED)
        if isinstance(call, SucceedCall):
            self._finish(task.id, TaskStatus.SUCCEEDED, result=call.conclusion)
        elif isinstance(call, FailCall):
            self._finish(task.id, TaskStatus.FAILED, error=call.error)
        elif isinstance(call, BreakdownCall):
            self._breakdown(task, call)

    def _respond(self, handle: AgentSessionHandle, task: Task, call_id: str, result: str):
        task.tool_call_responses.append(ToolCallResponseRecord(call_id, result, datetime.now()))
        self._emit_detail(TaskDetailEventType.TOOL_CALL_RESPONSE, task.id,
                          call_id=call_id, result=result)
        handle.dispatch(ToolCallResponse(call_id=call_id, result=result))

    def _deliver(self, handle: AgentSessionHandle, task: Task, message: UserMessageRecord):
        message.timestamp = datetime.now()
        task.user_messages.append(message)
        self._emit_detail(TaskDetailEventType.USER_MESSAGE, task.id,
                          message_id=message.id, content=message.content,
                          origin=message.origin.value)
        handle.dispatch(UserMessage(id=message.id, content=message.content, origin=message.origin))

    # ── Tools ───────────────────────────────────────────────────────────────

    def _run_tool(self, handle: AgentSessionHandle, task: Task, request: ToolCallRequest):
        if self._tool_pool is None:
            self._respond(handle, task, request.call_id, self._invoke_tool(task.id, request))
            return

        future = self._tool_pool.submit(self._invoke_tool, task.id, request)

        def done(f: Future):
            if not f.cancelled():
                self.submit(handle, ToolResult(request.call_id, f.result()))

        future.add_done_callback(done)

    def _invoke_tool(self, task_id: str, request: ToolCallRequest) -> str:
        try:
            return self.tool_executor.invoke(request.name, request.arguments)
        except Exception as e:
            logger.exception("Tool %s failed for task %s", request.name, task_id)
            return json.dumps({"error": f"{type(e).__name__}: {e}"})

    # ── Transitions ─────────────────────────────────────────────────────────

    def _finish(self, task_id: str, status: TaskStatus, result: str | None = None,
                error: str | None = None):
        # Subtasks added while the task was processing end with it.
        for child_id in self.store.child_ids(task_id):
            self._cancel_subtree(child_id, f"parent task {status.value}")
        self.pool.release(task_id)
        self.store.transition(task_id, status, result=result, error=error)
        if status is TaskStatus.SUCCEEDED:
            self._emit(TaskEventType.SUCCEEDED, task_id, conclusion=result)
        else:
            self._emit(TaskEventType.FAILED, task_id, error=error)
        logger.info("Task %s %s", task_id, status.value)
        self._resume_parent(task_id)

    def _breakdown(self, task: Task, call: BreakdownCall):
        children = self.store.create_tasks([
            TaskSpec(title=sub.title, goal=sub.description, parent_id=task.id)
            for sub in call.subtasks
        ])
        self.store.transition(task.id, TaskStatus.PENDING)
        self.pool.release(task.id)
        for child in children:
            self._emit(TaskEventType.CREATED, child.id,
                       title=child.title, goal=child.goal, parent_id=task.id)
        logger.info("Task %s broken down into %d subtasks", task.id, len(children))

    def _cancel_subtree(self, task_id: str, reason: str) -> list[str]:
        affected = []
        for current in self.store.subtree(task_id):
            if self.store.status(current).is_terminal:
                continue
            self.pool.release(current)
            self.store.transition(current, TaskStatus.CANCELLED, error=reason)
            self._emit(TaskEventType.CANCELLED, current, reason=reason)
            affected.append(current)
        if affected:
            logger.info("Cancelled %d tasks under %s", len(affected), task_id)
            self._resume_parent(task_id)
        return affected

    def _resume_parent(self, task_id: str):
        parent_id = self.store.get(task_id).parent_id
        if parent_id != ROOT_TASK_ID and self.store.resume_if_settled(parent_id):
            logger.info("Task %s is ready again: all subtasks settled", parent_id)

    # ── Events ──────────────────────────────────────────────────────────────

    def _emit(self, event_type: TaskEventType, task_id: str, **payload):
        self.task_events.publish(TaskEvent(event_type, task_id, payload))

    def _emit_detail(self, event_type: TaskDetailEventType, task_id: str, **payload):
        self.detail_events.publish(TaskDetailEvent(event_type, task_id, payload))
