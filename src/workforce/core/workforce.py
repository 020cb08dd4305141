"""Workforce: the public surface over the task tree, agent pool and event logs."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from workforce.config import Config, get_config
from workforce.core.agents import AgentPool, SessionFactory
from workforce.core.errors import DestroyedError
from workforce.core.events import EventLog
from workforce.core.models import (
    ROOT_TASK_ID,
    Task,
    TaskDetailEvent,
    TaskEvent,
    TaskSpec,
    TaskStatus,
    task_to_dict,
)
from workforce.core.pseudo_tools import PSEUDO_TOOL_INFOS, is_pseudo_tool
from workforce.core.scheduler import Scheduler
from workforce.core.tasks import TaskStore
from workforce.core.toolkit import ToolExecutor, Toolkit

logger = logging.getLogger(__name__)


@dataclass
class WorkforceConfig:
    max_agents: int
    session_factory: SessionFactory
    tool_executor: ToolExecutor = field(default_factory=Toolkit)
    tool_threads: int = 0
    event_history: int = 1000


class Workforce:
    """Runs a growing tree of tasks on a bounded pool of worker-agent sessions.

    Mutating calls raise DestroyedError after ``destroy()``. Read-only queries
    keep working and return the final state frozen at destruction.
    """

    def __init__(self, config: WorkforceConfig):
        reserved = [info.name for info in config.tool_executor.tool_infos()
                    if is_pseudo_tool(info.name)]
        if reserved:
            raise ValueError(f"Tool names reserved by the workforce: {', '.join(reserved)}")

        self.config = config
        self._destroyed = False
        self._store = TaskStore()
        self._pool = AgentPool(
            config.max_agents,
            config.session_factory,
            tools=[*config.tool_executor.tool_infos(), *PSEUDO_TOOL_INFOS],
        )
        self._task_events: EventLog[TaskEvent] = EventLog("task", config.event_history)
        self._detail_events: EventLog[TaskDetailEvent] = EventLog(
            "task-detail", config.event_history
        )
        self._scheduler = Scheduler(
            self._store,
            self._pool,
            self._task_events,
            self._detail_events,
            config.tool_executor,
            tool_threads=config.tool_threads,
        )

    # ── Mutations ───────────────────────────────────────────────────────────

    def create_tasks(self, specs: list[TaskSpec]) -> list[str]:
        """Create tasks as ``ready`` and schedule them. Returns the new ids."""
        with self._scheduler.lock:
            self._check_alive()
            return self._scheduler.create_tasks(specs)

    def cancel_tasks(self, task_ids: list[str]) -> list[str]:
        """Cancel tasks and their open subtrees. Returns every cancelled id."""
        with self._scheduler.lock:
            self._check_alive()
            return self._scheduler.cancel_tasks(task_ids)

    def append_message(self, task_id: str, content: str) -> str:
        """Send supplementary information to a task, now or when it gets an agent."""
        with self._scheduler.lock:
            self._check_alive()
            return self._scheduler.append_message(task_id, content)

    def destroy(self):
        with self._scheduler.lock:
            if self._destroyed:
                return
            self._scheduler.shutdown()
            self._task_events.clear_subscribers()
            self._detail_events.clear_subscribers()
            self._destroyed = True
        logger.info("Workforce destroyed")

    # ── Queries ─────────────────────────────────────────────────────────────

    def get_task(self, task_id: str) -> Task:
        with self._scheduler.lock:
            return self._store.snapshot(task_id)

    def get_task_status(self, task_id: str) -> TaskStatus:
        with self._scheduler.lock:
            return self._store.status(task_id)

    def get_all_task_ids(self) -> list[str]:
        with self._scheduler.lock:
            return self._store.all_ids()

    def get_child_task_ids(self, task_id: str = ROOT_TASK_ID) -> list[str]:
        with self._scheduler.lock:
            return self._store.child_ids(task_id)

    def summary(self) -> dict:
        with self._scheduler.lock:
            return {
                "counts": self._store.count_by_status(),
                "total": len(self._store.all_ids()),
                "agents_busy": self._pool.in_use,
                "max_agents": self._pool.max_agents,
                "destroyed": self._destroyed,
            }

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until every task is terminal. Returns False on timeout."""
        return self._scheduler.wait_until_idle(timeout)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # ── Events ──────────────────────────────────────────────────────────────

    def subscribe_task_event(self, handler: Callable[[TaskEvent], None]) -> Callable[[], None]:
        self._check_alive()
        return self._task_events.subscribe(handler)

    def subscribe_task_detail_event(
        self, handler: Callable[[TaskDetailEvent], None]
    ) -> Callable[[], None]:
        self._check_alive()
        return self._detail_events.subscribe(handler)

    def recent_task_events(self, after: int = 0, limit: int | None = None) -> list[TaskEvent]:
        return self._task_events.since(after, limit)

    def recent_task_detail_events(
        self, after: int = 0, limit: int | None = None
    ) -> list[TaskDetailEvent]:
        return self._detail_events.since(after, limit)

    def _check_alive(self):
        if self._destroyed:
            raise DestroyedError("Workforce has been destroyed")


def build_workforce(config: Config | None = None, **overrides) -> Workforce:
    """Create a workforce from environment configuration.

    ``overrides`` replace fields of the loaded Config (e.g. ``max_agents=2``).
    """
    from workforce.sessions.factory import session_factory_from_config

    config = config or get_config()
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)

    return Workforce(
        WorkforceConfig(
            max_agents=config.max_agents,
            session_factory=session_factory_from_config(config),
            tool_threads=config.tool_threads,
            event_history=config.event_history,
        )
    )


def task_tree(workforce: Workforce, task_id: str) -> dict:
    """Task dict with its whole subtree nested under ``children``."""
    td = task_to_dict(workforce.get_task(task_id))
    td["children"] = [task_tree(workforce, child) for child in workforce.get_child_task_ids(task_id)]
    return td
