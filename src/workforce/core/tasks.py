"""Task tree operations: an in-memory forest of tasks keyed by id."""

import copy
import itertools
import re
from datetime import datetime

from workforce.core.errors import InvalidParentError, InvalidStateError, NotFoundError
from workforce.core.models import ROOT_TASK_ID, Task, TaskSpec, TaskStatus

# Legal status transitions. Terminal statuses have no entry and never change.
TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.READY: frozenset({
        TaskStatus.PROCESSING,
        TaskStatus.PENDING,
        TaskStatus.CANCELLED,
        # only when no session could be started for the task
        TaskStatus.FAILED,
    }),
    TaskStatus.PENDING: frozenset({TaskStatus.READY, TaskStatus.CANCELLED}),
    TaskStatus.PROCESSING: frozenset({
        TaskStatus.SUCCEEDED,
        TaskStatus.FAILED,
        TaskStatus.PENDING,
        TaskStatus.CANCELLED,
    }),
}


def slugify(title: str) -> str:
    """Convert a title to a URL-friendly slug."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")[:60] or "task"


class TaskStore:
    """Tasks, their parent/child structure and status transitions.

    Pure data: no sessions, no events. The scheduler is the only writer.
    """

    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._children: dict[str, list[str]] = {ROOT_TASK_ID: []}
        self._seq = itertools.count(1)

    # ── Creation ────────────────────────────────────────────────────────────

    def unique_id(self, base_slug: str, taken: set[str] | frozenset[str] = frozenset()) -> str:
        """Generate a unique task ID from a slug, appending a number if needed."""
        if base_slug not in self._tasks and base_slug not in taken and base_slug != ROOT_TASK_ID:
            return base_slug

        i = 2
        while True:
            candidate = f"{base_slug}-{i}"
            if candidate not in self._tasks and candidate not in taken:
                return candidate
            i += 1

    def create_tasks(self, specs: list[TaskSpec]) -> list[Task]:
        """Insert a batch of tasks as ``ready``.

        The batch is validated as a whole first, so a bad spec leaves the
        store untouched. A parent may also be created earlier in the same batch.
        """
        planned: dict[str, TaskSpec] = {}
        for spec in specs:
            if not spec.title:
                raise ValueError("Task title must not be empty")
            task_id = spec.id or self.unique_id(slugify(spec.title), taken=set(planned))
            if task_id == ROOT_TASK_ID or task_id in self._tasks or task_id in planned:
                raise InvalidParentError(f"Task already exists: {task_id}")
            self._check_parent(spec.parent_id, planned)
            planned[task_id] = spec

        return [self._insert(task_id, spec) for task_id, spec in planned.items()]

    def _check_parent(self, parent_id: str, planned: dict[str, TaskSpec]):
        if parent_id == ROOT_TASK_ID or parent_id in planned:
            return
        parent = self._tasks.get(parent_id)
        if parent is None:
            raise InvalidParentError(f"Parent task not found: {parent_id}")
        if parent.status.is_terminal:
            raise InvalidParentError(
                f"Parent task '{parent_id}' is already {parent.status.value}"
            )

    def _insert(self, task_id: str, spec: TaskSpec) -> Task:
        now = datetime.now()
        task = Task(
            id=task_id,
            title=spec.title,
            goal=spec.goal,
            parent_id=spec.parent_id,
            seq=next(self._seq),
            created_at=now,
            updated_at=now,
        )
        self._tasks[task_id] = task
        self._children[task_id] = []
        self._children[spec.parent_id].append(task_id)

        # A processing parent keeps its agent; a ready one now waits on its children.
        parent = self._tasks.get(spec.parent_id)
        if parent is not None and parent.status is TaskStatus.READY:
            self.transition(parent.id, TaskStatus.PENDING)
        return task

    # ── Lookups ─────────────────────────────────────────────────────────────

    def get(self, task_id: str) -> Task:
        """Return the live task object. Raises NotFoundError for unknown ids."""
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    def snapshot(self, task_id: str) -> Task:
        """Return a detached copy that callers may keep and modify."""
        return copy.deepcopy(self.get(task_id))

    def status(self, task_id: str) -> TaskStatus:
        return self.get(task_id).status

    def child_ids(self, task_id: str) -> list[str]:
        if task_id != ROOT_TASK_ID:
            self.get(task_id)
        return list(self._children[task_id])

    def all_ids(self) -> list[str]:
        """All task ids in creation order."""
        return list(self._tasks)

    def subtree(self, task_id: str) -> list[str]:
        """Depth-first (pre-order) list of a task and all its descendants."""
        self.get(task_id)
        order = []
        stack = [task_id]
        while stack:
            current = stack.pop()
            order.append(current)
            stack.extend(reversed(self._children[current]))
        return order

    def has_live_children(self, task_id: str) -> bool:
        return any(
            not self._tasks[child].status.is_terminal
            for child in self._children.get(task_id, [])
        )

    def ready_tasks(self) -> list[Task]:
        """Ready tasks, oldest first across the whole tree."""
        ready = [t for t in self._tasks.values() if t.status is TaskStatus.READY]
        return sorted(ready, key=lambda t: t.seq)

    def next_ready(self) -> Task | None:
        ready = self.ready_tasks()
        return ready[0] if ready else None

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for task in self._tasks.values():
            counts[task.status.value] += 1
        return counts

    def is_idle(self) -> bool:
        """True when no task is waiting, running, or waiting on subtasks."""
        return all(t.status.is_terminal for t in self._tasks.values())

    # ── Status changes ──────────────────────────────────────────────────────

    def transition(
        self,
        task_id: str,
        status: TaskStatus,
        result: str | None = None,
        error: str | None = None,
    ) -> Task:
        """Move a task to a new status. Raises InvalidStateError for illegal moves."""
        task = self.get(task_id)
        if status not in TRANSITIONS.get(task.status, frozenset()):
            raise InvalidStateError(
                f"Task '{task_id}' cannot go from {task.status.value} to {status.value}"
            )

        now = datetime.now()
        task.status = status
        task.updated_at = now
        if status.is_terminal:
            task.completed_at = now
        if result is not None:
            task.result = result
        if error is not None:
            task.error = error
        return task

    def resume_if_settled(self, task_id: str) -> bool:
        """Move a pending task back to ready once all its children are terminal."""
        if task_id == ROOT_TASK_ID:
            return False
        task = self.get(task_id)
        if task.status is not TaskStatus.PENDING or self.has_live_children(task_id):
            return False
        self.transition(task_id, TaskStatus.READY)
        return True
