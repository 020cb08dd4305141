"""Append-and-broadcast event logs for task and task-detail events."""

import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime
from typing import Generic, TypeVar

from workforce.core.models import TaskDetailEvent, TaskEvent

logger = logging.getLogger(__name__)

E = TypeVar("E", TaskEvent, TaskDetailEvent)


class _Subscription:
    __slots__ = ("handler", "active")

    def __init__(self, handler: Callable):
        self.handler = handler
        self.active = True


class EventLog(Generic[E]):
    """Ordered, bounded history of one kind of event plus synchronous fan-out.

    Handlers run in subscription order on the publishing thread and only see
    events published after they subscribed. A handler that raises is logged
    and does not stop the others.
    """

    def __init__(self, name: str, history: int = 1000):
        self.name = name
        self._history: deque[E] = deque(maxlen=history)
        self._subscriptions: list[_Subscription] = []
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    def publish(self, event: E) -> E:
        with self._lock:
            event.seq = next(self._seq)
            if event.created_at is None:
                event.created_at = datetime.now()
            self._history.append(event)
            subscriptions = list(self._subscriptions)

        for sub in subscriptions:
            if not sub.active:
                continue
            try:
                sub.handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed on %s event #%s", sub.handler, self.name, event.seq
                )
        return event

    def subscribe(self, handler: Callable[[E], None]) -> Callable[[], None]:
        """Register a handler. Returns a callable that removes this subscription."""
        sub = _Subscription(handler)
        with self._lock:
            self._subscriptions.append(sub)

        def unsubscribe():
            with self._lock:
                sub.active = False
                # identity, not equality: the same handler may be subscribed twice
                self._subscriptions = [s for s in self._subscriptions if s is not sub]

        return unsubscribe

    def clear_subscribers(self):
        with self._lock:
            for sub in self._subscriptions:
                sub.active = False
            self._subscriptions = []

    def since(self, after: int = 0, limit: int | None = None) -> list[E]:
        """Events still in history with a sequence number greater than ``after``."""
        with self._lock:
            events = [e for e in self._history if e.seq > after]
        if limit is not None:
            events = events[:limit]
        return events
