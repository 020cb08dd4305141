"""Local deterministic session for demos and smoke runs.

It answers the scheduler's prompt by echoing the task goal back as a streamed
message. A goal written as a bullet list ("- item" lines) is broken down into
one subtask per bullet the first time round; otherwise, and once the subtasks
have settled, the task succeeds.
"""

import itertools
import json
from collections.abc import Callable

from workforce.core.models import (
    MessageComplete,
    MessageOrigin,
    SessionContext,
    StreamChunk,
    ToolCallRequest,
    ToolCallResponse,
    UserMessage,
)
from workforce.core.pseudo_tools import PseudoTool


def bullet_items(goal: str) -> list[str]:
    items = []
    for line in goal.splitlines():
        line = line.strip()
        if line.startswith(("- ", "* ")):
            items.append(line[2:].strip())
    return [item for item in items if item]


class EchoSession:
    def __init__(self, context: SessionContext, chunk_size: int = 32):
        self.context = context
        self.chunk_size = chunk_size
        self.received: list[UserMessage | ToolCallResponse] = []
        self._handlers: list[Callable] = []
        self._ids = itertools.count(1)
        self._destroyed = False

    def subscribe(self, handler: Callable) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def dispatch(self, message: UserMessage | ToolCallResponse):
        if self._destroyed:
            return
        self.received.append(message)
        if isinstance(message, UserMessage) and message.origin is MessageOrigin.SCHEDULER:
            self._reply()

    def destroy(self):
        self._destroyed = True
        self._handlers.clear()

    def _reply(self):
        message_id = f"{self.context.task_id}-echo-{next(self._ids)}"
        text = self.context.goal or self.context.title
        for start in range(0, len(text), self.chunk_size):
            self._emit(StreamChunk(message_id, text[start:start + self.chunk_size]))
        self._emit(MessageComplete(message_id, text))

        items = bullet_items(self.context.goal)
        if items and not self.context.has_subtasks:
            name = PseudoTool.BREAKDOWN.value
            arguments = {"subtasks": [{"title": item, "description": item} for item in items]}
        else:
            name = PseudoTool.SUCCEED.value
            arguments = {"conclusion": f"Echo: {self.context.title}"}
        self._emit(ToolCallRequest(f"{message_id}-call", name, json.dumps(arguments)))

    def _emit(self, signal):
        for handler in list(self._handlers):
            handler(signal)
