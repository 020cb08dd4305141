"""Shared fixtures: a scriptable fake agent session and workforce builders."""

import itertools
import json

import pytest

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
from workforce.core.toolkit import Toolkit
from workforce.core.workforce import Workforce, WorkforceConfig


class FakeSession:
    """Session driven by the test: records what it receives, emits on demand."""

    _call_ids = itertools.count(1)

    def __init__(self, context: SessionContext):
        self.context = context
        self.received = []
        self.handlers = []
        self.destroyed = False

    def subscribe(self, handler):
        self.handlers.append(handler)

        def unsubscribe():
            if handler in self.handlers:
                self.handlers.remove(handler)

        return unsubscribe

    def dispatch(self, message):
        self.received.append(message)

    def destroy(self):
        self.destroyed = True

    # ── Test helpers ──

    @property
    def user_messages(self) -> list[UserMessage]:
        return [m for m in self.received if isinstance(m, UserMessage)]

    @property
    def prompts(self) -> list[UserMessage]:
        return [m for m in self.user_messages if m.origin is MessageOrigin.SCHEDULER]

    @property
    def tool_responses(self) -> list[ToolCallResponse]:
        return [m for m in self.received if isinstance(m, ToolCallResponse)]

    def emit(self, signal):
        for handler in list(self.handlers):
            handler(signal)

    def stream(self, message_id: str, *chunks: str):
        for chunk in chunks:
            self.emit(StreamChunk(message_id, chunk))
        self.emit(MessageComplete(message_id, "".join(chunks)))

    def call_tool(self, name: str, arguments) -> str:
        call_id = f"call-{next(self._call_ids)}"
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        self.emit(ToolCallRequest(call_id, name, arguments))
        return call_id

    def succeed(self, conclusion: str = "done") -> str:
        return self.call_tool(PseudoTool.SUCCEED.value, {"conclusion": conclusion})

    def fail(self, error: str = "broken") -> str:
        return self.call_tool(PseudoTool.FAIL.value, {"error": error})

    def breakdown(self, *titles: str) -> str:
        subtasks = [{"title": t, "description": f"Do {t}"} for t in titles]
        return self.call_tool(PseudoTool.BREAKDOWN.value, {"subtasks": subtasks})


class FakeSessionFactory:
    def __init__(self):
        self.sessions: list[FakeSession] = []
        self.fail_for: set[str] = set()

    def __call__(self, context: SessionContext) -> FakeSession:
        if context.task_id in self.fail_for:
            raise RuntimeError(f"no runtime for {context.task_id}")
        session = FakeSession(context)
        self.sessions.append(session)
        return session

    def for_task(self, task_id: str) -> list[FakeSession]:
        return [s for s in self.sessions if s.context.task_id == task_id]

    def live(self, task_id: str) -> FakeSession:
        live = [s for s in self.for_task(task_id) if not s.destroyed]
        assert len(live) == 1, f"expected one live session for {task_id}, got {len(live)}"
        return live[0]


@pytest.fixture
def factory():
    return FakeSessionFactory()


@pytest.fixture
def make_workforce(factory):
    """Build workforces on the fake factory; all are destroyed after the test."""
    created = []

    def make(max_agents: int = 2, toolkit: Toolkit | None = None, tool_threads: int = 0):
        wf = Workforce(
            WorkforceConfig(
                max_agents=max_agents,
                session_factory=factory,
                tool_executor=toolkit or Toolkit(),
                tool_threads=tool_threads,
            )
        )
        created.append(wf)
        return wf

    yield make
    for wf in created:
        wf.destroy()


@pytest.fixture
def wf(make_workforce):
    return make_workforce()
