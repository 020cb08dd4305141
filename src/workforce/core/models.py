"""Data models for the workforce."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

ROOT_TASK_ID = "__root__"


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    READY = "ready"
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)


class TaskEventType(str, Enum):
    CREATED = "task-created"
    STARTED = "task-started"
    MESSAGE_APPENDED = "task-message-appended"
    CANCELLED = "task-cancelled"
    SUCCEEDED = "task-succeeded"
    FAILED = "task-failed"


class TaskDetailEventType(str, Enum):
    USER_MESSAGE = "task-detail-user-message"
    STREAM_CHUNK = "task-detail-stream-chunk"
    STREAM_COMPLETE = "task-detail-stream-complete"
    TOOL_CALL_REQUEST = "task-detail-tool-call-request"
    TOOL_CALL_RESPONSE = "task-detail-tool-call-response"


class MessageOrigin(str, Enum):
    """Who produced a message delivered to a session."""

    USER = "user"
    SCHEDULER = "scheduler"


@dataclass
class TaskSpec:
    """Input for creating a task. The id is derived from the title when omitted."""

    title: str
    goal: str = ""
    id: str | None = None
    parent_id: str = ROOT_TASK_ID


@dataclass
class UserMessageRecord:
    id: str
    content: str
    origin: MessageOrigin = MessageOrigin.USER
    timestamp: datetime | None = None


@dataclass
class AssistantMessageRecord:
    id: str
    content: str = ""
    streaming: bool = True
    timestamp: datetime | None = None


@dataclass
class ToolCallRequestRecord:
    call_id: str
    name: str
    arguments: str
    requested_at: datetime | None = None


@dataclass
class ToolCallResponseRecord:
    call_id: str
    result: str
    responded_at: datetime | None = None


@dataclass
class Task:
    id: str
    title: str
    goal: str = ""
    parent_id: str = ROOT_TASK_ID
    status: TaskStatus = TaskStatus.READY
    seq: int = 0
    result: str | None = None
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    queued_messages: list[UserMessageRecord] = field(default_factory=list)
    user_messages: list[UserMessageRecord] = field(default_factory=list)
    assistant_messages: list[AssistantMessageRecord] = field(default_factory=list)
    tool_call_requests: list[ToolCallRequestRecord] = field(default_factory=list)
    tool_call_responses: list[ToolCallResponseRecord] = field(default_factory=list)


@dataclass
class TaskEvent:
    event_type: TaskEventType
    task_id: str
    payload: dict = field(default_factory=dict)
    seq: int = 0
    created_at: datetime | None = None


@dataclass
class TaskDetailEvent:
    event_type: TaskDetailEventType
    task_id: str
    payload: dict = field(default_factory=dict)
    seq: int = 0
    created_at: datetime | None = None


# ── Session wire messages ───────────────────────────────────────────────────
# Scheduler -> session


@dataclass(frozen=True)
class UserMessage:
    id: str
    content: str
    origin: MessageOrigin = MessageOrigin.USER


@dataclass(frozen=True)
class ToolCallResponse:
    call_id: str
    result: str


# Session -> scheduler


@dataclass(frozen=True)
class StreamChunk:
    message_id: str
    chunk: str


@dataclass(frozen=True)
class MessageComplete:
    message_id: str
    content: str


@dataclass(frozen=True)
class ToolCallRequest:
    call_id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class ToolInfo:
    name: str
    description: str
    parameter_schema: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SessionContext:
    """What a session factory gets to know about the task it will work on."""

    task_id: str
    title: str
    goal: str = ""
    tools: tuple[ToolInfo, ...] = ()
    has_subtasks: bool = False


# ── Serialization ───────────────────────────────────────────────────────────


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def task_to_dict(task: Task, detail: bool = False) -> dict:
    data = {
        "id": task.id,
        "title": task.title,
        "goal": task.goal,
        "parent_id": task.parent_id,
        "status": task.status.value,
        "result": task.result,
        "error": task.error,
        "queued_messages": len(task.queued_messages),
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
        "completed_at": _iso(task.completed_at),
    }
    if detail:
        data["user_messages"] = [
            {"id": m.id, "content": m.content, "origin": m.origin.value,
             "timestamp": _iso(m.timestamp)}
            for m in task.user_messages
        ]
        data["assistant_messages"] = [
            {"id": m.id, "content": m.content, "streaming": m.streaming,
             "timestamp": _iso(m.timestamp)}
            for m in task.assistant_messages
        ]
        data["tool_calls"] = _tool_calls(task)
    return data


def _tool_calls(task: Task) -> list[dict]:
    responses = {r.call_id: r for r in task.tool_call_responses}
    calls = []
    for req in task.tool_call_requests:
        resp = responses.get(req.call_id)
        calls.append({
            "call_id": req.call_id,
            "name": req.name,
            "arguments": req.arguments,
            "result": resp.result if resp else None,
            "requested_at": _iso(req.requested_at),
            "responded_at": _iso(resp.responded_at) if resp else None,
        })
    return calls


def event_to_dict(event: TaskEvent | TaskDetailEvent) -> dict:
    return {
        "seq": event.seq,
        "type": event.event_type.value,
        "task_id": event.task_id,
        "payload": event.payload,
        "created_at": _iso(event.created_at),
    }
