"""Reserved tools that worker agents call to report on their task.

Calls to these names never reach the tool executor: the scheduler answers them
itself and turns them into task transitions.
"""

import json
from dataclasses import dataclass
from enum import Enum

from workforce.core.errors import ToolProtocolViolation
from workforce.core.models import ToolInfo


class PseudoTool(str, Enum):
    SUCCEED = "wf-task-succeed"
    FAIL = "wf-task-fail"
    BREAKDOWN = "wf-task-breakdown"


PSEUDO_TOOL_NAMES = frozenset(tool.value for tool in PseudoTool)

ACKNOWLEDGED = json.dumps({"status": "acknowledged"})


@dataclass(frozen=True)
class SucceedCall:
    conclusion: str


@dataclass(frozen=True)
class FailCall:
    error: str


@dataclass(frozen=True)
class SubtaskDefinition:
    title: str
    description: str


@dataclass(frozen=True)
class BreakdownCall:
    subtasks: tuple[SubtaskDefinition, ...]


PseudoToolCall = SucceedCall | FailCall | BreakdownCall


# ── Schemas ──────────────────────────────────────────────────────────────────

TASK_SUCCEED_SCHEMA = {
    "type": "object",
    "properties": {
        "conclusion": {
            "type": "string",
            "description": "The conclusion or result of the successfully completed task",
        },
    },
    "required": ["conclusion"],
    "additionalProperties": False,
}

TASK_FAIL_SCHEMA = {
    "type": "object",
    "properties": {
        "error": {
            "type": "string",
            "description": "The error message explaining why the task failed",
        },
    },
    "required": ["error"],
    "additionalProperties": False,
}

TASK_BREAKDOWN_SCHEMA = {
    "type": "object",
    "properties": {
        "subtasks": {
            "type": "array",
            "description": "The list of subtasks to break down the current task into",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "A short title for the subtask"},
                    "description": {
                        "type": "string",
                        "description": "A detailed description of the subtask goal",
                    },
                },
                "required": ["title", "description"],
                "additionalProperties": False,
            },
            "minItems": 1,
        },
    },
    "required": ["subtasks"],
    "additionalProperties": False,
}

PSEUDO_TOOL_INFOS: tuple[ToolInfo, ...] = (
    ToolInfo(
        PseudoTool.SUCCEED.value,
        "Mark the current task as successfully completed. "
        "Use this when you have fully accomplished the task goal.",
        TASK_SUCCEED_SCHEMA,
    ),
    ToolInfo(
        PseudoTool.FAIL.value,
        "Mark the current task as failed. "
        "Use this when you cannot complete the task and want to report an error.",
        TASK_FAIL_SCHEMA,
    ),
    ToolInfo(
        PseudoTool.BREAKDOWN.value,
        "Break down the current task into smaller subtasks. "
        "Use this when the task is too complex to complete in one step.",
        TASK_BREAKDOWN_SCHEMA,
    ),
)


# ── Parsing ──────────────────────────────────────────────────────────────────


def is_pseudo_tool(name: str) -> bool:
    return name in PSEUDO_TOOL_NAMES


def parse_pseudo_tool_call(name: str, arguments: str | dict) -> PseudoToolCall | None:
    """Parse a tool call aimed at a reserved tool.

    Returns None when ``name`` is an ordinary tool. Raises
    ToolProtocolViolation when the payload does not match the tool's schema.
    """
    if not is_pseudo_tool(name):
        return None

    params = _load_arguments(name, arguments)
    tool = PseudoTool(name)

    if tool is PseudoTool.SUCCEED:
        return SucceedCall(conclusion=_required_str(name, params, "conclusion"))
    if tool is PseudoTool.FAIL:
        return FailCall(error=_required_str(name, params, "error"))

    subtasks = params.get("subtasks")
    if not isinstance(subtasks, list) or not subtasks:
        raise ToolProtocolViolation(f"{name}: 'subtasks' must be a non-empty list")
    definitions = []
    for i, item in enumerate(subtasks):
        if not isinstance(item, dict):
            raise ToolProtocolViolation(f"{name}: subtasks[{i}] must be an object")
        definitions.append(
            SubtaskDefinition(
                title=_required_str(name, item, "title", f"subtasks[{i}]."),
                description=_required_str(name, item, "description", f"subtasks[{i}]."),
            )
        )
    return BreakdownCall(subtasks=tuple(definitions))


def _load_arguments(name: str, arguments: str | dict) -> dict:
    if isinstance(arguments, dict):
        return arguments
    try:
        params = json.loads(arguments or "{}")
    except (TypeError, json.JSONDecodeError) as e:
        raise ToolProtocolViolation(f"{name}: arguments are not valid JSON ({e})") from e
    if not isinstance(params, dict):
        raise ToolProtocolViolation(f"{name}: arguments must be a JSON object")
    return params


def _required_str(name: str, params: dict, key: str, prefix: str = "") -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolProtocolViolation(f"{name}: '{prefix}{key}' is required and must be a string")
    return value


def violation_result(error: ToolProtocolViolation) -> str:
    """Tool result fed back to a session that misused a reserved tool."""
    return json.dumps({"error": str(error)})
