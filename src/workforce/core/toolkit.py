"""Named tools that worker agents may call, and the executor protocol."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from workforce.core.models import ToolInfo


class ToolExecutor(Protocol):
    """Anything that can list its tools and run one by name.

    Arguments and results are JSON strings.
    """

    def tool_infos(self) -> list[ToolInfo]: ...

    def invoke(self, name: str, arguments: str) -> str: ...


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    execute: Callable[[str], str]
    parameter_schema: dict = field(default_factory=dict)

    def info(self) -> ToolInfo:
        return ToolInfo(self.name, self.description, self.parameter_schema)


class Toolkit:
    """A fixed set of tool definitions with unique names."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    def tool_infos(self) -> list[ToolInfo]:
        return [tool.info() for tool in self._tools.values()]

    def invoke(self, name: str, arguments: str) -> str:
        tool = self._tools.get(name)
        if tool is None:
            raise ValueError(f"Tool not found: {name}")
        return tool.execute(arguments)
