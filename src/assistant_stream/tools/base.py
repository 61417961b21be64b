"""Tool abstractions consumed by the conversation engine.

Concrete tools (editor access, rendering, ...) live in the host
application; the engine only needs a name, a JSON schema and a way to run
them.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable

from assistant_stream.types import ToolResult


class Tool(ABC):
    """Base class for all tools.

    Subclasses must set ``name``, ``description`` and ``input_schema`` and
    implement the async ``execute()`` method.
    """

    name: str
    description: str
    input_schema: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
    max_output: int = 0  # Per-tool output limit (chars), 0 = unlimited.

    @abstractmethod
    async def execute(self, tool_input: dict[str, Any]) -> ToolResult:
        """Execute the tool asynchronously."""

    def to_definition(self) -> dict[str, Any]:
        """Tool definition in the provider's ``tools`` format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


Executor = Callable[[dict[str, Any]], Any]


class FunctionTool(Tool):
    """Wrap a plain callable as a tool.

    *func* receives the input object and may be sync or async.  It may
    return a :class:`ToolResult` or a string (treated as success).
    """

    def __init__(
        self,
        name: str,
        description: str,
        func: Executor,
        input_schema: dict[str, Any] | None = None,
        max_output: int = 0,
    ) -> None:
        self.name = name
        self.description = description
        self.input_schema = input_schema or {
            "type": "object", "properties": {}, "required": [],
        }
        self.max_output = max_output
        self._func = func

    async def execute(self, tool_input: dict[str, Any]) -> ToolResult:
        result = self._func(tool_input)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ToolResult):
            return result
        return ToolResult(success=True, content="" if result is None else str(result))
