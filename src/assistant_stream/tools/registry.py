"""Tool registry: what the model is offered, and how its calls are run."""

from __future__ import annotations

import logging
from importlib.metadata import EntryPoint, entry_points
from typing import Any

from assistant_stream.tools.base import Tool
from assistant_stream.types import ToolResult

_logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "assistant_stream.tools"


def _truncate_middle(text: str, limit: int) -> str:
    """Shorten *text* to about *limit* chars, keeping a quarter from the head.

    Compiler and renderer output puts the useful part (errors) at the end.
    """
    if len(text) <= limit:
        return text
    head = limit // 4
    tail = limit - head
    return (
        f"{text[:head]}\n\n... [{len(text) - limit} chars truncated] ...\n\n{text[-tail:]}"
    )


def _error_result(message: str) -> ToolResult:
    return ToolResult(success=False, content=message, is_error=True)


class ToolRegistry:
    """Named tools, kept in registration order."""

    def __init__(self) -> None:
        self._by_name: dict[str, Tool] = {}

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def register(self, tool: Tool) -> None:
        if tool.name in self._by_name:
            _logger.debug("Replacing tool %s", tool.name)
        self._by_name[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._by_name.get(name)

    def list_tools(self) -> list[Tool]:
        return list(self._by_name.values())

    def tool_names(self) -> list[str]:
        return list(self._by_name)

    def definitions(self) -> list[dict[str, Any]]:
        """``tools`` array for the request body."""
        return [tool.to_definition() for tool in self._by_name.values()]

    async def execute(self, tool_name: str, tool_input: dict[str, Any]) -> ToolResult:
        """Run one tool call.

        Never raises.  An unknown name or an exception from the tool comes
        back as an ``is_error`` result, which the model gets to see.
        """
        tool = self._by_name.get(tool_name)
        if tool is None:
            available = ", ".join(self._by_name)
            return _error_result(f"Unknown tool: {tool_name}. Available: {available}")

        try:
            result = await tool.execute(tool_input)
        except Exception as e:
            _logger.exception("Tool %s failed", tool_name)
            return _error_result(
                f"Tool '{tool_name}' execution failed: {type(e).__name__}: {e}"
            )

        if 0 < tool.max_output < len(result.content):
            _logger.debug(
                "Truncating %s output from %d to %d chars",
                tool_name, len(result.content), tool.max_output,
            )
            result = ToolResult(
                success=result.success,
                content=_truncate_middle(result.content, tool.max_output),
                is_error=result.is_error,
            )
        return result

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def discover(self) -> int:
        """Register tools published under the ``assistant_stream.tools`` group.

        An entry point may name a Tool subclass, a Tool instance, or a
        factory returning one.  Broken plugins are logged and skipped.
        Returns the number of tools added.
        """
        added = 0
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            tool = self._load_plugin(ep)
            if tool is not None:
                self.register(tool)
                added += 1
                _logger.info("Discovered plugin tool: %s", tool.name)
        return added

    @staticmethod
    def _load_plugin(ep: EntryPoint) -> Tool | None:
        try:
            obj = ep.load()
            if isinstance(obj, Tool):
                return obj
            if callable(obj):
                # Tool subclasses are callables too
                obj = obj()
        except Exception:
            _logger.exception("Failed to load tool plugin: %s", ep.name)
            return None
        if not isinstance(obj, Tool):
            _logger.warning("Entry point %s did not provide a Tool: %r", ep.name, type(obj))
            return None
        return obj
