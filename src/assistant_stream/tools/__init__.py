"""Tool registry interface for the assistant stream engine."""

from assistant_stream.tools.base import FunctionTool, Tool
from assistant_stream.tools.registry import ToolRegistry

__all__ = ["FunctionTool", "Tool", "ToolRegistry"]
