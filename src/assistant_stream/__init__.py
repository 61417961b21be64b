"""Assistant Stream - streaming, tool-aware chat engine with per-document history."""

__version__ = "0.1.0"

from assistant_stream.config import AssistantConfig, load_config
from assistant_stream.core import ConversationSession, EditPreview, SessionResult
from assistant_stream.events import EventBus
from assistant_stream.history import TurnLog
from assistant_stream.llm import StreamingClient
from assistant_stream.tools import FunctionTool, Tool, ToolRegistry
from assistant_stream.types import (
    ErrorKind,
    EventType,
    StreamError,
    StreamEvent,
    StreamOutcome,
    ToolResult,
    Turn,
    TurnRole,
)

__all__ = [
    "AssistantConfig",
    "ConversationSession",
    "EditPreview",
    "ErrorKind",
    "EventBus",
    "EventType",
    "FunctionTool",
    "SessionResult",
    "StreamError",
    "StreamEvent",
    "StreamOutcome",
    "StreamingClient",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "Turn",
    "TurnLog",
    "TurnRole",
    "load_config",
]
