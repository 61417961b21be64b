"""Shared data types for the assistant stream engine."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _parse_timestamp(raw: Any) -> datetime:
    """ISO-8601 to an aware datetime.  A trailing ``Z`` means UTC; so does no offset."""
    if not raw or not isinstance(raw, str):
        return _now()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return _now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Conversation turns
# ---------------------------------------------------------------------------

class TurnRole(enum.IntEnum):
    """Role of a turn.  The integer value is the tag written to disk."""

    USER = 0
    ASSISTANT_TEXT = 1
    TOOL_INVOCATION = 2
    TOOL_RESULT = 3


@dataclass
class Turn:
    """One role-tagged unit of conversation history.

    ``text`` holds the user/assistant text for USER and ASSISTANT_TEXT turns
    and the result text for TOOL_RESULT turns.
    """

    role: TurnRole
    text: str = ""
    tool_id: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False
    timestamp: datetime = field(default_factory=_now)
    model: str = ""  # assistant text only

    @classmethod
    def user(cls, text: str) -> Turn:
        return cls(role=TurnRole.USER, text=text)

    @classmethod
    def assistant(cls, text: str, model: str = "") -> Turn:
        return cls(role=TurnRole.ASSISTANT_TEXT, text=text, model=model)

    @classmethod
    def tool_use(
        cls, tool_id: str, tool_name: str, tool_input: dict[str, Any] | None = None,
    ) -> Turn:
        return cls(
            role=TurnRole.TOOL_INVOCATION,
            tool_id=tool_id,
            tool_name=tool_name,
            tool_input=dict(tool_input or {}),
        )

    @classmethod
    def tool_result(cls, tool_id: str, text: str, is_error: bool = False) -> Turn:
        return cls(
            role=TurnRole.TOOL_RESULT, tool_id=tool_id, text=text, is_error=is_error,
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize for the history file.  Empty optional fields are omitted."""
        record: dict[str, Any] = {
            "role": int(self.role),
            "content": self.text,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.model:
            record["model"] = self.model
        if self.tool_id:
            record["tool_id"] = self.tool_id
        if self.tool_name:
            record["tool_name"] = self.tool_name
        if self.tool_input:
            record["tool_input"] = self.tool_input
        if self.is_error:
            record["is_error"] = True
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Turn:
        """Inverse of :meth:`to_record`.  Unknown role tags fall back to USER."""
        try:
            role = TurnRole(int(record.get("role", 0)))
        except (TypeError, ValueError):
            role = TurnRole.USER
        tool_input = record.get("tool_input") or {}
        if not isinstance(tool_input, dict):
            tool_input = {}
        return cls(
            role=role,
            text=str(record.get("content", "") or ""),
            tool_id=str(record.get("tool_id", "") or ""),
            tool_name=str(record.get("tool_name", "") or ""),
            tool_input=tool_input,
            is_error=bool(record.get("is_error", False)),
            timestamp=_parse_timestamp(record.get("timestamp")),
            model=str(record.get("model", "") or ""),
        )


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

@dataclass
class ToolResult:
    """Result of a tool execution, returned verbatim to the provider."""

    success: bool
    content: str
    is_error: bool = False


# ---------------------------------------------------------------------------
# Errors and outcomes
# ---------------------------------------------------------------------------

class ErrorKind(enum.Enum):
    """Cause classification for a failed request."""

    NOT_CONFIGURED = "not_configured"
    BUSY = "busy"
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"
    PROVIDER = "provider"
    RATE_LIMITED = "rate_limited"


@dataclass
class StreamError:
    """A classified, human-readable failure."""

    kind: ErrorKind
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        return self.message


@dataclass
class StreamOutcome:
    """How a single provider round-trip ended."""

    message: dict[str, Any] | None = None
    error: StreamError | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.message is not None

    @property
    def text(self) -> str:
        """Concatenated text blocks of the assembled message."""
        if not self.message:
            return ""
        return "".join(
            block.get("text", "")
            for block in self.message.get("content", [])
            if block.get("type") == "text"
        )

    @property
    def tool_uses(self) -> list[dict[str, Any]]:
        if not self.message:
            return []
        return [
            block for block in self.message.get("content", [])
            if block.get("type") == "tool_use"
        ]


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Notifications emitted by the client and the session."""

    # Streaming client
    STREAM_STARTED = "stream.started"
    CONTENT_DELTA = "stream.delta"
    TOOL_USE_STARTED = "tool.started"
    TOOL_INPUT_DELTA = "tool.input_delta"
    TOOL_USE_COMPLETE = "tool.complete"
    MESSAGE_COMPLETE = "message.complete"
    STREAM_ERROR = "stream.error"
    RATE_LIMIT_WAITING = "rate_limit.waiting"

    # Conversation session
    HISTORY_CHANGED = "history.changed"
    TOOL_EXECUTED = "tool.executed"
    SESSION_DONE = "session.done"


@dataclass
class StreamEvent:
    """Notification delivered through the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
