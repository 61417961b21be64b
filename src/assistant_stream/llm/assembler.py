"""Streaming message assembly.

Turns the provider's event sequence (``message_start``,
``content_block_start`` / ``_delta`` / ``_stop``, ``message_delta``,
``message_stop``, ``error``) into a final message dict, producing
incremental notifications along the way.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from assistant_stream.types import ErrorKind, EventType, StreamError, StreamEvent

from .sse import SSEFrame

_logger = logging.getLogger(__name__)


def parse_tool_input(raw: str) -> dict[str, Any]:
    """Parse accumulated tool-input JSON, substituting ``{}`` on failure."""
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        _logger.warning("Failed to parse tool input JSON: %s", e)
        _logger.warning("Raw JSON was: %s", raw[:500])
        return {}
    if not isinstance(value, dict):
        _logger.warning("Tool input is not a JSON object: %s", type(value).__name__)
        return {}
    return value


class StreamAssembler:
    """State machine that assembles one assistant message.

    ``handle()`` consumes a single frame and returns the notifications it
    produced.  A provider ``error`` event sets :attr:`error`; the caller is
    expected to stop feeding frames once it is set.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._message: dict[str, Any] = {}
        self._content: list[dict[str, Any]] = []
        self.block_index = -1
        self._open_type: str | None = None
        self._tool_id = ""
        self._tool_name = ""
        self._tool_json = ""
        self._text = ""
        self.error: StreamError | None = None
        self.started = False  # message_start seen

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def handle(self, frame: SSEFrame) -> list[StreamEvent]:
        try:
            payload = json.loads(frame.data)
        except json.JSONDecodeError:
            _logger.warning("Skipping malformed %s payload: %r", frame.event, frame.data[:200])
            return []
        if not isinstance(payload, dict):
            _logger.warning("Skipping non-object %s payload", frame.event)
            return []

        handler = getattr(self, f"_on_{frame.event}", None)
        if handler is None:
            # ping and future event types
            _logger.debug("Ignoring SSE event %s", frame.event)
            return []
        try:
            return handler(payload)
        except (AttributeError, TypeError, ValueError) as e:
            _logger.warning("Skipping malformed %s event: %s", frame.event, e)
            return []

    def finish(self) -> dict[str, Any]:
        """Attach the completed content blocks and return the final message."""
        if self._open_type is not None:
            _logger.debug("Stream ended with block %d still open", self.block_index)
        message = dict(self._message)
        message["content"] = list(self._content)
        return message

    @property
    def content(self) -> list[dict[str, Any]]:
        return list(self._content)

    @property
    def partial_text(self) -> str:
        """Text accumulated in the currently open text block."""
        return self._text

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_message_start(self, payload: dict[str, Any]) -> list[StreamEvent]:
        message = payload.get("message")
        self._message = dict(message) if isinstance(message, dict) else {}
        self.started = True
        self._message.pop("content", None)
        self._content = []
        return []

    def _on_content_block_start(self, payload: dict[str, Any]) -> list[StreamEvent]:
        self.block_index = int(payload.get("index", self.block_index + 1))
        block = payload.get("content_block") or {}
        block_type = block.get("type", "")
        self._open_type = block_type

        if block_type == "text":
            self._text = ""
        elif block_type == "tool_use":
            self._tool_id = block.get("id", "")
            self._tool_name = block.get("name", "")
            self._tool_json = ""
            _logger.debug("Tool use started - %s id: %s", self._tool_name, self._tool_id)
            return [StreamEvent(
                type=EventType.TOOL_USE_STARTED,
                data={"tool_id": self._tool_id, "tool_name": self._tool_name},
            )]
        return []

    def _on_content_block_delta(self, payload: dict[str, Any]) -> list[StreamEvent]:
        delta = payload.get("delta") or {}
        delta_type = delta.get("type", "")

        if delta_type == "text_delta":
            text = delta.get("text", "")
            self._text += text
            return [StreamEvent(type=EventType.CONTENT_DELTA, data={"text": text})]
        if delta_type == "input_json_delta":
            fragment = delta.get("partial_json", "")
            self._tool_json += fragment
            return [StreamEvent(
                type=EventType.TOOL_INPUT_DELTA,
                data={"tool_id": self._tool_id, "partial_json": fragment},
            )]
        return []

    def _on_content_block_stop(self, payload: dict[str, Any]) -> list[StreamEvent]:
        open_type = self._open_type
        self._open_type = None
        events: list[StreamEvent] = []

        if open_type == "tool_use":
            tool_input = parse_tool_input(self._tool_json)
            self._content.append({
                "type": "tool_use",
                "id": self._tool_id,
                "name": self._tool_name,
                "input": tool_input,
            })
            _logger.debug(
                "Tool use complete - %s input keys: %s",
                self._tool_name, list(tool_input),
            )
            events.append(StreamEvent(
                type=EventType.TOOL_USE_COMPLETE,
                data={
                    "tool_id": self._tool_id,
                    "tool_name": self._tool_name,
                    "input": tool_input,
                },
            ))
            self._tool_id = ""
            self._tool_name = ""
            self._tool_json = ""
        elif open_type == "text" and self._text:
            self._content.append({"type": "text", "text": self._text})
            self._text = ""
        return events

    def _on_message_delta(self, payload: dict[str, Any]) -> list[StreamEvent]:
        delta = payload.get("delta") or {}
        for key in ("stop_reason", "stop_sequence"):
            if key in delta:
                self._message[key] = delta[key]
        usage = payload.get("usage")
        if isinstance(usage, dict):
            merged = dict(self._message.get("usage") or {})
            merged.update(usage)
            self._message["usage"] = merged
        return []

    def _on_message_stop(self, payload: dict[str, Any]) -> list[StreamEvent]:
        # Finalization happens when the transport reports end of response.
        return []

    def _on_error(self, payload: dict[str, Any]) -> list[StreamEvent]:
        err = payload.get("error") or {}
        message = err.get("message") or "Unknown provider error"
        err_type = err.get("type", "")
        _logger.warning("Provider stream error (%s): %s", err_type, message)
        self.error = StreamError(kind=ErrorKind.PROVIDER, message=message)
        return []
