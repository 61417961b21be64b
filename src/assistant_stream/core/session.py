"""Conversation session: the tool loop around the streaming client.

    user turn → request → assistant/tool turns → run tools → request → ...

The session owns the turn log and persists it after every completed
round-trip.  It holds no provider logic of its own.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from assistant_stream.config import AssistantConfig
from assistant_stream.events.bus import EventBus
from assistant_stream.history.turn_log import TurnLog
from assistant_stream.history.wire import turns_from_message
from assistant_stream.llm.client import StreamingClient
from assistant_stream.tools.registry import ToolRegistry
from assistant_stream.types import (
    ErrorKind,
    EventType,
    StreamError,
    StreamEvent,
    Turn,
)

_logger = logging.getLogger(__name__)

_CANCELLED_RESULT = "Tool execution cancelled by user"


@dataclass
class SessionResult:
    """Summary of one ``ask()``."""

    text: str = ""
    rounds: int = 0
    tool_calls: int = 0
    error: StreamError | None = None
    cancelled: bool = False
    max_rounds_reached: bool = False


class ConversationSession:
    """Drives user → model → tools → model exchanges for one document.

    Parameters
    ----------
    client:
        The streaming client; its event bus is shared with the session.
    registry:
        Tools advertised to and executed for the model.
    log:
        Turn log (created empty if omitted).
    config:
        Model, token, round and prompt settings.
    """

    def __init__(
        self,
        client: StreamingClient,
        registry: ToolRegistry | None = None,
        log: TurnLog | None = None,
        config: AssistantConfig | None = None,
    ) -> None:
        self.config = config or AssistantConfig()
        self._client = client
        self._registry = registry if registry is not None else ToolRegistry()
        if log is None:
            log = TurnLog(
                suffix=self.config.history.suffix, version=self.config.history.version,
            )
        self.log = log
        self.model = self.config.default_model
        self.system_prompt = self.config.system_prompt
        self._cancelled = False
        self._busy = False

    @property
    def events(self) -> EventBus:
        return self._client.events

    @property
    def is_busy(self) -> bool:
        return self._busy or self._client.is_busy

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ask(self, text: str) -> SessionResult:
        """Send *text* and keep going until the model stops calling tools."""
        if self.is_busy:
            return SessionResult(
                error=StreamError(ErrorKind.BUSY, "Request already in progress"),
            )

        self._busy = True
        try:
            return await self._converse(text)
        finally:
            self._busy = False

    async def _converse(self, text: str) -> SessionResult:
        self._cancelled = False
        result = SessionResult()
        texts: list[str] = []

        self.log.append(Turn.user(text))
        self.log.save()
        await self._emit(EventType.HISTORY_CHANGED, {"turns": len(self.log)})

        try:
            for _ in range(self.config.max_rounds):
                outcome = await self._client.request(
                    self.model,
                    self.log.turns,
                    self._registry.definitions(),
                    self.system_prompt,
                    self.config.max_tokens,
                )
                if outcome.cancelled or self._cancelled:
                    result.cancelled = True
                    break
                if outcome.error is not None:
                    result.error = outcome.error
                    break

                result.rounds += 1
                self.log.extend(turns_from_message(outcome.message or {}, self.model))
                if outcome.text:
                    texts.append(outcome.text)
                self.log.save()
                await self._emit(EventType.HISTORY_CHANGED, {"turns": len(self.log)})

                tool_uses = outcome.tool_uses
                if not tool_uses:
                    break
                await self._run_tools(tool_uses, result)
                self.log.save()
                await self._emit(EventType.HISTORY_CHANGED, {"turns": len(self.log)})
                if self._cancelled:
                    result.cancelled = True
                    break
            else:
                result.max_rounds_reached = True
                _logger.warning(
                    "Stopped after %d rounds of tool use", self.config.max_rounds,
                )
        except asyncio.CancelledError:
            self.cancel()
            raise

        result.text = "\n\n".join(texts)
        await self._emit(EventType.SESSION_DONE, {
            "rounds": result.rounds,
            "cancelled": result.cancelled,
            "error": result.error,
        })
        return result

    def cancel(self) -> None:
        """Stop the current exchange.  Pending tools are not run."""
        self._cancelled = True
        self._client.cancel()

    async def bind(self, identity: str) -> None:
        """Switch to the history of another document."""
        if identity == self.log.identity:
            return
        if self.is_busy:
            self.cancel()
        self.log.bind(identity)
        await self._emit(EventType.HISTORY_CHANGED, {"turns": len(self.log)})

    async def clear(self) -> None:
        """Forget the conversation for the current document."""
        self.log.clear()
        await self._emit(EventType.HISTORY_CHANGED, {"turns": 0})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_tools(
        self, tool_uses: list[dict[str, Any]], result: SessionResult,
    ) -> None:
        """Execute each invocation in order, recording one result per call.

        Once cancelled, the remaining invocations get an error result so
        every tool_use in the log stays answered.
        """
        for block in tool_uses:
            tool_id = block.get("id", "")
            name = block.get("name", "")
            if self._cancelled:
                self.log.append(Turn.tool_result(tool_id, _CANCELLED_RESULT, is_error=True))
                continue
            _logger.debug("Processing tool %s with input keys: %s", name, list(block.get("input") or {}))
            tool_result = await self._registry.execute(name, block.get("input") or {})
            _logger.debug(
                "Tool result - success: %s error: %s", tool_result.success, tool_result.is_error,
            )
            self.log.append(Turn.tool_result(tool_id, tool_result.content, tool_result.is_error))
            result.tool_calls += 1
            await self._emit(EventType.TOOL_EXECUTED, {
                "tool_id": tool_id,
                "tool_name": name,
                "success": tool_result.success,
                "is_error": tool_result.is_error,
                "content": tool_result.content,
            })

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        await self._client.events.emit(StreamEvent(type=event_type, data=data))
