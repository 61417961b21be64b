"""Async streaming client for the provider's Messages API.

Owns at most one in-flight request.  ``send()`` returns as soon as the
request is dispatched; everything after that (stream start, deltas, tool
invocations, completion, errors, rate-limit waits) is delivered through the
client's :class:`EventBus`, strictly in order.

Cancellation detaches the in-flight record before tearing the transport
down, and every step of the transport task checks that its record is still
the live one, so nothing queued before ``cancel()`` reaches a handler
afterwards.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from assistant_stream.config import ProviderConfig, RetryConfig
from assistant_stream.events.bus import EventBus
from assistant_stream.history.wire import format_turns
from assistant_stream.types import (
    ErrorKind,
    EventType,
    StreamError,
    StreamEvent,
    StreamOutcome,
    Turn,
)

from .assembler import StreamAssembler
from .errors import RATE_LIMIT_STATUS, classify_response, describe_status
from .retry import RetryController
from .sse import SSEFrame, SSEFrameParser

_logger = logging.getLogger(__name__)

_EPHEMERAL = {"type": "ephemeral"}


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------

@dataclass
class PendingRequest:
    """Parameters of a request, captured verbatim for retries."""

    model: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] = field(default_factory=list)
    system_prompt: str = ""
    max_tokens: int = 4096


def build_request_body(
    request: PendingRequest, prompt_caching: bool = True,
) -> dict[str, Any]:
    """Build the JSON body for a streaming Messages request.

    With *prompt_caching* the system block and the last tool definition
    carry an ephemeral ``cache_control`` marker.
    """
    body: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_tokens,
        "stream": True,
        "messages": request.messages,
    }
    if request.system_prompt:
        system_block: dict[str, Any] = {"type": "text", "text": request.system_prompt}
        if prompt_caching:
            system_block["cache_control"] = dict(_EPHEMERAL)
        body["system"] = [system_block]
    if request.tools:
        tools = copy.deepcopy(request.tools)
        if prompt_caching:
            tools[-1]["cache_control"] = dict(_EPHEMERAL)
        body["tools"] = tools
    return body


@dataclass(eq=False)
class _InFlight:
    """State of the single live request."""

    generation: int
    request: PendingRequest
    done: asyncio.Future[StreamOutcome]
    parser: SSEFrameParser = field(default_factory=SSEFrameParser)
    assembler: StreamAssembler = field(default_factory=StreamAssembler)
    task: asyncio.Task[None] | None = None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class StreamingClient:
    """Streaming, tool-aware chat client with rate-limit retry.

    Parameters
    ----------
    provider:
        Endpoint, credential and header settings.
    retry:
        Retry budget and default delay for HTTP 429.
    event_bus:
        Where notifications go.  A private bus is created if omitted.
    transport:
        Optional ``httpx`` transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        provider: ProviderConfig | None = None,
        retry: RetryConfig | None = None,
        event_bus: EventBus | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider = provider or ProviderConfig()
        retry = retry or RetryConfig()
        self._api_key = self.provider.resolved_api_key()
        self._bus = event_bus or EventBus()
        self._retry = RetryController(retry.max_retries, retry.default_delay)
        self._inflight: _InFlight | None = None
        self._generation = 0
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(
                self.provider.read_timeout, connect=self.provider.connect_timeout,
            ),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def events(self) -> EventBus:
        return self._bus

    @property
    def api_key(self) -> str:
        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @property
    def is_busy(self) -> bool:
        """True from ``send()`` until completion, error or ``cancel()``."""
        return self._inflight is not None

    @property
    def retry_attempts(self) -> int:
        return self._retry.attempts

    def _headers(self) -> dict[str, str]:
        headers = {
            "content-type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": self.provider.api_version,
            "user-agent": self.provider.user_agent,
        }
        if self.provider.beta:
            headers["anthropic-beta"] = self.provider.beta
        return headers

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(
        self,
        model: str,
        turns: Sequence[Turn],
        tools: Sequence[dict[str, Any]] | None = None,
        system_prompt: str = "",
        max_tokens: int = 4096,
    ) -> StreamError | None:
        """Start streaming a reply to *turns*.

        Returns ``None`` once the request is dispatched, or the
        ``StreamError`` (also emitted) if it could not be started.
        """
        started = await self._start(model, turns, tools, system_prompt, max_tokens)
        return started if isinstance(started, StreamError) else None

    async def request(
        self,
        model: str,
        turns: Sequence[Turn],
        tools: Sequence[dict[str, Any]] | None = None,
        system_prompt: str = "",
        max_tokens: int = 4096,
    ) -> StreamOutcome:
        """``send()`` and wait for the outcome of the round-trip.

        Cancelling the awaiting task cancels the request.
        """
        started = await self._start(model, turns, tools, system_prompt, max_tokens)
        if isinstance(started, StreamError):
            return StreamOutcome(error=started)
        try:
            return await asyncio.shield(started.done)
        except asyncio.CancelledError:
            if self._inflight is started:
                self.cancel()
            raise

    def cancel(self) -> None:
        """Abort the in-flight request, if any.  Safe to call repeatedly.

        No notification for the cancelled request is delivered after this
        returns, and the client can ``send()`` again immediately.
        """
        inflight = self._inflight
        if inflight is None:
            return
        self._inflight = None
        self._retry.cancel()
        self._retry.reset()
        if inflight.task is not None and not inflight.task.done():
            inflight.task.cancel()
        if not inflight.done.done():
            inflight.done.set_result(StreamOutcome(cancelled=True))
        _logger.info("Request %d cancelled", inflight.generation)

    async def close(self) -> None:
        """Cancel any request and close the HTTP client."""
        self.cancel()
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _start(
        self,
        model: str,
        turns: Sequence[Turn],
        tools: Sequence[dict[str, Any]] | None,
        system_prompt: str,
        max_tokens: int,
    ) -> _InFlight | StreamError:
        if not self.is_configured:
            error = StreamError(ErrorKind.NOT_CONFIGURED, "API key not configured")
            await self._bus.emit(StreamEvent(EventType.STREAM_ERROR, {"error": error}))
            return error
        if self.is_busy:
            error = StreamError(ErrorKind.BUSY, "Request already in progress")
            await self._bus.emit(StreamEvent(EventType.STREAM_ERROR, {"error": error}))
            return error

        request = PendingRequest(
            model=model,
            messages=format_turns(list(turns)),
            tools=[dict(t) for t in tools or []],
            system_prompt=system_prompt,
            max_tokens=max_tokens,
        )
        self._generation += 1
        self._retry.cancel()
        self._retry.reset()
        inflight = _InFlight(
            generation=self._generation,
            request=request,
            done=asyncio.get_running_loop().create_future(),
        )
        self._inflight = inflight
        self._dispatch(inflight)
        return inflight

    def _dispatch(self, inflight: _InFlight) -> None:
        """(Re)issue the request.  Also the retry timer's callback."""
        if not self._is_live(inflight):
            return
        inflight.parser.reset()
        inflight.assembler.reset()
        inflight.task = asyncio.create_task(self._run(inflight))

    def _is_live(self, inflight: _InFlight) -> bool:
        return self._inflight is inflight

    # ------------------------------------------------------------------
    # Transport task
    # ------------------------------------------------------------------

    async def _run(self, inflight: _InFlight) -> None:
        request = inflight.request
        if not await self._emit(inflight, EventType.STREAM_STARTED, {
            "model": request.model,
            "attempt": self._retry.attempts,
        }):
            return

        body = build_request_body(request, self.provider.prompt_caching)
        try:
            async with self._http.stream(
                "POST", self.provider.api_url, json=body, headers=self._headers(),
            ) as resp:
                if not self._is_live(inflight):
                    return
                if not resp.is_success:
                    raw = await resp.aread()
                    await self._on_http_error(
                        inflight, resp.status_code, raw, resp.headers.get("retry-after"),
                    )
                    return
                async for chunk in resp.aiter_bytes():
                    if not await self._process(inflight, inflight.parser.feed(chunk)):
                        return
        except httpx.RequestError as e:
            if self._is_live(inflight):
                _logger.warning("Transport error: %s", e)
                self._retry.reset()
                await self._fail(inflight, StreamError(
                    ErrorKind.TRANSPORT, f"Network error - {e}" if str(e) else "Network error",
                ))
            return
        except Exception as e:
            if self._is_live(inflight):
                _logger.exception("Unexpected error while streaming")
                self._retry.reset()
                await self._fail(inflight, StreamError(
                    ErrorKind.MALFORMED_RESPONSE, f"Unexpected error - {type(e).__name__}: {e}",
                ))
            return

        if not await self._process(inflight, inflight.parser.flush()):
            return
        await self._complete(inflight)

    async def _process(self, inflight: _InFlight, frames: list[SSEFrame]) -> bool:
        """Feed frames to the assembler.  Returns False once the request ended."""
        for frame in frames:
            if not self._is_live(inflight):
                return False
            for event in inflight.assembler.handle(frame):
                if not await self._emit(inflight, event.type, event.data):
                    return False
            if inflight.assembler.error is not None:
                self._retry.reset()
                await self._fail(inflight, inflight.assembler.error)
                return False
        return self._is_live(inflight)

    async def _on_http_error(
        self,
        inflight: _InFlight,
        status_code: int,
        body: bytes,
        retry_after: str | None,
    ) -> None:
        error = classify_response(status_code, body)
        if status_code == RATE_LIMIT_STATUS:
            if self._retry.can_retry:
                delay = self._retry.delay_for(retry_after)
                if not await self._emit(inflight, EventType.RATE_LIMIT_WAITING, {
                    "seconds_remaining": int(delay),
                    "attempt": self._retry.attempts + 1,
                    "max_retries": self._retry.max_retries,
                }):
                    return
                self._retry.schedule(delay, lambda: self._dispatch(inflight))
                return
            error = StreamError(
                ErrorKind.RATE_LIMITED, describe_status(status_code), status_code,
            )
        _logger.warning("Provider returned HTTP %d: %s", status_code, error.message)
        self._retry.reset()
        await self._fail(inflight, error)

    async def _complete(self, inflight: _InFlight) -> None:
        if not self._is_live(inflight):
            return
        self._retry.reset()
        message = inflight.assembler.finish()
        if not inflight.assembler.started and not message["content"]:
            await self._fail(inflight, StreamError(
                ErrorKind.MALFORMED_RESPONSE, "Empty or malformed response from provider",
            ))
            return
        # Detach first so a completion handler may send() again.
        self._inflight = None
        await self._bus.emit(StreamEvent(EventType.MESSAGE_COMPLETE, {"message": message}))
        if not inflight.done.done():
            inflight.done.set_result(StreamOutcome(message=message))

    async def _fail(self, inflight: _InFlight, error: StreamError) -> None:
        if not self._is_live(inflight):
            return
        self._inflight = None
        await self._bus.emit(StreamEvent(EventType.STREAM_ERROR, {"error": error}))
        if not inflight.done.done():
            inflight.done.set_result(StreamOutcome(error=error))

    async def _emit(
        self, inflight: _InFlight, event_type: EventType, data: dict[str, Any],
    ) -> bool:
        """Emit only while *inflight* is live.  Returns liveness afterwards."""
        if not self._is_live(inflight):
            return False
        await self._bus.emit(StreamEvent(type=event_type, data=data))
        return self._is_live(inflight)
