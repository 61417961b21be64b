"""Ordered async pub/sub between the streaming engine and whatever renders it."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict, deque
from typing import Any, Callable

from assistant_stream.types import EventType, StreamEvent

_logger = logging.getLogger(__name__)

ALL_EVENTS = "*"

Handler = Callable[[StreamEvent], Any]


def _topic(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else str(event_type)


class EventBus:
    """Routes each :class:`StreamEvent` to the handlers registered for it.

    A handler may be a plain function or a coroutine function.  Delivery
    is sequential: ``emit()`` returns only after every handler has run, so
    one request's notifications arrive in the order they were produced.
    Handlers for the exact type go first, then ``"*"`` handlers.

    The last *max_history* events are kept for inspection.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._handlers: defaultdict[str, list[Handler]] = defaultdict(list)
        self._recent: deque[StreamEvent] = deque(maxlen=max_history)

    def subscribe(self, event_type: EventType | str, handler: Handler) -> None:
        self._handlers[_topic(event_type)].append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: Handler) -> None:
        """Drop *handler*; unknown handlers are ignored."""
        topic = _topic(event_type)
        registered = self._handlers.get(topic)
        if registered and handler in registered:
            registered.remove(handler)
            if not registered:
                del self._handlers[topic]

    async def emit(self, event: StreamEvent) -> None:
        self._recent.append(event)
        targets = [
            *self._handlers.get(_topic(event.type), ()),
            *self._handlers.get(ALL_EVENTS, ()),
        ]
        for handler in targets:
            await self._deliver(handler, event)

    @property
    def history(self) -> list[StreamEvent]:
        return list(self._recent)

    def clear(self) -> None:
        self._handlers.clear()
        self._recent.clear()

    @staticmethod
    async def _deliver(handler: Handler, event: StreamEvent) -> None:
        # A failing subscriber must not stop the others or the stream.
        try:
            outcome = handler(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            _logger.exception(
                "Handler %s failed on %s",
                getattr(handler, "__qualname__", repr(handler)), event.type,
            )
