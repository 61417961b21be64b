"""Tests for ordered event delivery."""

import asyncio

import pytest

from assistant_stream.events.bus import EventBus
from assistant_stream.types import EventType, StreamEvent


@pytest.fixture
def bus():
    return EventBus()


class TestDelivery:
    @pytest.mark.asyncio
    async def test_coroutine_handler_awaited(self, bus: EventBus):
        received = []

        async def handler(event: StreamEvent):
            received.append(event)

        bus.subscribe(EventType.STREAM_STARTED, handler)
        ev = StreamEvent(type=EventType.STREAM_STARTED, data={"model": "m"})
        await bus.emit(ev)

        assert received == [ev]

    @pytest.mark.asyncio
    async def test_plain_function_handler(self, bus: EventBus):
        received = []
        bus.subscribe(EventType.CONTENT_DELTA, received.append)
        await bus.emit(StreamEvent(type=EventType.CONTENT_DELTA, data={"text": "x"}))
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_other_types_not_delivered(self, bus: EventBus):
        received = []
        bus.subscribe(EventType.STREAM_STARTED, received.append)
        await bus.emit(StreamEvent(type=EventType.MESSAGE_COMPLETE))
        assert received == []

    @pytest.mark.asyncio
    async def test_subscribe_by_string_value(self, bus: EventBus):
        received = []
        bus.subscribe("tool.executed", received.append)
        await bus.emit(StreamEvent(type=EventType.TOOL_EXECUTED))
        assert len(received) == 1


class TestOrdering:
    @pytest.mark.asyncio
    async def test_handlers_run_sequentially_in_order(self, bus: EventBus):
        calls = []

        async def slow(event: StreamEvent):
            calls.append("slow-start")
            await asyncio.sleep(0.01)
            calls.append("slow-end")

        async def fast(event: StreamEvent):
            calls.append("fast")

        bus.subscribe(EventType.CONTENT_DELTA, slow)
        bus.subscribe(EventType.CONTENT_DELTA, fast)
        await bus.emit(StreamEvent(type=EventType.CONTENT_DELTA))

        assert calls == ["slow-start", "slow-end", "fast"]

    @pytest.mark.asyncio
    async def test_specific_before_wildcard(self, bus: EventBus):
        calls = []
        bus.subscribe("*", lambda e: calls.append("wildcard"))
        bus.subscribe(EventType.STREAM_ERROR, lambda e: calls.append("specific"))
        await bus.emit(StreamEvent(type=EventType.STREAM_ERROR))
        assert calls == ["specific", "wildcard"]

    @pytest.mark.asyncio
    async def test_star_sees_every_type(self, bus: EventBus):
        received = []
        bus.subscribe("*", lambda e: received.append(e.type))
        for t in (EventType.STREAM_STARTED, EventType.CONTENT_DELTA, EventType.MESSAGE_COMPLETE):
            await bus.emit(StreamEvent(type=t))
        assert received == [
            EventType.STREAM_STARTED, EventType.CONTENT_DELTA, EventType.MESSAGE_COMPLETE,
        ]


class TestUnsubscribe:
    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus: EventBus):
        received = []
        bus.subscribe(EventType.SESSION_DONE, received.append)
        await bus.emit(StreamEvent(type=EventType.SESSION_DONE))
        bus.unsubscribe(EventType.SESSION_DONE, received.append)
        await bus.emit(StreamEvent(type=EventType.SESSION_DONE))
        assert len(received) == 1

    def test_unsubscribe_unknown_handler_is_ignored(self, bus: EventBus):
        bus.unsubscribe(EventType.SESSION_DONE, print)


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_limit(self):
        bus = EventBus(max_history=5)
        for i in range(10):
            await bus.emit(StreamEvent(type=EventType.CONTENT_DELTA, data={"i": i}))
        assert [e.data["i"] for e in bus.history] == [5, 6, 7, 8, 9]

    @pytest.mark.asyncio
    async def test_clear(self, bus: EventBus):
        bus.subscribe(EventType.STREAM_STARTED, lambda e: None)
        await bus.emit(StreamEvent(type=EventType.STREAM_STARTED))
        bus.clear()
        assert bus.history == []
        assert not bus._handlers


class TestHandlerFailure:
    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, bus: EventBus):
        async def bad_handler(event: StreamEvent):
            raise ValueError("boom")

        received = []
        bus.subscribe(EventType.STREAM_STARTED, bad_handler)
        bus.subscribe(EventType.STREAM_STARTED, received.append)

        await bus.emit(StreamEvent(type=EventType.STREAM_STARTED))
        assert len(received) == 1
