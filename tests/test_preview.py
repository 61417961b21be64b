"""Tests for the streamed-edit preview."""

from __future__ import annotations

import pytest

from assistant_stream.config import PreviewConfig
from assistant_stream.core.preview import (
    EditPreview,
    PreviewUpdate,
    extract_partial_string,
    first_different_line,
)
from assistant_stream.events.bus import EventBus
from assistant_stream.types import EventType, StreamEvent


class TestExtractPartialString:
    def test_complete_object(self):
        assert extract_partial_string('{"content": "cube(1);"}') == "cube(1);"

    def test_unterminated_value(self):
        assert extract_partial_string('{"content": "cube(') == "cube("

    def test_escapes(self):
        raw = r'{"content": "a\nb\t\"q\" \\ \/ é'
        assert extract_partial_string(raw) == 'a\nb\t"q" \\ / é'

    def test_split_escape_stops(self):
        assert extract_partial_string('{"content": "line\\') == "line"

    def test_split_unicode_escape_stops(self):
        assert extract_partial_string('{"content": "x\\u00') == "x"

    def test_field_not_arrived(self):
        assert extract_partial_string('{"conte') == ""
        assert extract_partial_string('{"content": ') == ""

    def test_other_field_name(self):
        assert extract_partial_string('{"path": "a.scad", "text": "abc', "text") == "abc"

    def test_stops_at_closing_quote(self):
        assert extract_partial_string('{"content": "abc", "mode": "x"}') == "abc"


class TestFirstDifferentLine:
    def test_changed_line(self):
        assert first_different_line("a\nb\nc", "a\nX\nc") == 1

    def test_appended_lines(self):
        assert first_different_line("a\nb", "a\nb\nc") == 2

    def test_identical_or_prefix(self):
        assert first_different_line("a\nb", "a\nb") == -1
        assert first_different_line("a\nb\nc", "a\nb") == -1


class TestEditPreview:
    @pytest.fixture
    def bus(self) -> EventBus:
        return EventBus()

    async def _stream(self, bus: EventBus, tool_name: str, fragments: list[str], tool_id: str = "t1"):
        await bus.emit(StreamEvent(EventType.TOOL_USE_STARTED, {"tool_id": tool_id, "tool_name": tool_name}))
        for frag in fragments:
            await bus.emit(StreamEvent(EventType.TOOL_INPUT_DELTA, {"tool_id": tool_id, "partial_json": frag}))
        await bus.emit(StreamEvent(EventType.TOOL_USE_COMPLETE, {"tool_id": tool_id, "tool_name": tool_name}))

    @pytest.mark.asyncio
    async def test_updates_only_when_content_grows(self, bus: EventBus):
        updates: list[PreviewUpdate] = []
        preview = EditPreview(updates.append, original_text=lambda: "cube(1);\nsphere(2);")
        preview.attach(bus)

        await self._stream(bus, "write_editor", [
            '{"con', 'tent": "cube(1);', '\\n', 'cyl', "inder(3);", '"}',
        ])

        assert [u.content for u in updates] == [
            "cube(1);",
            "cube(1);\n",
            "cube(1);\ncyl",
            "cube(1);\ncylinder(3);",
        ]
        assert updates[-1].first_changed_line == 1
        assert updates[-1].tool_name == "write_editor"
        assert not preview.active

    @pytest.mark.asyncio
    async def test_ignores_other_tools(self, bus: EventBus):
        updates = []
        EditPreview(updates.append).attach(bus)
        await self._stream(bus, "run_render", ['{"content": "x"}'])
        assert updates == []

    @pytest.mark.asyncio
    async def test_async_callback_and_custom_field(self, bus: EventBus):
        updates = []

        async def on_update(update: PreviewUpdate):
            updates.append(update)

        preview = EditPreview(on_update, tools=["replace_selection"], field_name="text")
        preview.attach(bus)
        await self._stream(bus, "replace_selection", ['{"text": "abc"}'])
        assert [u.content for u in updates] == ["abc"]
        assert updates[0].first_changed_line == 0

    @pytest.mark.asyncio
    async def test_from_config_selects_tools_and_field(self, bus: EventBus):
        updates: list[PreviewUpdate] = []
        config = PreviewConfig(tools=["patch_file"], field_name="body")
        preview = EditPreview.from_config(config, updates.append, lambda: "a\nb")
        preview.attach(bus)

        await self._stream(bus, "write_editor", ['{"content": "ignored"}'])
        await self._stream(bus, "patch_file", ['{"body": "a\\nc"}'], tool_id="t2")

        assert [u.tool_name for u in updates] == ["patch_file"]
        assert updates[0].content == "a\nc"
        assert updates[0].first_changed_line == 1

    @pytest.mark.asyncio
    async def test_detach(self, bus: EventBus):
        updates = []
        preview = EditPreview(updates.append)
        preview.attach(bus)
        preview.detach(bus)
        await self._stream(bus, "write_editor", ['{"content": "x"}'])
        assert updates == []

    @pytest.mark.asyncio
    async def test_stream_restart_resets(self, bus: EventBus):
        updates = []
        preview = EditPreview(updates.append)
        preview.attach(bus)
        await bus.emit(StreamEvent(EventType.TOOL_USE_STARTED, {"tool_id": "t1", "tool_name": "write_editor"}))
        await bus.emit(StreamEvent(EventType.TOOL_INPUT_DELTA, {"tool_id": "t1", "partial_json": '{"content": "ab'}))
        assert preview.active
        await bus.emit(StreamEvent(EventType.STREAM_STARTED, {"model": "m", "attempt": 1}))
        assert not preview.active
