"""Live preview of editor content while a tool's input is still streaming.

When the model calls an editing tool, its new text arrives as
``input_json_delta`` fragments long before the tool can run.  This module
extracts the growing string field from that incomplete JSON so a host can
show the edit as it is typed.  Best effort only: the final, fully parsed
input is what the tool actually receives.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from assistant_stream.config import PreviewConfig
from assistant_stream.events.bus import EventBus
from assistant_stream.types import EventType, StreamEvent

_logger = logging.getLogger(__name__)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "\\": "\\",
    '"': '"',
    "/": "/",
}


def extract_partial_string(partial_json: str, field_name: str = "content") -> str:
    """Decode the (possibly unterminated) string value of *field_name*.

    ``'{"content": "a\\nb'`` yields ``"a\\nb"`` with a real newline.  Returns
    an empty string if the field or its opening quote has not arrived yet.
    """
    key_pos = partial_json.find(f'"{field_name}"')
    if key_pos < 0:
        return ""
    colon = partial_json.find(":", key_pos + len(field_name) + 2)
    if colon < 0:
        return ""
    quote = partial_json.find('"', colon)
    if quote < 0:
        return ""

    out: list[str] = []
    i = quote + 1
    n = len(partial_json)
    while i < n:
        ch = partial_json[i]
        if ch == "\\":
            if i + 1 >= n:
                break  # escape split across fragments
            esc = partial_json[i + 1]
            if esc == "u":
                digits = partial_json[i + 2:i + 6]
                if len(digits) < 4:
                    break
                try:
                    out.append(chr(int(digits, 16)))
                except ValueError:
                    out.append(digits)
                i += 6
                continue
            out.append(_SIMPLE_ESCAPES.get(esc, esc))
            i += 2
            continue
        if ch == '"':
            break
        out.append(ch)
        i += 1
    return "".join(out)


def first_different_line(original: str, modified: str) -> int:
    """Index of the first line where *modified* departs from *original*.

    If *modified* only appends lines, that is the old line count; -1 when
    nothing differs within the shorter text.
    """
    orig_lines = original.split("\n")
    mod_lines = modified.split("\n")
    for i, (a, b) in enumerate(zip(orig_lines, mod_lines)):
        if a != b:
            return i
    if len(mod_lines) > len(orig_lines):
        return len(orig_lines)
    return -1


@dataclass
class PreviewUpdate:
    """Snapshot of a streaming edit."""

    tool_id: str
    tool_name: str
    content: str
    first_changed_line: int


class EditPreview:
    """Turns tool-input deltas into :class:`PreviewUpdate` callbacks.

    Parameters
    ----------
    on_update:
        Called (sync or async) each time the extracted content grows.
    original_text:
        Returns the document text before the edit, for change detection.
    tools:
        Tool names whose input is previewed.
    field_name:
        String field of the tool input holding the new text.
    """

    def __init__(
        self,
        on_update: Callable[[PreviewUpdate], Any],
        original_text: Callable[[], str] | None = None,
        tools: Iterable[str] = ("write_editor", "replace_selection"),
        field_name: str = "content",
    ) -> None:
        self._on_update = on_update
        self._original_text = original_text or (lambda: "")
        self._tools = set(tools)
        self._field = field_name
        self._reset()

    @classmethod
    def from_config(
        cls,
        config: PreviewConfig,
        on_update: Callable[[PreviewUpdate], Any],
        original_text: Callable[[], str] | None = None,
    ) -> EditPreview:
        return cls(on_update, original_text, tools=config.tools, field_name=config.field_name)

    def _reset(self) -> None:
        self.tool_id = ""
        self.tool_name = ""
        self._json = ""
        self._original = ""
        self._applied = 0

    @property
    def active(self) -> bool:
        return bool(self.tool_id)

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(EventType.TOOL_USE_STARTED, self._on_started)
        bus.subscribe(EventType.TOOL_INPUT_DELTA, self._on_delta)
        bus.subscribe(EventType.TOOL_USE_COMPLETE, self._on_complete)
        bus.subscribe(EventType.STREAM_STARTED, self._on_stream_started)

    def detach(self, bus: EventBus) -> None:
        bus.unsubscribe(EventType.TOOL_USE_STARTED, self._on_started)
        bus.unsubscribe(EventType.TOOL_INPUT_DELTA, self._on_delta)
        bus.unsubscribe(EventType.TOOL_USE_COMPLETE, self._on_complete)
        bus.unsubscribe(EventType.STREAM_STARTED, self._on_stream_started)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_stream_started(self, event: StreamEvent) -> None:
        self._reset()

    def _on_started(self, event: StreamEvent) -> None:
        self._reset()
        name = event.data.get("tool_name", "")
        if name not in self._tools:
            return
        self.tool_id = event.data.get("tool_id", "")
        self.tool_name = name
        self._original = self._original_text()

    async def _on_delta(self, event: StreamEvent) -> None:
        if not self.active or event.data.get("tool_id") != self.tool_id:
            return
        self._json += event.data.get("partial_json", "")
        content = extract_partial_string(self._json, self._field)
        if not content or len(content) <= self._applied:
            return
        self._applied = len(content)
        update = PreviewUpdate(
            tool_id=self.tool_id,
            tool_name=self.tool_name,
            content=content,
            first_changed_line=first_different_line(self._original, content),
        )
        result = self._on_update(update)
        if inspect.isawaitable(result):
            await result

    def _on_complete(self, event: StreamEvent) -> None:
        if event.data.get("tool_id") == self.tool_id:
            self._reset()
