"""Server-sent event framing.

Splits a chunked byte stream into ``event:`` / ``data:`` frames.  Only a
single ``data:`` line per frame is supported, which is all the provider ever
sends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

_logger = logging.getLogger(__name__)

_DELIMITERS = (b"\r\n\r\n", b"\n\n")


@dataclass(frozen=True)
class SSEFrame:
    """A complete server-push event."""

    event: str
    data: str


def _find_delimiter(buffer: bytearray) -> tuple[int, int]:
    """Return ``(index, length)`` of the earliest frame delimiter, or ``(-1, 0)``."""
    best, best_len = -1, 0
    for delim in _DELIMITERS:
        idx = buffer.find(delim)
        if idx >= 0 and (best < 0 or idx < best):
            best, best_len = idx, len(delim)
    return best, best_len


def parse_frame(raw: bytes) -> SSEFrame | None:
    """Decode one frame.  Returns ``None`` unless both event and data are set."""
    text = raw.decode("utf-8", errors="replace")
    event = ""
    data = ""
    for line in text.split("\n"):
        line = line.removesuffix("\r")
        if line.startswith("event: "):
            event = line[7:].strip()
        elif line.startswith("data: "):
            data = line[6:]
    if not event or not data:
        if text.strip():
            _logger.debug("Dropping incomplete SSE frame: %r", text[:200])
        return None
    return SSEFrame(event=event, data=data)


class SSEFrameParser:
    """Incremental frame extractor over an append-only byte buffer.

    ``feed()`` returns every frame completed by the new bytes; bytes after
    the last delimiter stay buffered.  ``flush()`` parses whatever is left
    once the stream has ended.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[SSEFrame]:
        self._buffer.extend(chunk)
        frames: list[SSEFrame] = []
        while True:
            idx, length = _find_delimiter(self._buffer)
            if idx < 0:
                break
            raw = bytes(self._buffer[:idx])
            del self._buffer[: idx + length]
            frame = parse_frame(raw)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[SSEFrame]:
        """Parse the residual buffer (no trailing delimiter) exactly once."""
        if not self._buffer:
            return []
        frames = self.feed(b"")
        if self._buffer:
            raw = bytes(self._buffer)
            self._buffer.clear()
            frame = parse_frame(raw)
            if frame is not None:
                frames.append(frame)
        return frames

    def reset(self) -> None:
        self._buffer.clear()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete frame."""
        return len(self._buffer)
