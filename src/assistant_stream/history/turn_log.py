"""Append-only turn log with per-document JSON persistence."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterator

from assistant_stream.types import Turn

from .wire import format_turns

_logger = logging.getLogger(__name__)

HISTORY_SUFFIX = ".claude-history.json"
HISTORY_VERSION = 1

Listener = Callable[["TurnLog"], None]


class TurnLog:
    """Ordered conversation turns bound to at most one document.

    The history file for a document lives next to it: the identity path
    with :data:`HISTORY_SUFFIX` appended.  Rebinding flushes the current
    log and loads the one belonging to the new document.
    """

    def __init__(
        self,
        identity: str = "",
        suffix: str = HISTORY_SUFFIX,
        version: int = HISTORY_VERSION,
    ) -> None:
        self._identity = ""
        self._turns: list[Turn] = []
        self._listeners: list[Listener] = []
        self.suffix = suffix
        self.version = version
        if identity:
            self.bind(identity)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def history_path(self) -> Path | None:
        if not self._identity:
            return None
        return Path(self._identity + self.suffix)

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))

    def to_messages(self) -> list[dict[str, Any]]:
        """Provider wire format of the current log."""
        return format_turns(self._turns)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)
        self._notify()

    def extend(self, turns: list[Turn]) -> None:
        if not turns:
            return
        self._turns.extend(turns)
        self._notify()

    def bind(self, identity: str) -> None:
        """Associate the log with *identity*, flushing the previous one."""
        if identity == self._identity:
            return
        if self._identity and self._turns:
            self.save()
        self._identity = identity
        self._turns = []
        if self._identity:
            self.load()
        self._notify()

    def clear(self) -> None:
        """Empty the log and delete its persisted copy."""
        self._turns = []
        path = self.history_path
        if path is not None:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                _logger.warning("Could not delete history %s: %s", path, e)
        self._notify()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> bool:
        """Write the log to :attr:`history_path`.  Returns False on failure."""
        path = self.history_path
        if path is None:
            return False

        document = {
            "version": self.version,
            "source_file": os.path.basename(self._identity),
            "messages": [t.to_record() for t in self._turns],
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                prefix=path.name, suffix=".tmp", dir=str(path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, ensure_ascii=False)
                os.replace(tmp, path)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise
        except OSError as e:
            _logger.warning("Failed to save history %s: %s", path, e)
            return False
        _logger.debug("Saved %d turns to %s", len(self._turns), path)
        return True

    def load(self) -> bool:
        """Replace the in-memory log with the persisted one.

        A missing, unreadable, or other-version file leaves the log empty.
        """
        self._turns = []
        path = self.history_path
        if path is None or not path.exists():
            return False
        try:
            with open(path, encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            _logger.warning("Could not read history %s: %s", path, e)
            return False
        if not isinstance(document, dict):
            return False
        version = document.get("version")
        if version != self.version:
            # Future: handle version migrations
            _logger.info(
                "Ignoring history %s with version %r (expected %d)",
                path, version, self.version,
            )
            return False

        records = document.get("messages")
        if not isinstance(records, list):
            records = []
        self._turns = [
            Turn.from_record(r) for r in records if isinstance(r, dict)
        ]
        _logger.debug("Loaded %d turns from %s", len(self._turns), path)
        return True

    # ------------------------------------------------------------------
    # Change listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                _logger.exception("TurnLog listener %s raised", listener)
