"""Notification bus for the assistant stream engine."""

from assistant_stream.events.bus import EventBus

__all__ = ["EventBus"]
