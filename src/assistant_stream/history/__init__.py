"""Conversation history: the turn log and its wire format."""

from assistant_stream.history.turn_log import HISTORY_SUFFIX, HISTORY_VERSION, TurnLog
from assistant_stream.history.wire import format_turns, turns_from_message

__all__ = [
    "HISTORY_SUFFIX",
    "HISTORY_VERSION",
    "TurnLog",
    "format_turns",
    "turns_from_message",
]
