"""Conversation driver and streaming-edit preview."""

from assistant_stream.core.preview import EditPreview, PreviewUpdate
from assistant_stream.core.session import ConversationSession, SessionResult

__all__ = [
    "ConversationSession",
    "EditPreview",
    "PreviewUpdate",
    "SessionResult",
]
