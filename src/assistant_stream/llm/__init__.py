"""Provider streaming client and its protocol pieces."""

from assistant_stream.llm.assembler import StreamAssembler
from assistant_stream.llm.client import PendingRequest, StreamingClient, build_request_body
from assistant_stream.llm.retry import RetryController
from assistant_stream.llm.sse import SSEFrame, SSEFrameParser

__all__ = [
    "PendingRequest",
    "RetryController",
    "SSEFrame",
    "SSEFrameParser",
    "StreamAssembler",
    "StreamingClient",
    "build_request_body",
]
