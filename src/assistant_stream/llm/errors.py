"""Classification of failed provider responses."""

from __future__ import annotations

import json
import logging

from assistant_stream.types import ErrorKind, StreamError

_logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429

_STATUS_MESSAGES = {
    400: "Bad request - check your message format",
    401: "Invalid API key - please check your API key in settings",
    403: "Access forbidden - your API key may not have permission",
    404: "API endpoint not found",
    429: "Rate limited - too many requests. Max retries exceeded.",
    500: "Server error - try again later",
    529: "API overloaded - try again later",
}


def describe_status(status_code: int) -> str:
    """Fixed human-readable message for an HTTP status."""
    return _STATUS_MESSAGES.get(status_code, f"HTTP error {status_code}")


def extract_error_message(body: bytes | str) -> str:
    """Pull ``"<type>: <message>"`` out of an ``{"error": {...}}`` body.

    Returns an empty string when the body carries no usable message.
    """
    if not body:
        return ""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ""
    if not isinstance(data, dict):
        return ""
    err = data.get("error")
    if not isinstance(err, dict):
        return ""
    message = err.get("message") or ""
    if not message:
        return ""
    err_type = err.get("type") or ""
    return f"{err_type}: {message}" if err_type else message


def parse_retry_after(value: str | None, default: float) -> float:
    """Seconds to wait from a ``retry-after`` header, else *default*."""
    if not value:
        return default
    try:
        seconds = int(value.strip())
    except ValueError:
        _logger.debug("Ignoring non-integer retry-after: %r", value)
        return default
    return float(seconds) if seconds > 0 else default


def classify_response(status_code: int, body: bytes | str) -> StreamError:
    """Build the error reported for a non-2xx response."""
    message = extract_error_message(body) or describe_status(status_code)
    kind = ErrorKind.RATE_LIMITED if status_code == RATE_LIMIT_STATUS else ErrorKind.PROVIDER
    return StreamError(kind=kind, message=message, status_code=status_code)
