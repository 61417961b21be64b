"""Rate-limit retry scheduling."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .errors import parse_retry_after

_logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_DEFAULT_DELAY = 30  # seconds, when the provider sends no usable retry-after


class RetryController:
    """Owns the retry budget and the delayed re-dispatch timer.

    The timer is a task of its own, so it can be cancelled without touching
    the transport operation it replaces.
    """

    def __init__(
        self,
        max_retries: int = _MAX_RETRIES,
        default_delay: float = _DEFAULT_DELAY,
    ) -> None:
        self.max_retries = max_retries
        self.default_delay = default_delay
        self.attempts = 0
        self._timer: asyncio.Task[None] | None = None

    @property
    def can_retry(self) -> bool:
        return self.attempts < self.max_retries

    @property
    def remaining(self) -> int:
        return max(0, self.max_retries - self.attempts)

    @property
    def pending(self) -> bool:
        """True while a re-dispatch is scheduled and has not fired."""
        return self._timer is not None and not self._timer.done()

    def delay_for(self, retry_after: str | None) -> float:
        return parse_retry_after(retry_after, self.default_delay)

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Run *callback* after *delay* seconds and count one attempt."""
        self.cancel()
        self.attempts += 1
        _logger.warning(
            "Rate limited, retrying in %.0fs (attempt %d/%d)",
            delay, self.attempts, self.max_retries,
        )
        self._timer = asyncio.create_task(self._fire_later(delay, callback))

    def cancel(self) -> bool:
        """Stop a scheduled re-dispatch.  Returns True if one was pending."""
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done():
            timer.cancel()
            return True
        return False

    def reset(self) -> None:
        """Zero the retry counter (after success or a non-rate-limit error)."""
        self.attempts = 0

    async def _fire_later(self, delay: float, callback: Callable[[], None]) -> None:
        await asyncio.sleep(delay)
        if self._timer is asyncio.current_task():
            self._timer = None
        callback()
