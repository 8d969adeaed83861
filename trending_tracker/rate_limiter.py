"""Helpers for pacing calls against GitHub's REST quota."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable

from .models import RateLimitInfo, UTC

LOGGER = logging.getLogger(__name__)


class RateLimiter:
    """Async throttle enforcing a minimum spacing between calls.

    When GitHub reports its quota through :meth:`record`, :meth:`acquire` also
    sleeps until the reset time once the remaining budget is spent.
    """

    def __init__(
        self,
        *,
        min_interval: float = 0.0,
        minimum_sleep: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = asyncio.Lock()
        self._info: RateLimitInfo | None = None
        self._min_interval = max(min_interval, 0.0)
        self._minimum_sleep = max(minimum_sleep, 0.0)
        self._clock = clock
        self._last_call: float | None = None

    async def acquire(self) -> None:
        """Wait until the next call may be issued."""

        while True:
            async with self._lock:
                info = self._info
                if info is None or info.remaining > 0:
                    if info is not None:
                        info.remaining -= 1
                    now = self._clock()
                    slot = now
                    if self._last_call is not None and self._min_interval > 0:
                        slot = max(now, self._last_call + self._min_interval)
                    self._last_call = slot
                    break
                reset_at = info.reset_at

            delay = (reset_at - datetime.now(tz=UTC)).total_seconds()
            delay = max(delay, self._minimum_sleep)
            LOGGER.warning("GitHub quota exhausted; sleeping %.2fs until reset", delay)
            await asyncio.sleep(delay)
            async with self._lock:
                if self._info is info:
                    self._info = None

        if slot > now:
            await asyncio.sleep(slot - now)

    async def record(self, info: RateLimitInfo) -> None:
        """Update the limiter with the latest rate limit payload."""

        async with self._lock:
            # Store a fresh copy to avoid mutating the caller's data.
            self._info = RateLimitInfo(limit=info.limit, remaining=info.remaining, reset_at=info.reset_at)

    async def reset(self) -> None:
        """Clear cached rate limit information after a failed request."""

        async with self._lock:
            self._info = None

    async def remaining(self) -> int | None:
        """Return the last known remaining budget, if any."""

        async with self._lock:
            return self._info.remaining if self._info else None


__all__ = ["RateLimiter"]
