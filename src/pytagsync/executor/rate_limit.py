"""Fixed-interval gate spacing consecutive remote creations."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from pytagsync.executor.retry import Sleep

logger = logging.getLogger(__name__)

__all__ = ["RateLimiter"]


class RateLimiter:
    """
    Enforces a minimum interval between calls.

    The first acquire() of a run passes immediately. Every later acquire()
    waits until ``interval_ms`` has elapsed since the previous one.

    Usage:
        limiter = RateLimiter(4000)
        for step in steps:
            await limiter.acquire()
            await create(step)
    """

    def __init__(
        self,
        interval_ms: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self._interval = interval_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self.waits: int = 0

    @property
    def interval_ms(self) -> int:
        return int(self._interval * 1000)

    def reset(self) -> None:
        """Forget the previous call; the next acquire() passes immediately."""
        self._last = None

    async def acquire(self) -> None:
        if self._last is not None and self._interval > 0:
            remaining = self._interval - (self._clock() - self._last)
            if remaining > 0:
                logger.debug(f"Rate limiting: waiting {remaining * 1000:.0f}ms before next creation")
                self.waits += 1
                await self._sleep(remaining)
        self._last = self._clock()
