"""Admission control for outbound calls to the remote service.

Leaky-bucket scheduler (GCRA): each caller reserves the next free slot at the
moment it asks, so admission is strictly FIFO and nobody can be overtaken.
A caller whose slot lies beyond its deadline is refused with
``RateLimitedError`` instead of queueing, and the number of callers sleeping
on a reservation is bounded.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from timesync.connectors.errors import RateLimitedError

log = logging.getLogger(__name__)

# Float slack when comparing reservation times
_EPSILON = 1e-9


class RateLimiter:
    """
    Allows ``rate`` requests per second with bursts of up to ``burst``.

    ``clock`` and ``sleep`` are injectable so tests can drive time manually.
    """

    def __init__(
        self,
        rate: float,
        burst: Optional[int] = None,
        max_waiters: int = 500,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.burst = burst or max(1, int(rate))
        self.max_waiters = max_waiters
        self._interval = 1.0 / rate
        self._tolerance = (self.burst - 1) * self._interval
        self._clock = clock
        self._sleep = sleep
        self._tat = clock()  # theoretical arrival time of the next request
        self._waiting = 0

    @property
    def window(self) -> float:
        """Length of one admission window in seconds."""
        return self.burst * self._interval

    @property
    def waiting(self) -> int:
        return self._waiting

    def _reserve(self, timeout: float) -> float:
        now = self._clock()
        tat = max(self._tat, now)
        wait = tat - self._tolerance - now
        if wait < _EPSILON:
            wait = 0.0
        if wait > timeout:
            raise RateLimitedError(
                f"Admission refused: next slot in {wait:.3f}s exceeds deadline of {timeout:.3f}s",
                retry_after=max(wait, self.window),
            )
        if wait > 0 and self._waiting >= self.max_waiters:
            raise RateLimitedError(
                f"Admission refused: {self._waiting} callers already waiting",
                retry_after=self.window,
            )
        self._tat = tat + self._interval
        return wait

    async def acquire(self, timeout: float = 10.0) -> float:
        """Wait for admission; returns the time spent waiting."""
        wait = self._reserve(timeout)
        if wait <= 0:
            return 0.0
        self._waiting += 1
        try:
            log.trace(f"Rate limiter delaying request by {wait:.3f}s ({self._waiting} waiting)")
            await self._sleep(wait)
        finally:
            self._waiting -= 1
        return wait
