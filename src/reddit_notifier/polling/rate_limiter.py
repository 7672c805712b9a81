"""
Rate limiter for the Reddit Notifier polling system.

This module bounds the number of Reddit API calls across every topic poller to
a fixed budget per rolling time window.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable

import structlog

from ..config import PollingConfig

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter shared by all topic pollers.

    At most ``max_permits`` calls to ``acquire`` return within any window of
    ``window_seconds``. Waiters hold the lock while sleeping, and asyncio
    locks wake waiters in arrival order, so permits are granted first come
    first served.
    """

    def __init__(
        self,
        max_permits: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the rate limiter.

        Args:
            max_permits: Permits granted per window
            window_seconds: Length of the rolling window
            clock: Monotonic clock in seconds
            sleep: Awaitable used while waiting for a permit
        """
        if max_permits < 1:
            raise ValueError("max_permits must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_permits = max_permits
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._grants: deque[float] = deque()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: PollingConfig) -> "RateLimiter":
        return cls(
            max_permits=config.rate_limit_per_minute,
            window_seconds=config.rate_limit_window_seconds,
        )

    def _prune(self, now: float) -> None:
        while self._grants and now - self._grants[0] >= self.window_seconds:
            self._grants.popleft()

    def available(self) -> int:
        """Permits that could be granted right now without waiting."""
        self._prune(self._clock())
        return self.max_permits - len(self._grants)

    async def acquire(self) -> None:
        """
        Wait until a permit is free, then take it.

        Cancelling a waiting caller takes no permit.
        """
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)

                if len(self._grants) < self.max_permits:
                    self._grants.append(now)
                    return

                wait = self._grants[0] + self.window_seconds - now
                logger.debug(
                    "Rate limit reached, waiting for permit",
                    wait_seconds=round(wait, 3),
                    max_permits=self.max_permits,
                )
                await self._sleep(wait)
