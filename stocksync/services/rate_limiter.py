# stocksync/services/rate_limiter.py
"""
Token-bucket gate in front of every outbound platform call.

Buckets are keyed per platform. A caller that finds the bucket empty waits
one fixed interval and tries once more before giving up with
RateLimitExceeded, which the retry policy treats as transient.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Tuple

from stocksync.core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)


class BucketStore(ABC):
    """Backing counters for the limiter. Swap for a shared store when running multiple instances."""

    @abstractmethod
    async def take(self, key: str, points: int, duration: float, now: float) -> bool:
        """Consume one point from ``key`` if available."""
        pass

    @abstractmethod
    async def remaining(self, key: str, points: int, duration: float, now: float) -> int:
        pass


class InMemoryBucketStore(BucketStore):
    """Fixed-window counters: the full budget is restored every ``duration`` seconds."""

    def __init__(self):
        self._windows: Dict[str, Tuple[float, int]] = {}

    def _window(self, key, duration, now):
        start, used = self._windows.get(key, (now, 0))
        if now - start >= duration:
            start, used = now, 0
        return start, used

    async def take(self, key, points, duration, now):
        start, used = self._window(key, duration, now)
        if used >= points:
            self._windows[key] = (start, used)
            return False
        self._windows[key] = (start, used + 1)
        return True

    async def remaining(self, key, points, duration, now):
        _, used = self._window(key, duration, now)
        return max(0, points - used)


class TokenBucketRateLimiter:

    def __init__(
        self,
        points: int = 2,
        duration: float = 1.0,
        store: Optional[BucketStore] = None,
        wait_interval: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if points < 1:
            raise ValueError("points must be at least 1")
        if duration <= 0:
            raise ValueError("duration must be positive")
        self.points = points
        self.duration = duration
        self.store = store or InMemoryBucketStore()
        self.wait_interval = wait_interval
        self._sleep = sleep
        self._clock = clock
        self.wait_count = 0

    async def consume(self, key: str) -> None:
        if await self.store.take(key, self.points, self.duration, self._clock()):
            return

        self.wait_count += 1
        logger.debug(f"Rate limit bucket '{key}' empty, waiting {self.wait_interval}s")
        await self._sleep(self.wait_interval)

        if await self.store.take(key, self.points, self.duration, self._clock()):
            return

        logger.warning(f"Rate limit bucket '{key}' still empty after waiting")
        raise RateLimitExceeded(f"Local rate limit exceeded for {key}", platform=key)

    async def remaining(self, key: str) -> int:
        return await self.store.remaining(key, self.points, self.duration, self._clock())
