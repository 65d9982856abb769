# stocksync/services/retry.py
"""
Bounded retry for a single remote operation.

Only transient failures (timeouts, 5xx, rate-limit rejections) are retried,
with capped exponential backoff plus jitter. Anything else propagates on the
first attempt. When attempts run out the last error is re-raised with its
``attempts`` attribute set.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from stocksync.core.exceptions import SyncEngineError, is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    value: T
    attempts: int


class RetryPolicy:

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 5.0,
        jitter: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, **overrides) -> "RetryPolicy":
        params = dict(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
            jitter=settings.RETRY_JITTER,
        )
        params.update(overrides)
        return cls(**params)

    def _retrying(self) -> AsyncRetrying:
        wait = wait_exponential(multiplier=self.base_delay, min=self.base_delay, max=self.max_delay)
        if self.jitter:
            wait = wait + wait_random(0, self.jitter)
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait,
            retry=retry_if_exception(is_transient),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> RetryResult[T]:
        retrying = self._retrying()
        try:
            async for attempt in retrying:
                with attempt:
                    value = await fn(*args, **kwargs)
        except SyncEngineError as e:
            attempts = retrying.statistics.get("attempt_number", 1)
            e.attempts = attempts
            if e.transient:
                logger.error(f"Giving up after {attempts} attempts: {e.message}")
            raise
        return RetryResult(value=value, attempts=retrying.statistics.get("attempt_number", 1))

    async def run(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        result = await self.call(fn, *args, **kwargs)
        return result.value
