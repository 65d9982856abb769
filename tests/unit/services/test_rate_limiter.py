import pytest

from stocksync.core.exceptions import RateLimitExceeded
from stocksync.services.rate_limiter import InMemoryBucketStore, TokenBucketRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.mark.asyncio
async def test_points_plus_one_request_waits_once(clock):
    """Two points per second: the third request in the window sleeps 0.5s and then fails or proceeds"""
    limiter = TokenBucketRateLimiter(points=2, duration=1.0, wait_interval=0.5, sleep=clock.sleep, clock=clock)

    await limiter.consume("NAVER")
    await limiter.consume("NAVER")
    assert limiter.wait_count == 0

    # Window not yet over after one wait: surfaces the rate-limit error
    with pytest.raises(RateLimitExceeded):
        await limiter.consume("NAVER")
    assert limiter.wait_count == 1
    assert clock.sleeps == [0.5]


@pytest.mark.asyncio
async def test_wait_cycle_succeeds_when_window_rolls_over(clock):
    limiter = TokenBucketRateLimiter(points=2, duration=1.0, wait_interval=0.5, sleep=clock.sleep, clock=clock)

    await limiter.consume("NAVER")
    clock.now += 0.6
    await limiter.consume("NAVER")

    # Third call waits 0.5s, crossing the 1s window boundary
    await limiter.consume("NAVER")
    assert limiter.wait_count == 1
    assert clock.sleeps == [0.5]


@pytest.mark.asyncio
async def test_buckets_are_keyed_per_platform(clock):
    limiter = TokenBucketRateLimiter(points=1, duration=1.0, sleep=clock.sleep, clock=clock)

    await limiter.consume("NAVER")
    await limiter.consume("SHOPIFY")

    assert limiter.wait_count == 0
    assert await limiter.remaining("NAVER") == 0
    assert await limiter.remaining("SHOPIFY") == 0
    assert await limiter.remaining("OTHER") == 1


@pytest.mark.asyncio
async def test_remaining_restores_after_duration(clock):
    limiter = TokenBucketRateLimiter(points=3, duration=2.0, sleep=clock.sleep, clock=clock)
    await limiter.consume("NAVER")
    assert await limiter.remaining("NAVER") == 2

    clock.now += 2.0
    assert await limiter.remaining("NAVER") == 3


@pytest.mark.asyncio
async def test_bucket_store_is_pluggable(clock):
    store = InMemoryBucketStore()
    first = TokenBucketRateLimiter(points=1, duration=1.0, store=store, sleep=clock.sleep, clock=clock)
    second = TokenBucketRateLimiter(points=1, duration=1.0, store=store, sleep=clock.sleep, clock=clock)

    await first.consume("NAVER")
    with pytest.raises(RateLimitExceeded):
        await second.consume("NAVER")


def test_invalid_configuration_rejected():
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(points=0)
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(duration=0)
