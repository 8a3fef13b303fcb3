import asyncio

import pytest

from timesync.connectors.errors import RateLimitedError
from timesync.connectors.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.clock.now += delay


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)


@pytest.mark.asyncio
async def test_burst_is_admitted_without_waiting(clock, sleep):
    limiter = RateLimiter(50, clock=clock, sleep=sleep)
    for _ in range(50):
        assert await limiter.acquire() == 0.0
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_requests_beyond_the_burst_are_spaced_at_the_rate():
    clock = FakeClock()
    limiter = RateLimiter(10, burst=2, clock=clock, sleep=RecordingSleep(clock))
    waits = [limiter._reserve(timeout=10.0) for _ in range(5)]
    assert waits == pytest.approx([0.0, 0.0, 0.1, 0.2, 0.3])


@pytest.mark.asyncio
async def test_tokens_refill_over_time(clock, sleep):
    limiter = RateLimiter(10, burst=1, clock=clock, sleep=sleep)
    assert await limiter.acquire() == 0.0
    clock.now += 0.1
    assert await limiter.acquire() == 0.0
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_admission_order_is_fifo(clock):
    gate = asyncio.Event()
    order = []

    async def blocking_sleep(delay):
        await gate.wait()

    limiter = RateLimiter(1, burst=1, clock=clock, sleep=blocking_sleep)

    async def caller(name):
        waited = await limiter.acquire(timeout=10.0)
        order.append((name, waited))

    await caller("first")
    tasks = [asyncio.create_task(caller(name)) for name in ("second", "third", "fourth")]
    await asyncio.sleep(0)
    assert limiter.waiting == 3
    gate.set()
    await asyncio.gather(*tasks)

    # Each caller was handed the next slot at the moment it asked
    assert [name for name, _ in order] == ["first", "second", "third", "fourth"]
    assert [waited for _, waited in order] == pytest.approx([0.0, 1.0, 2.0, 3.0])
    assert limiter.waiting == 0


@pytest.mark.asyncio
async def test_refuses_when_slot_is_beyond_deadline(clock, sleep):
    limiter = RateLimiter(1, burst=1, clock=clock, sleep=sleep)
    await limiter.acquire()
    with pytest.raises(RateLimitedError) as exc_info:
        await limiter.acquire(timeout=0.5)
    assert exc_info.value.retry_after >= limiter.window
    assert exc_info.value.retryable is False
    # A refused caller does not consume a slot
    clock.now += 1.0
    assert await limiter.acquire(timeout=0.0) == 0.0


@pytest.mark.asyncio
async def test_waiter_queue_is_bounded(clock):
    gate = asyncio.Event()

    async def blocking_sleep(delay):
        await gate.wait()

    limiter = RateLimiter(1, burst=1, max_waiters=1, clock=clock, sleep=blocking_sleep)
    await limiter.acquire()
    waiting = asyncio.create_task(limiter.acquire(timeout=10.0))
    await asyncio.sleep(0)
    assert limiter.waiting == 1

    with pytest.raises(RateLimitedError):
        await limiter.acquire(timeout=10.0)

    gate.set()
    assert await waiting == pytest.approx(1.0)


def test_window_covers_one_burst():
    limiter = RateLimiter(50)
    assert limiter.burst == 50
    assert limiter.window == pytest.approx(1.0)


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        RateLimiter(0)
