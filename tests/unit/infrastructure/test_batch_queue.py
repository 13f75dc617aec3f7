import asyncio

import pytest

from geo_resolver.core.rate_limiting import DomainRateLimiter
from geo_resolver.infrastructure.http import BatchQueue, Priority, RequestConfig
from tests.factories.clock import settle

SLOW = "slow.example.com"
FAST = "fast.example.com"


class RecordingDispatch:
    """Dispatch stub that records the URL and simulated time of every call."""

    def __init__(self, clock, failing=()):
        self.clock = clock
        self.failing = set(failing)
        self.calls = []

    async def __call__(self, config):
        self.calls.append((config.url, self.clock()))
        if config.url in self.failing:
            raise RuntimeError(f"{config.url} failed")
        return {"url": config.url}

    @property
    def urls(self):
        return [url for url, _ in self.calls]


def _config(domain, path, priority=Priority.MEDIUM):
    return RequestConfig(url=f"https://{domain}/{path}", priority=priority)


@pytest.fixture
def limiter(clock):
    return DomainRateLimiter({SLOW: "2/second"}, clock=clock)


@pytest.mark.asyncio
async def test_requests_are_ordered_by_priority_then_arrival(clock, limiter):
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, clock=clock, sleep=clock.sleep)

    futures = [
        queue.enqueue(_config(FAST, "low", Priority.LOW)),
        queue.enqueue(_config(FAST, "medium-1")),
        queue.enqueue(_config(FAST, "high", Priority.HIGH)),
        queue.enqueue(_config(FAST, "medium-2")),
    ]

    assert [r.config.url.rsplit("/", 1)[1] for r in queue.pending()] == ["high", "medium-1", "medium-2", "low"]
    assert queue.is_processing is True

    results = await asyncio.gather(*futures)

    assert dispatch.urls == [
        f"https://{FAST}/high",
        f"https://{FAST}/medium-1",
        f"https://{FAST}/medium-2",
        f"https://{FAST}/low",
    ]
    assert results[0] == {"url": f"https://{FAST}/low"}
    assert len(queue) == 0
    await settle()
    assert queue.is_processing is False


@pytest.mark.asyncio
async def test_batches_are_limited_in_size(clock, limiter):
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, batch_size=2, debounce=0.1, clock=clock, sleep=clock.sleep)

    futures = [queue.enqueue(_config(FAST, str(i))) for i in range(5)]
    await asyncio.gather(*futures)

    # One debounce wait per batch of two.
    assert clock.sleeps == [0.1, 0.1, 0.1]
    assert len(dispatch.calls) == 5


@pytest.mark.asyncio
async def test_limited_domain_is_dispatched_with_spacing(clock, limiter):
    """Requests to a limited domain go out one at a time, window / requests apart."""
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, debounce=0.1, clock=clock, sleep=clock.sleep)

    futures = [queue.enqueue(_config(SLOW, str(i))) for i in range(4)]
    await asyncio.gather(*futures)

    assert dispatch.urls == [f"https://{SLOW}/{i}" for i in range(4)]
    assert clock.sleeps == [0.1, 0.5, 0.5, 0.5]
    times = [t for _, t in dispatch.calls]
    assert all(later - earlier >= 0.5 for earlier, later in zip(times, times[1:]))


@pytest.mark.asyncio
async def test_exhausted_domain_waits_for_window_reset(clock, limiter):
    assert limiter.try_consume(SLOW)
    assert limiter.try_consume(SLOW)
    window_reset_at = limiter.snapshot()[SLOW]["window_reset_at"]
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, debounce=0.1, clock=clock, sleep=clock.sleep)

    futures = [queue.enqueue(_config(SLOW, "a")), queue.enqueue(_config(SLOW, "b"))]
    await asyncio.gather(*futures)

    assert dispatch.urls == [f"https://{SLOW}/a", f"https://{SLOW}/b"]
    assert dispatch.calls[0][1] >= window_reset_at


@pytest.mark.asyncio
async def test_requeued_request_stays_ahead_of_later_arrivals(clock, limiter):
    """A request bounced by the rate limit goes back to the front of its tier."""
    assert limiter.try_consume(SLOW)
    assert limiter.try_consume(SLOW)
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, batch_size=1, clock=clock, sleep=clock.sleep)

    first = queue.enqueue(_config(SLOW, "first"))
    second = queue.enqueue(_config(SLOW, "second"))
    await asyncio.gather(first, second)

    assert dispatch.urls == [f"https://{SLOW}/first", f"https://{SLOW}/second"]


@pytest.mark.asyncio
async def test_domains_are_processed_independently(clock, limiter):
    assert limiter.try_consume(SLOW)
    assert limiter.try_consume(SLOW)
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, clock=clock, sleep=clock.sleep)

    slow = queue.enqueue(_config(SLOW, "a"))
    fast = queue.enqueue(_config(FAST, "b"))
    await asyncio.gather(slow, fast)

    assert dispatch.urls == [f"https://{FAST}/b", f"https://{SLOW}/a"]


@pytest.mark.asyncio
async def test_dispatch_failure_rejects_only_its_request(clock, limiter):
    dispatch = RecordingDispatch(clock, failing={f"https://{FAST}/bad"})
    queue = BatchQueue(dispatch, limiter, clock=clock, sleep=clock.sleep)

    good = queue.enqueue(_config(FAST, "good"))
    bad = queue.enqueue(_config(FAST, "bad"))
    results = await asyncio.gather(good, bad, return_exceptions=True)

    assert results[0] == {"url": f"https://{FAST}/good"}
    assert isinstance(results[1], RuntimeError)


@pytest.mark.asyncio
async def test_cancelled_caller_is_skipped(clock, limiter):
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, clock=clock, sleep=clock.sleep)

    abandoned = queue.enqueue(_config(FAST, "abandoned"))
    kept = queue.enqueue(_config(FAST, "kept"))
    abandoned.cancel()

    assert await kept == {"url": f"https://{FAST}/kept"}
    assert dispatch.urls == [f"https://{FAST}/kept"]


@pytest.mark.asyncio
async def test_aclose_cancels_pending_requests(clock, limiter):
    dispatch = RecordingDispatch(clock)
    queue = BatchQueue(dispatch, limiter, clock=clock, sleep=clock.sleep)
    future = queue.enqueue(_config(FAST, "a"))

    await queue.aclose()

    assert future.cancelled()
    assert len(queue) == 0
    assert queue.is_processing is False
    assert dispatch.calls == []
