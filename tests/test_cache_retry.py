"""Tests for the TTL cache and retry policy."""

import asyncio

import pytest

from sharpscan.errors import ProviderError, RateLimitedError
from sharpscan.utils.cache import TTLCache
from sharpscan.utils.retry import RetryPolicy


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestTTLCache:
    """Tests for lazy TTL eviction."""

    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, name="odds", clock=clock)
        cache.set(("nfl", "g1", "h2h"), {"id": "g1"})

        clock.now += 59.9
        assert cache.get(("nfl", "g1", "h2h")) == {"id": "g1"}
        assert cache.hits == 1

    def test_stale_entry_evicted_on_read(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("k", [1, 2])

        clock.now += 60
        assert cache.get("k") is None
        assert len(cache) == 0
        assert cache.evictions == 1

    def test_overwrite_refreshes_age(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("k", "old")
        clock.now += 8
        cache.set("k", "new")
        clock.now += 8

        assert cache.get("k") == "new"

    def test_metrics(self):
        cache = TTLCache(ttl_seconds=5, name="events", clock=FakeClock())
        cache.get("missing")

        metrics = cache.get_metrics()
        assert metrics["name"] == "events"
        assert metrics["misses"] == 1
        assert metrics["entries"] == 0


class TestRetryPolicy:
    """Tests for bounded backoff."""

    def test_succeeds_after_rate_limits(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, base_delay=0.4, jitter=0, sleep=sleep)
        calls = []

        async def fn():
            calls.append(1)
            if len(calls) < 3:
                raise RateLimitedError("slow down", status=429)
            return "ok"

        assert asyncio.run(policy.run(fn, label="nfl h2h")) == "ok"
        assert len(calls) == 3
        assert sleep.calls == pytest.approx([0.4, 0.8])

    def test_exhaustion_reraises_after_max_attempts(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, sleep=sleep)
        calls = []

        async def fn():
            calls.append(1)
            raise RateLimitedError("slow down", status=429)

        with pytest.raises(RateLimitedError):
            asyncio.run(policy.run(fn))
        assert len(calls) == 3
        assert len(sleep.calls) == 2

    def test_non_retryable_error_raised_immediately(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(sleep=sleep)
        calls = []

        async def fn():
            calls.append(1)
            raise ProviderError("bad gateway", status=502)

        with pytest.raises(ProviderError):
            asyncio.run(policy.run(fn))
        assert len(calls) == 1
        assert sleep.calls == []

    def test_backoff_jitter_bounds(self):
        policy = RetryPolicy(base_delay=0.4, jitter=0.12)

        for attempt in range(3):
            delay = policy.backoff(attempt)
            assert 0.4 * 2 ** attempt <= delay <= 0.4 * 2 ** attempt + 0.12
