"""Unit tests for the stale-tolerant cache.

Freshness, serve-stale on failure, fallback seeding and per-key refresh
serialization. No network, the clock is driven by hand.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock

from cryptoterm.services.cache import CacheEntry, SourceUnavailableError, StaleTolerantCache

from conftest import FakeClock


@pytest.fixture
def clock():
    return FakeClock(start=0.0)


@pytest.fixture
def cache(clock):
    return StaleTolerantCache(name="test-cache", clock=clock)


class TestCacheEntry:
    """Test entry age and freshness."""

    def test_fresh_inside_ttl(self):
        entry = CacheEntry(value=1, fetched_at=100.0, ttl=30)
        assert entry.age(110.0) == 10.0
        assert entry.is_fresh(129.9) is True

    def test_stale_at_ttl_boundary(self):
        entry = CacheEntry(value=1, fetched_at=100.0, ttl=30)
        assert entry.is_fresh(130.0) is False


class TestGetOrRefresh:
    """Test the get-or-refresh contract."""

    @pytest.mark.asyncio
    async def test_first_call_fetches_and_stores(self, cache, clock):
        fetch = AsyncMock(return_value=[1, 2, 3])

        value = await cache.get_or_refresh("market:top", 30, fetch)

        assert value == [1, 2, 3]
        fetch.assert_awaited_once()
        entry = cache.peek("market:top")
        assert entry.value == [1, 2, 3]
        assert entry.fetched_at == clock.now
        assert entry.ttl == 30

    @pytest.mark.asyncio
    async def test_fresh_entry_served_without_fetch(self, cache, clock):
        fetch = AsyncMock(return_value="v1")
        await cache.get_or_refresh("k", 30, fetch)

        clock.advance(29)
        value = await cache.get_or_refresh("k", 30, fetch)

        assert value == "v1"
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_refreshed(self, cache, clock):
        fetch = AsyncMock(side_effect=["v1", "v2"])
        await cache.get_or_refresh("k", 30, fetch)

        clock.advance(31)
        value = await cache.get_or_refresh("k", 30, fetch)

        assert value == "v2"
        assert cache.peek("k").fetched_at == 31

    @pytest.mark.asyncio
    async def test_failed_refresh_serves_stale_value(self, cache, clock):
        await cache.get_or_refresh("k", 30, AsyncMock(return_value="good"))
        clock.advance(60)

        failing = AsyncMock(side_effect=RuntimeError("upstream 500"))
        value = await cache.get_or_refresh("k", 30, failing)

        assert value == "good"
        # timestamp untouched so the next call retries
        assert cache.peek("k").fetched_at == 0.0

    @pytest.mark.asyncio
    async def test_stale_entry_retried_on_every_call(self, cache, clock):
        await cache.get_or_refresh("k", 30, AsyncMock(return_value="good"))
        clock.advance(60)

        failing = AsyncMock(side_effect=RuntimeError("down"))
        await cache.get_or_refresh("k", 30, failing)
        await cache.get_or_refresh("k", 30, failing)

        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_recovery_after_stale_period(self, cache, clock):
        await cache.get_or_refresh("k", 30, AsyncMock(return_value="old"))
        clock.advance(60)
        await cache.get_or_refresh("k", 30, AsyncMock(side_effect=RuntimeError("down")))

        value = await cache.get_or_refresh("k", 30, AsyncMock(return_value="new"))

        assert value == "new"
        assert cache.peek("k").fetched_at == 60

    @pytest.mark.asyncio
    async def test_no_prior_value_and_no_fallback_raises(self, cache):
        error = RuntimeError("timeout")

        with pytest.raises(SourceUnavailableError) as exc_info:
            await cache.get_or_refresh("k", 30, AsyncMock(side_effect=error))

        assert exc_info.value.key == "k"
        assert exc_info.value.cause is error
        assert cache.peek("k") is None

    @pytest.mark.asyncio
    async def test_fallback_seeded_when_never_fetched(self, cache, clock):
        fallback = Mock(return_value="synthetic")
        failing = AsyncMock(side_effect=RuntimeError("down"))

        value = await cache.get_or_refresh("k", 30, failing, fallback=fallback)

        assert value == "synthetic"
        entry = cache.peek("k")
        assert entry.value == "synthetic"
        assert entry.ttl == 30

        # seeded value is fresh, so the dead upstream is not hit again
        clock.advance(10)
        assert await cache.get_or_refresh("k", 30, failing, fallback=fallback) == "synthetic"
        assert failing.await_count == 1
        assert fallback.call_count == 1

    @pytest.mark.asyncio
    async def test_fallback_not_used_when_stale_value_exists(self, cache, clock):
        await cache.get_or_refresh("k", 30, AsyncMock(return_value="real"))
        clock.advance(60)
        fallback = Mock(return_value="synthetic")

        value = await cache.get_or_refresh(
            "k", 30, AsyncMock(side_effect=RuntimeError("down")), fallback=fallback
        )

        assert value == "real"
        fallback.assert_not_called()

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, cache, clock):
        await cache.get_or_refresh("a", 30, AsyncMock(return_value="A"))
        clock.advance(20)
        await cache.get_or_refresh("b", 5, AsyncMock(return_value="B"))

        assert sorted(cache.keys()) == ["a", "b"]
        assert cache.peek("a").fetched_at == 0.0
        assert cache.peek("b").fetched_at == 20


class TestConcurrentRefresh:
    """Test refresh serialization under concurrent callers."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, cache):
        calls = 0
        release = asyncio.Event()

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await release.wait()
            return calls

        first = asyncio.create_task(cache.get_or_refresh("k", 30, slow_fetch))
        second = asyncio.create_task(cache.get_or_refresh("k", 30, slow_fetch))
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second)

        assert results == [1, 1]
        assert calls == 1

    @pytest.mark.asyncio
    async def test_slow_key_does_not_block_other_keys(self, cache):
        release = asyncio.Event()

        async def blocked_fetch():
            await release.wait()
            return "slow"

        slow = asyncio.create_task(cache.get_or_refresh("slow", 30, blocked_fetch))
        await asyncio.sleep(0)

        fast = await asyncio.wait_for(
            cache.get_or_refresh("fast", 30, AsyncMock(return_value="fast")),
            timeout=1,
        )
        assert fast == "fast"
        assert not slow.done()

        release.set()
        assert await slow == "slow"
