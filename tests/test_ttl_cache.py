import asyncio

import pytest

from campus_curator.services.ttl_cache import TTLCache
from tests.conftest import FakeClock


def test_entry_expires_on_cache_clock():
    clock = FakeClock()
    cache = TTLCache(default_ttl=30, clock=clock)
    cache.set("k", "v")

    clock.advance(29.9)
    assert cache.get("k") == "v"

    clock.advance(0.1)
    assert cache.get("k") is None
    assert not cache.has("k")


async def test_real_sleep_past_ttl_is_a_miss():
    cache = TTLCache()
    cache.set("k", "v", ttl=0.010)
    await asyncio.sleep(0.020)
    assert cache.get("k", default="miss") == "miss"


async def test_get_or_set_computes_once():
    cache = TTLCache(clock=FakeClock())
    calls = []

    async def compute():
        calls.append(1)
        return {"items": [1, 2]}

    first = await cache.get_or_set("feed:u1:chronological:initial", compute, ttl=120)
    second = await cache.get_or_set("feed:u1:chronological:initial", compute, ttl=120)

    assert first == second == {"items": [1, 2]}
    assert len(calls) == 1
    assert cache.get_stats()["hits"] == 1


async def test_failed_compute_is_not_cached():
    cache = TTLCache(clock=FakeClock())

    async def boom():
        raise RuntimeError("store down")

    with pytest.raises(RuntimeError):
        await cache.get_or_set("trending:24h:20", boom)
    assert not cache.has("trending:24h:20")

    value = await cache.get_or_set("trending:24h:20", lambda: ["ok"])
    assert value == ["ok"]


def test_invalidate_pattern_and_cleanup():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("feed:alice:mixed:initial", 1, ttl=10)
    cache.set("feed:alice:engagement:initial", 2, ttl=10)
    cache.set("feed:bob:mixed:initial", 3, ttl=100)

    assert cache.invalidate_pattern("feed:alice:") == 2
    assert cache.get("feed:bob:mixed:initial") == 3

    cache.set("short", 4, ttl=1)
    clock.advance(5)
    assert cache.cleanup() == 1
    assert cache.get_stats()["size"] == 1


def test_key_builders():
    assert TTLCache.feed_key("u1", "mixed") == "feed:u1:mixed:initial"
    assert TTLCache.feed_key("u1", "mixed", "2026-03-02T10:00:00.000000Z") == "feed:u1:mixed:2026-03-02T10:00:00.000000Z"
    assert TTLCache.feed_key("u1", "mixed", None, 10) == "feed:u1:mixed:initial:10:g1f1"
    assert TTLCache.feed_key("u1", "mixed", None, 10, include_groups=False) == "feed:u1:mixed:initial:10:g0f1"
    assert TTLCache.trending_key(24, 20) == "trending:24h:20"
    assert TTLCache.group_feed_key("g1") == "group_feed:g1:initial"
    assert TTLCache.post_engagement_key(7) == "post_engagement:7"


async def test_sweeper_purges_expired_entries():
    cache = TTLCache(sweep_interval=0.01)
    cache.set("a", 1, ttl=0.005)
    cache.start_sweeper()
    try:
        await asyncio.sleep(0.05)
        assert cache.get_stats()["size"] == 0
    finally:
        await cache.stop_sweeper()
