"""
Unit tests for the TTL cache, its sweeper and the read-through helper.
"""
import asyncio

import pytest

from app.services.cache import (
    DEFAULT_TTL_SECONDS,
    CacheKeys,
    CacheSweeper,
    TTLCache,
    cached,
)


class TestExpiry:
    """Lazy expiry on get/has."""

    def test_value_live_just_before_ttl(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=10)
        clock.advance(9.999)
        assert cache.get("k") == "v"
        assert cache.has("k")

    def test_value_absent_just_after_ttl(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=10)
        clock.advance(10.001)
        assert cache.get("k") is None

    def test_entry_at_exact_ttl_is_still_live(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=10)
        clock.advance(10)
        assert cache.has("k")

    def test_expired_get_evicts(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=1)
        clock.advance(2)
        assert len(cache) == 1
        cache.get("k")
        assert len(cache) == 0

    def test_expired_has_evicts(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=1)
        clock.advance(2)
        assert not cache.has("k")
        assert len(cache) == 0

    def test_default_ttl_is_five_minutes(self, clock):
        cache = TTLCache(clock=clock)
        assert cache.default_ttl == DEFAULT_TTL_SECONDS == 300
        cache.set("k", "v")
        clock.advance(299)
        assert cache.has("k")
        clock.advance(2)
        assert not cache.has("k")

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_non_positive_ttl_is_already_expired(self, clock, ttl):
        cache = TTLCache(clock=clock)
        cache.set("k", "v", ttl=ttl)
        assert cache.get("k") is None
        assert not cache.has("k")

    def test_get_default_for_missing_key(self):
        cache = TTLCache()
        sentinel = object()
        assert cache.get("nope", sentinel) is sentinel

    def test_falsy_values_are_cached(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("empty", [])
        assert cache.has("empty")
        assert cache.get("empty", "missing") == []


class TestMutation:
    def test_overwrite_last_write_wins_and_resets_ttl(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("k", "v1", ttl=10)
        clock.advance(8)
        cache.set("k", "v2", ttl=10)
        clock.advance(8)
        assert cache.get("k") == "v2"

    def test_delete_is_unconditional(self):
        cache = TTLCache()
        cache.set("k", 1)
        cache.delete("k")
        cache.delete("k")
        cache.delete("never-set")
        assert not cache.has("k")

    def test_clear(self):
        cache = TTLCache()
        for i in range(5):
            cache.set(f"k{i}", i)
        cache.clear()
        assert len(cache) == 0


class TestSweep:
    def test_sweep_evicts_only_expired(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("short1", 1, ttl=1)
        cache.set("short2", 2, ttl=1)
        cache.set("long", 3, ttl=100)
        clock.advance(5)

        assert cache.sweep() == 2
        assert len(cache) == 1
        assert cache.get("long") == 3

    def test_sweep_on_empty_cache(self):
        assert TTLCache().sweep() == 0

    async def test_sweeper_evicts_without_reads(self, clock):
        cache = TTLCache(clock=clock)
        for i in range(10):
            cache.set(f"k{i}", i, ttl=1)
        clock.advance(2)

        sweeper = CacheSweeper(cache, interval=0.01)
        sweeper.start()
        try:
            await asyncio.sleep(0.1)
            # len() does not trigger lazy expiry, so this is the sweeper's work
            assert len(cache) == 0
        finally:
            await sweeper.stop()

    async def test_sweeper_start_stop_is_deterministic(self):
        sweeper = CacheSweeper(TTLCache(), interval=60)
        assert not sweeper.running
        sweeper.start()
        sweeper.start()  # second start is a no-op
        assert sweeper.running
        await sweeper.stop()
        assert not sweeper.running
        await sweeper.stop()

    async def test_stop_does_not_swallow_callers_cancellation(self):
        sweeper = CacheSweeper(TTLCache(), interval=60)
        sweeper.start()
        stopping = asyncio.create_task(sweeper.stop())
        await asyncio.sleep(0)
        stopping.cancel()
        with pytest.raises(asyncio.CancelledError):
            await stopping
        assert not sweeper.running


class TestReadThrough:
    async def test_loader_runs_once_while_fresh(self, clock):
        cache = TTLCache(clock=clock)
        calls = []

        async def loader():
            calls.append(1)
            return ["cuisine"]

        assert await cached(cache, "cuisines", loader) == ["cuisine"]
        assert await cached(cache, "cuisines", loader) == ["cuisine"]
        assert len(calls) == 1

        clock.advance(DEFAULT_TTL_SECONDS + 1)
        await cached(cache, "cuisines", loader)
        assert len(calls) == 2

    async def test_custom_ttl(self, clock):
        cache = TTLCache(clock=clock)

        async def loader():
            return "x"

        await cached(cache, "k", loader, ttl=600)
        clock.advance(500)
        assert cache.has("k")

    async def test_failed_load_is_not_cached(self):
        cache = TTLCache()

        async def loader():
            raise RuntimeError("store down")

        with pytest.raises(RuntimeError):
            await cached(cache, "k", loader)
        assert not cache.has("k")


class TestCacheKeys:
    def test_key_convention(self):
        assert CacheKeys.CUISINES == "cuisines"
        assert CacheKeys.restaurants("blr") == "restaurants_blr"
        assert CacheKeys.restaurant_details("r1") == "restaurant_r1"
        assert CacheKeys.menu_items("r1") == "menu_r1"
