"""Tests for the in-memory TTL cache store and its async wrapper."""

import asyncio
import re
import time

import pytest

from app.core.cache import CacheStore, MemoryCache, run_periodic_cleanup


class TestCacheStore:
    def test_set_and_get(self, store):
        store.set("key1", "value1")
        assert store.get("key1") == "value1"

    def test_missing_key_returns_none(self, store):
        assert store.get("nonexistent") is None

    def test_overwrite_value(self, store):
        store.set("key3", "old")
        store.set("key3", "new")
        assert store.get("key3") == "new"
        assert store.size() == 1

    def test_stores_any_type(self, store):
        store.set("dict", {"a": 1})
        store.set("list", [1, 2, 3])
        store.set("bool", True)
        assert store.get("dict") == {"a": 1}
        assert store.get("list") == [1, 2, 3]
        assert store.get("bool") is True

    def test_rejects_non_positive_max_size(self):
        with pytest.raises(ValueError):
            CacheStore(max_size=0)


class TestExpiry:
    def test_expired_key_is_evicted_on_get(self, store, clock):
        store.set("x", 1, ttl=10)
        clock.advance(11)
        assert store.get("x") is None
        assert store.has("x") is False
        assert store.size() == 0

    def test_entry_valid_exactly_at_ttl(self, store, clock):
        store.set("x", 1, ttl=10)
        clock.advance(10)
        assert store.get("x") == 1

    def test_has_evicts_expired_entry(self, store, clock):
        store.set("x", 1, ttl=5)
        clock.advance(6)
        assert store.has("x") is False
        assert "x" not in store.keys()

    def test_default_ttl_applies(self, clock):
        s = CacheStore(default_ttl=30, clock=clock)
        s.set("x", 1)
        clock.advance(29)
        assert s.get("x") == 1
        clock.advance(2)
        assert s.get("x") is None

    def test_overwrite_refreshes_ttl(self, store, clock):
        store.set("x", 1, ttl=10)
        clock.advance(8)
        store.set("x", 2, ttl=10)
        clock.advance(8)
        assert store.get("x") == 2

    def test_real_clock_scenario(self):
        s = CacheStore(default_ttl=0.1)
        s.set("x", 1)
        assert s.get("x") == 1
        time.sleep(0.15)
        assert s.get("x") is None
        assert s.size() == 0


class TestCapacityEviction:
    def test_oldest_inserted_is_evicted(self, clock):
        s = CacheStore(max_size=2, clock=clock)
        s.set("a", 1)
        s.set("b", 2)
        s.set("c", 3)
        assert s.get("a") is None
        assert s.get("b") == 2
        assert s.get("c") == 3

    def test_n_plus_one_inserts(self, clock):
        n = 5
        s = CacheStore(max_size=n, clock=clock)
        for i in range(1, n + 2):
            s.set(f"k{i}", i)
        assert s.get("k1") is None
        for i in range(2, n + 2):
            assert s.get(f"k{i}") == i

    def test_reads_do_not_protect_from_eviction(self, clock):
        # FIFO, not LRU
        s = CacheStore(max_size=2, clock=clock)
        s.set("a", 1)
        s.set("b", 2)
        s.get("a")
        s.set("c", 3)
        assert s.get("a") is None
        assert s.get("b") == 2

    def test_overwrite_does_not_evict(self, clock):
        s = CacheStore(max_size=2, clock=clock)
        s.set("a", 1)
        s.set("b", 2)
        s.set("a", 10)
        assert s.get("a") == 10
        assert s.get("b") == 2

    def test_overwrite_moves_key_to_back(self, clock):
        s = CacheStore(max_size=2, clock=clock)
        s.set("a", 1)
        s.set("b", 2)
        s.set("a", 10)
        s.set("c", 3)
        assert s.get("b") is None
        assert s.keys() == ["a", "c"]

    def test_per_call_max_size(self, clock):
        s = CacheStore(max_size=100, clock=clock)
        s.set("a", 1)
        s.set("b", 2)
        s.set("c", 3, max_size=2)
        assert s.keys() == ["b", "c"]


class TestInvalidation:
    def test_regex_invalidation(self, store):
        store.set("poll:1", 1)
        store.set("poll:2", 2)
        store.set("polls:abc", 3)
        assert store.invalidate("^poll:") == 2
        assert store.keys() == ["polls:abc"]

    def test_regex_matches_anywhere(self, store):
        store.set("poll:votes:1", 1)
        store.set("user:1", 2)
        store.invalidate("votes")
        assert store.keys() == ["user:1"]

    def test_invalid_regex_raises(self, store):
        store.set("poll:1", 1)
        with pytest.raises(re.error):
            store.invalidate("poll:(")
        assert store.get("poll:1") == 1

    def test_prefix_invalidation(self, store):
        store.set("poll:1", 1)
        store.set("polls:{}", 2)
        store.set("user:1", 3)
        assert store.invalidate_prefix("polls:") == 1
        assert store.keys() == ["poll:1", "user:1"]

    def test_prefix_is_literal(self, store):
        store.set("a.b", 1)
        store.set("axb", 2)
        store.invalidate_prefix("a.")
        assert store.keys() == ["axb"]

    def test_delete_and_clear(self, store):
        store.set("a", 1)
        store.set("b", 2)
        assert store.delete("a") is True
        assert store.delete("a") is False
        store.clear()
        assert store.size() == 0


class TestCleanup:
    def test_cleanup_removes_only_expired(self, store, clock):
        store.set("short", 1, ttl=5)
        store.set("long", 2, ttl=60)
        clock.advance(10)
        assert store.cleanup() == 1
        assert store.keys() == ["long"]

    def test_stats_tracks_hits_and_misses(self, store):
        store.set("a", 1)
        store.get("a")
        store.get("b")
        stats = store.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 50.0
        assert stats["size"] == 1

    @pytest.mark.asyncio
    async def test_periodic_cleanup_sweeps(self, store, clock):
        store.set("x", 1, ttl=1)
        clock.advance(5)
        task = asyncio.create_task(run_periodic_cleanup(store, interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        # The sweep removed it without anyone reading the key
        assert store.keys() == []


class TestMemoryCache:
    @pytest.mark.asyncio
    async def test_delegates_to_store(self, store):
        cache = MemoryCache(store)
        await cache.set("poll:1", {"id": "1"})
        assert await cache.get("poll:1") == {"id": "1"}
        assert await cache.invalidate_prefix("poll:") == 1
        assert await cache.get("poll:1") is None
        assert await cache.health_check() is True

    @pytest.mark.asyncio
    async def test_stats_share_redis_fields(self, store):
        cache = MemoryCache(store)
        await cache.set("poll:1", {"id": "1"})
        await cache.get("poll:1")
        stats = await cache.stats()
        assert stats["total_keys"] == 1
        assert stats["memory_usage"] == "n/a"
        assert stats["hit_rate"] == 100.0
        assert stats["max_size"] == 100

    @pytest.mark.asyncio
    async def test_start_cleanup_and_close(self, store, clock):
        cache = MemoryCache(store)
        await cache.set("x", 1, ttl=1)
        clock.advance(5)
        cache.start_cleanup(interval=0.01)
        await asyncio.sleep(0.05)
        assert store.size() == 0
        await cache.close()
        assert cache._cleanup_task is None
