"""
TTL cache tests - expiry, invalidation, diagnostics and the background sweeper.
"""

import threading
import time

import pytest

from recordvault.core.cache import CacheEntry, TTLCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(default_ttl=10, clock=clock)


class TestCacheBasics:
    """Test set/get/delete/clear."""

    def test_set_and_get(self, cache):
        cache.set("records", [1, 2, 3])
        assert cache.get("records") == [1, 2, 3]

    def test_miss_returns_none(self, cache):
        assert cache.get("absent") is None

    def test_delete(self, cache):
        cache.set("k", "v")
        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None

    def test_clear_resets_everything(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        cache.clear()
        stats = cache.get_stats()
        assert (stats.total_items, stats.total_hits, stats.total_misses) == (0, 0, 0)

    def test_overwrite_resets_hits(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.set("a", 2)
        assert cache.get_hot_data() == [("a", 0)]


class TestExpiry:
    """Test that stale values are never returned."""

    def test_value_valid_until_ttl(self, cache, clock):
        cache.set("k", "v", ttl=5)
        clock.advance(5)
        assert cache.get("k") == "v"

    def test_expired_value_absent_and_evicted(self, cache, clock):
        cache.set("k", "v", ttl=5)
        clock.advance(5.01)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_default_ttl_applies(self, cache, clock):
        cache.set("k", "v")
        clock.advance(11)
        assert cache.get("k") is None

    def test_expired_read_counts_as_miss(self, cache, clock):
        cache.set("k", "v", ttl=1)
        clock.advance(2)
        cache.get("k")
        assert cache.get_stats().total_misses == 1

    def test_cleanup_removes_only_expired(self, cache, clock):
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.advance(5)
        assert cache.cleanup() == 1
        assert cache.get("long") == 2
        assert len(cache) == 1

    def test_entry_expiry(self):
        entry = CacheEntry(value=None, created_at=0.0, ttl=1.0)
        assert not entry.is_expired(1.0)
        assert entry.is_expired(1.5)


class TestDiagnostics:
    """Test hit/miss statistics and hot keys."""

    def test_stats(self, cache):
        cache.set("a", {"x": 1})
        cache.get("a")
        cache.get("a")
        cache.get("missing")
        stats = cache.get_stats()
        assert stats.total_items == 1
        assert stats.total_hits == 2
        assert stats.total_misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.memory_usage > 0
        assert stats.to_dict()["total_hits"] == 2

    def test_hit_rate_zero_without_requests(self, cache):
        assert cache.get_stats().hit_rate == 0.0

    def test_hot_data_most_hit_first(self, cache):
        for key, hits in (("a", 1), ("b", 3), ("c", 2)):
            cache.set(key, key)
            for _ in range(hits):
                cache.get(key)
        assert cache.get_hot_data() == [("b", 3), ("c", 2), ("a", 1)]
        assert cache.get_hot_data(limit=1) == [("b", 3)]

    def test_memory_estimate_handles_unserializable_values(self, cache):
        cache.set("obj", object())
        assert cache.get_stats().memory_usage > 0


class TestSweeper:
    """Test the background expiry sweep."""

    def test_sweeper_evicts_expired_entries(self):
        cache = TTLCache(default_ttl=0.01)
        cache.set("k", "v")
        cache.start_sweeper(interval_sec=0.02)
        try:
            deadline = time.monotonic() + 2.0
            while len(cache) and time.monotonic() < deadline:
                time.sleep(0.01)
            assert len(cache) == 0
        finally:
            cache.stop_sweeper()
        assert not cache.sweeper_running

    def test_double_start_rejected(self):
        cache = TTLCache()
        cache.start_sweeper(interval_sec=10)
        try:
            with pytest.raises(RuntimeError):
                cache.start_sweeper(interval_sec=10)
        finally:
            cache.stop_sweeper()

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            TTLCache().start_sweeper(interval_sec=0)

    def test_stop_without_start_is_noop(self):
        TTLCache().stop_sweeper()


def test_concurrent_access_is_consistent():
    """Test that readers, writers and a sweep can run together without errors."""
    cache = TTLCache(default_ttl=0.001)
    errors = []

    def worker(n):
        try:
            for i in range(200):
                cache.set(f"k{n}-{i % 5}", i)
                cache.get(f"k{n}-{i % 5}")
                cache.cleanup()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    stats = cache.get_stats()
    assert stats.total_hits + stats.total_misses == 8 * 200
