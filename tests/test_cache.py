"""Tests for the LRU/TTL cache wrapper."""

from __future__ import annotations

from cachetools import LRUCache, TTLCache

from kafkaview.utils.cache import Cache


def test_lru_eviction():
    cache: Cache[str, int] = Cache(maxsize=2)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1  # touch "a" so "b" is least recent
    cache.set("c", 3)
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_ttl_selects_expiring_cache():
    assert isinstance(Cache(ttl_seconds=5)._cache, TTLCache)
    assert not isinstance(Cache(ttl_seconds=0)._cache, TTLCache)
    assert isinstance(Cache()._cache, LRUCache)


def test_clear():
    cache: Cache[str, int] = Cache()
    cache.set("a", 1)
    cache.clear()
    assert cache.get("a") is None
    assert len(cache) == 0


def test_values_snapshot():
    cache: Cache[str, int] = Cache(maxsize=2, ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    assert sorted(cache.values()) == [2, 3]
