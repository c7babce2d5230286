"""In-memory caches for entity search results and overview sessions.

Thin wrapper over :mod:`cachetools`: an LRU cache, optionally with a
time-to-live so discovered accounts are refreshed periodically. Callers only
see ``get``/``set``/``values``/``clear``.
"""

from __future__ import annotations

from collections.abc import Hashable
from typing import Generic, List, Optional, TypeVar

from cachetools import LRUCache, TTLCache  # type: ignore[import-untyped]

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class Cache(Generic[K, V]):
    """LRU cache with optional expiry.

    Parameters
    ----------
    maxsize: int
        Maximum number of entries to retain. When the cache is full, the
        least-recently-used entry is discarded.
    ttl_seconds: Optional[float]
        Entry lifetime. ``None`` or a non-positive value keeps entries until
        they are evicted.
    """

    def __init__(self, maxsize: int = 256, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None and ttl_seconds > 0:
            self._cache: LRUCache[K, V] = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        else:
            self._cache = LRUCache(maxsize=maxsize)

    def get(self, key: K) -> Optional[V]:
        """Return value for `key` or None if missing or expired."""
        return self._cache.get(key)

    def set(self, key: K, value: V) -> None:
        """Insert or update `key` with `value`."""
        self._cache[key] = value

    def values(self) -> List[V]:
        """Snapshot of the live values."""
        return list(self._cache.values())

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
