"""
Result Cache
============

Thread-safe bounded store of encoded results.

Design Rules:
    - Fixed capacity (evicts the oldest insertion when full)
    - FIFO, not LRU: reads never change eviction order
    - Each key appears once in the insertion order
    - The lock covers a single lookup or store, never an encode
    - Exposes minimal metrics for observability
"""

import logging
import threading
from collections import OrderedDict
from typing import Generic, Hashable, Optional, TypeVar


logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class ResultCache(Generic[K]):
    """
    Bounded FIFO cache of encoded bytes.

    Writing an existing key replaces its value and moves it to the newest
    position, so it counts as a fresh insertion.

    Attributes:
        capacity: Maximum number of entries
        evictions: Number of entries evicted due to capacity

    Example:
        cache = ResultCache(capacity=10)
        cache.put(key, video)
        cached = cache.get(key)
    """

    def __init__(self, capacity: int = 10) -> None:
        """
        Initialize result cache.

        Args:
            capacity: Maximum entries. Must be >= 1.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._entries: "OrderedDict[K, bytes]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits: int = 0
        self._misses: int = 0
        self._evictions: int = 0

    @property
    def capacity(self) -> int:
        """Maximum number of entries."""
        return self._capacity

    @property
    def evictions(self) -> int:
        """Number of entries evicted due to capacity."""
        return self._evictions

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: K) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: K) -> Optional[bytes]:
        """
        Look up a cached result.

        Returns:
            Cached bytes, or None if absent or evicted.
        """
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
            return value

    def put(self, key: K, value: bytes) -> None:
        """
        Store a result, evicting the oldest entry if the cache is full.

        Args:
            key: Result fingerprint
            value: Encoded bytes
        """
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Cache full, evicted oldest entry {evicted}")
            self._entries[key] = value

    def clear(self) -> int:
        """
        Remove all entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
            return cleared

    def metrics(self) -> dict:
        """
        Get cache metrics for observability.

        Returns:
            Dict with size, capacity, hits, misses, evictions, bytes
        """
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self._capacity,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "bytes": sum(len(value) for value in self._entries.values()),
            }
