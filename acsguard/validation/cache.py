# -*- coding: utf-8 -*-
"""
Validation Cache - ACS Guard Domain Validation

Thread-safe in-process LRU cache with TTL used to memoize expensive validation
work: uniqueness lookups against the persistence gateway and resolved
rule lists per entity type. Hit/miss counters are updated under the
cache lock because bulk validation reads the cache from many workers.

Example:
    >>> cache = ValidationCache()
    >>> cache.set("unique_name_User_alice_", True, ttl_seconds=300)
    >>> cache.get("unique_name_User_alice_")
    True
    >>> cache.get("missing") is CACHE_MISS
    True
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from collections import Counter, OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Tuple

from acsguard.validation.metrics import (
    record_cache_hit,
    record_cache_miss,
    update_cache_entries,
)
from acsguard.validation.models import CacheStatistics

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 900.0
DEFAULT_MAX_ENTRIES = 10000


class _Miss:
    """Sentinel type for cache misses (cached values may be falsy)."""

    _instance: Optional[_Miss] = None

    def __new__(cls) -> _Miss:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "CACHE_MISS"

    def __bool__(self) -> bool:
        return False


CACHE_MISS = _Miss()


class ValidationCache:
    """In-memory LRU cache with TTL and hit/miss statistics.

    Attributes:
        _entries: Maps key to (value, expires_at) on the injected clock, in
            least-recently-used order.
        _expiry: Min-heap of (expires_at, key). Entries that were
            overwritten or removed are skipped when popped.
        _lock: Guards entries and counters.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        """Initialize the cache.

        Args:
            default_ttl_seconds: TTL used when ``set`` is called without one.
            clock: Monotonic time source, injectable for tests.
            max_entries: Size bound; the least recently used entry is
                evicted when a new key would exceed it.
        """
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self.max_entries = max_entries
        self._entries: OrderedDict[str, Tuple[Any, float]] = OrderedDict()
        self._expiry: List[Tuple[float, str]] = []
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._last_reset = datetime.now(timezone.utc)

    def _sweep_expired(self) -> int:
        """Drop entries whose TTL has passed. Caller holds the lock."""
        now = self._clock()
        swept = 0
        while self._expiry and self._expiry[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiry)
            item = self._entries.get(key)
            if item is not None and item[1] == expires_at:
                del self._entries[key]
                swept += 1
        self._expirations += swept

        if len(self._expiry) > 2 * len(self._entries) + 64:
            self._expiry = [(exp, k) for k, (_, exp) in self._entries.items()]
            heapq.heapify(self._expiry)
        return swept

    def get(self, key: str) -> Any:
        """Return the cached value or ``CACHE_MISS``.

        Expired entries are evicted on read and count as misses.
        """
        with self._lock:
            item = self._entries.get(key)
            if item is not None:
                value, expires_at = item
                if self._clock() < expires_at:
                    self._entries.move_to_end(key)
                    self._hits += 1
                    hit = True
                else:
                    del self._entries[key]
                    self._expirations += 1
                    self._misses += 1
                    hit = False
            else:
                self._misses += 1
                hit = False

        if hit:
            record_cache_hit()
            return value
        record_cache_miss()
        return CACHE_MISS

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store a value for ``ttl_seconds`` (default TTL if None).

        Expired entries are swept first; if the cache is still full the
        least recently used entries make room.
        """
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        evicted = 0
        with self._lock:
            self._sweep_expired()
            if key in self._entries:
                del self._entries[key]
            else:
                while len(self._entries) >= self.max_entries:
                    self._entries.popitem(last=False)
                    evicted += 1
                self._evictions += evicted
            expires_at = self._clock() + ttl
            self._entries[key] = (value, expires_at)
            heapq.heappush(self._expiry, (expires_at, key))
            size = len(self._entries)
        if evicted:
            logger.debug("Evicted %d least recently used cache entries", evicted)
        update_cache_entries(size)

    def remove(self, key: str) -> bool:
        """Remove one key. Returns True if it was present."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            size = len(self._entries)
        if removed:
            logger.debug("Removed validation cache entry: %s", key)
            update_cache_entries(size)
        return removed

    def remove_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``. Returns the count."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            size = len(self._entries)
        update_cache_entries(size)
        logger.debug(
            "Removed %d validation cache entries with prefix %s",
            len(doomed), prefix,
        )
        return len(doomed)

    def clear(self) -> None:
        """Drop all entries and reset entry statistics."""
        with self._lock:
            self._entries.clear()
            self._expiry.clear()
            self._evictions = 0
            self._expirations = 0
            self._last_reset = datetime.now(timezone.utc)
        update_cache_entries(0)
        logger.info("Validation cache cleared")

    def stats(self) -> CacheStatistics:
        """Snapshot of live entries, hit/miss counters and hit rate."""
        with self._lock:
            self._sweep_expired()
            by_type: Counter = Counter(
                type(value).__name__ for value, _ in self._entries.values()
            )
            lookups = self._hits + self._misses
            snapshot = CacheStatistics(
                entries=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                hit_rate=(self._hits / lookups) if lookups else 0.0,
                entries_by_type=dict(by_type),
                evictions=self._evictions,
                expirations=self._expirations,
                last_reset=self._last_reset,
            )
        update_cache_entries(snapshot.entries)
        return snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = [
    "CACHE_MISS",
    "DEFAULT_MAX_ENTRIES",
    "ValidationCache",
]
