"""TTL + tag-based caching service for Strapi responses."""

import logging
import math
import sys
import threading
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Iterable, Optional

from ..config import get_settings

logger = logging.getLogger(__name__)

MIN_TTL_MS = 1000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def _clamp_ttl(ttl_ms: float) -> float:
    # max() passes NaN through
    if math.isnan(ttl_ms):
        return MIN_TTL_MS
    return max(ttl_ms, MIN_TTL_MS)


def _clamp_capacity(max_entries: float) -> int:
    if math.isnan(max_entries):
        return 1
    if math.isinf(max_entries):
        return sys.maxsize if max_entries > 0 else 1
    return max(int(max_entries), 1)


@dataclass
class CacheEntry:
    """A single cache entry with absolute expiry and invalidation tags."""
    value: Any
    expires_at: float  # ms, same clock as the owning cache
    tags: frozenset[str] = field(default_factory=frozenset)


class TTLCache:
    """In-memory cache with TTL expiry, entry cap and tag invalidation.

    Entries expire lazily: an expired entry is dropped the next time it is
    read. When the entry cap is exceeded the oldest-inserted entries are
    evicted first, whether or not they have expired. Reads do not refresh
    an entry's position.
    """

    def __init__(
        self,
        default_ttl_ms: float = 300_000,
        max_entries: int = 256,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._default_ttl_ms = _clamp_ttl(default_ttl_ms)
        self._max_entries = _clamp_capacity(max_entries)
        self._clock = clock or _monotonic_ms
        self._cache: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def default_ttl_ms(self) -> float:
        return self._default_ttl_ms

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get(self, key: str) -> Optional[Any]:
        """Get cached value if present and not expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.expires_at <= self._clock():
                # Expired
                del self._cache[key]
                self._misses += 1
                return None

            self._hits += 1
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl_ms: Optional[float] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> None:
        """Store a value, replacing any previous entry and its tags."""
        ttl = self._default_ttl_ms if ttl_ms is None else ttl_ms
        entry = CacheEntry(
            value=value,
            expires_at=self._clock() + _clamp_ttl(ttl),
            tags=frozenset(tags or ()),
        )
        with self._lock:
            self._cache[key] = entry
            self._trim()

    def delete(self, key: str) -> None:
        """Remove a cache entry if present."""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()

    def invalidate_tag(self, tag: str) -> int:
        """Remove every entry carrying ``tag``. Returns the number removed."""
        with self._lock:
            doomed = [key for key, entry in self._cache.items() if tag in entry.tags]
            for key in doomed:
                del self._cache[key]

        if doomed:
            logger.debug("Invalidated %d cache entries tagged %r", len(doomed), tag)
        return len(doomed)

    def stats(self) -> dict:
        """Counters and configuration snapshot."""
        with self._lock:
            return {
                "size": len(self._cache),
                "maxEntries": self._max_entries,
                "defaultTtlMs": self._default_ttl_ms,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _trim(self) -> None:
        # Caller holds the lock. Dicts iterate in insertion order.
        overflow = len(self._cache) - self._max_entries
        if overflow <= 0:
            return
        for key in list(self._cache)[:overflow]:
            del self._cache[key]
        self._evictions += overflow
        logger.debug("Evicted %d oldest cache entries", overflow)


@lru_cache()
def get_strapi_cache() -> TTLCache:
    """Get the process-wide Strapi response cache."""
    settings = get_settings()
    return TTLCache(
        default_ttl_ms=settings.strapi_cache_ttl_ms,
        max_entries=settings.strapi_cache_max_entries,
    )


def invalidate_strapi_cache_by_tag(tag: str) -> int:
    """Drop every cached Strapi response tagged with ``tag``."""
    return get_strapi_cache().invalidate_tag(tag)
