"""
TTL Cache
Small in-memory cache with per-entry expiry and explicit invalidation.

Instances are injected into the services that use them; nothing here is
module-level state.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Optional


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A single cache entry with expiration"""
    value: Any
    expires_at: Optional[float] = None  # None = no expiration


@dataclass
class CacheStats:
    """Cache statistics"""
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "invalidations": self.invalidations,
            "expirations": self.expirations,
            "hit_rate": self.hit_rate,
        }


class TTLCache:
    """
    In-memory cache with TTL support.

    Example:
        cache = TTLCache(default_ttl=60)
        cache.set("patient-1", plans)
        cache.get("patient-1")
        cache.invalidate("patient-1")
    """

    def __init__(
        self,
        default_ttl: Optional[float] = 60.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()
        self.stats = CacheStats()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return default
            if entry.expires_at is not None and self._clock() >= entry.expires_at:
                del self._entries[key]
                self.stats.expirations += 1
                self.stats.misses += 1
                return default
            self.stats.hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                # Evict the entry closest to expiry
                oldest = min(
                    self._entries,
                    key=lambda k: self._entries[k].expires_at or float("inf")
                )
                del self._entries[oldest]
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any], ttl: Optional[float] = None) -> Any:
        """Return the cached value or load, store and return it"""
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            value = loader()
            self.set(key, value, ttl)
        return value

    def invalidate(self, key: Hashable) -> bool:
        """Drop a single key; returns whether it was present"""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self.stats.invalidations += 1
        if removed:
            logger.debug(f"Cache invalidated: {key}")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        return len(self._entries)
