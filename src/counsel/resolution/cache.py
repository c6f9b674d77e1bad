"""
Bounded, time-expiring cache in front of resolution.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Counters for cache effectiveness."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_entries: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_entries": self.max_entries,
            "hit_rate": round(self.hit_rate, 4),
        }


class ResolutionCache:
    """
    LRU cache whose entries also expire after a fixed lifetime.

    Safe to share between threads. Cleared wholesale when the reference
    store is reloaded.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            ttl_seconds: Lifetime of an entry
            max_entries: Entries kept before the least recently used is evicted
            clock: Monotonic time source
        """
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            stored_at, value = entry
            if self._clock() - stored_at > self._ttl:
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> None:
        """
        Store a value, making room by dropping expired entries first and
        then the least recently used ones.
        """
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            if len(self._entries) > self._max_entries:
                self._remove_expired()
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.debug(f"Cleared {count} cached resolutions")

    def cleanup(self) -> int:
        """Remove expired entries and return how many were removed."""
        with self._lock:
            return self._remove_expired()

    def _remove_expired(self) -> int:
        now = self._clock()
        expired = [
            key for key, (stored_at, _) in self._entries.items()
            if now - stored_at > self._ttl
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
                max_entries=self._max_entries,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
