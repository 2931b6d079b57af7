"""Short-TTL memoization of recommendation results."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    stored_at: float  # seconds, from the cache clock


class ResultCache(Generic[T]):
    """
    Key -> value cache with lazy expiry.

    Entries older than `ttl_ms` are dropped on the next lookup of that key
    or on the next write; there is no background eviction. `clear()` bumps
    the generation, so a value computed before the clear can be refused by
    passing the generation read beforehand to `set()`.
    """

    def __init__(self, ttl_ms: int = 300_000, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be > 0, got {ttl_ms}")
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def _is_fresh(self, entry: CacheEntry[T], now: float) -> bool:
        return (now - entry.stored_at) * 1000 < self.ttl_ms

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(entry, self._clock()):
                self._hits += 1
                return entry.value
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return None

    def set(self, key: str, value: T, generation: int | None = None) -> bool:
        """Store `value`; returns False when `generation` is no longer current."""
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if not self._is_fresh(entry, now)]
            for k in expired:
                del self._entries[k]
            self._entries[key] = CacheEntry(value=value, stored_at=now)
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "ttl_ms": self.ttl_ms,
                "keys": list(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }
