"""
TTL cache store.

Entries are evicted lazily: a stale entry is dropped when it is read, never
by a background sweep. Stale-read-then-overwrite races are harmless since
every entry is an idempotent snapshot of a provider response.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional

import structlog

logger = structlog.get_logger()


@dataclass
class CacheEntry:
    """A cached payload and when it was fetched."""
    payload: Any
    fetched_at: float


class TTLCache:
    """
    Key -> CacheEntry map with a single time-to-live.

    Usage:
        cache = TTLCache(ttl_seconds=60, name="event_odds")
        cache.set(("nba", "abc123", "h2h"), payload)
        payload = cache.get(("nba", "abc123", "h2h"))  # None once stale
    """

    def __init__(
        self,
        ttl_seconds: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached payload, or None if absent or stale."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            self.evictions += 1
            self.misses += 1
            return None

        self.hits += 1
        return entry.payload

    def set(self, key: Hashable, payload: Any) -> None:
        self._entries[key] = CacheEntry(payload=payload, fetched_at=self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def get_metrics(self) -> dict:
        return {
            "name": self.name,
            "entries": len(self._entries),
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
