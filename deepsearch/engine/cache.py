"""TTL cache keyed by normalized query string."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from loguru import logger

T = TypeVar("T")


def normalize_query(query: str) -> str:
    return (query or "").strip().lower()


@dataclass
class CacheEntry(Generic[T]):
    """A cached value; `hits` is the only field mutated after insertion."""
    results: T
    timestamp: float
    hits: int = 0


class QueryCache(Generic[T]):
    """
    Insertion/expiry cache for per-query results.

    `get` returns a value while `now - timestamp <= ttl`, evicting expired
    entries on read. `set` evicts the oldest-by-timestamp entry when at
    capacity. Keys are trimmed and lowercased so "Foo " and "foo" share a
    slot. Single-owner; callers in a multi-threaded runtime must guard
    read-modify-write sequences.
    """

    def __init__(self,
                 max_size: int = 100,
                 ttl_seconds: float = 300,
                 name: str = "query",
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize query cache.

        Args:
            max_size: Maximum cache entries
            ttl_seconds: Time to live for cache entries
            name: Label used in logs
            clock: Time source in seconds
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, query: str) -> Optional[T]:
        """Cached value for `query`, or None on miss or expiry."""
        key = normalize_query(query)
        entry = self._entries.get(key)
        if entry is None:
            return None

        if not isinstance(entry, CacheEntry) or not isinstance(entry.timestamp, (int, float)):
            logger.warning(f"{self.name} cache: dropping malformed entry for '{key}'")
            del self._entries[key]
            return None

        if self._clock() - entry.timestamp > self.ttl_seconds:
            del self._entries[key]
            logger.trace(f"{self.name} cache: expired '{key}'")
            return None

        entry.hits += 1
        logger.trace(f"{self.name} cache: hit '{key}' ({entry.hits} hits)")
        return entry.results

    def set(self, query: str, results: T) -> None:
        key = normalize_query(query)
        if not key:
            return

        if len(self._entries) >= self.max_size and key not in self._entries:
            self._evict_oldest()

        self._entries[key] = CacheEntry(results=results, timestamp=self._clock())

    def _evict_oldest(self) -> None:
        oldest = min(
            self._entries,
            key=lambda k: getattr(self._entries[k], "timestamp", float("-inf")),
            default=None,
        )
        if oldest is not None:
            del self._entries[oldest]
            logger.trace(f"{self.name} cache: evicted oldest '{oldest}'")

    def prune_expired(self) -> int:
        """Remove every expired entry; returns the number removed."""
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if not isinstance(entry, CacheEntry) or now - entry.timestamp > self.ttl_seconds
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(f"{self.name} cache: pruned {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        size = len(self._entries)
        self._entries.clear()
        logger.debug(f"{self.name} cache: cleared {size} entries")

    def start_sweeper(self, interval_seconds: float = 60.0) -> None:
        """Prune expired entries every `interval_seconds` on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval_seconds))

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.prune_expired()

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        entries = [e for e in self._entries.values() if isinstance(e, CacheEntry)]
        total_hits = sum(e.hits for e in entries)
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "total_hits": total_hits,
            "expired": sum(1 for e in entries if now - e.timestamp > self.ttl_seconds),
            "hits_per_entry": round(total_hits / len(entries), 2) if entries else 0.0,
        }

    def __contains__(self, query: str) -> bool:
        return normalize_query(query) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
