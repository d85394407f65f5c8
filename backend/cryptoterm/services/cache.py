"""Stale-tolerant TTL cache shared by all external data sources.

Each source keeps its own namespace of keys and its own TTL. Once a key has
ever held a value, callers always get a value back: a failed refresh serves
the last known good entry instead of raising.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceUnavailableError(Exception):
    """Raised when a fetch fails and there is neither a prior value nor a fallback."""

    def __init__(self, key: str, cause: Optional[BaseException] = None):
        self.key = key
        self.cause = cause
        super().__init__(f"No data available for '{key}': {cause}")


@dataclass
class CacheEntry(Generic[T]):
    """One cached fetch result."""
    value: T
    fetched_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl


class StaleTolerantCache:
    """Key/value store with per-entry TTL and serve-stale-on-failure policy.

    Refreshes of the same key are serialized through a per-key lock so two
    concurrent callers never race to store stale-over-fresh. Different keys
    have different locks and never contend.
    """

    def __init__(self, name: str = "cache", clock: Callable[[], float] = time.monotonic):
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def now(self) -> float:
        return self._clock()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry for a key without refreshing it."""
        return self._entries.get(key)

    def seed(self, key: str, value: Any, ttl: float) -> CacheEntry:
        """Store a value directly, stamped with the current time."""
        entry = CacheEntry(value=value, fetched_at=self.now(), ttl=ttl)
        self._entries[key] = entry
        return entry

    def keys(self):
        return list(self._entries.keys())

    async def get_or_refresh(
        self,
        key: str,
        ttl: float,
        fetch_fn: Callable[[], Awaitable[T]],
        fallback: Optional[Callable[[], T]] = None,
    ) -> T:
        """Get a cached value, refreshing it through ``fetch_fn`` when expired.

        Args:
            key: Cache key (namespaced by the caller, e.g. "market:top-100")
            ttl: Freshness window in seconds
            fetch_fn: Coroutine function producing a fresh value
            fallback: Synthetic value factory used only when the fetch fails
                and the key has never held a value. The result is seeded at
                ``ttl`` so a known-down upstream is not hammered.

        Returns:
            Fresh value, last known good value, or the seeded fallback.

        Raises:
            SourceUnavailableError: fetch failed, no prior entry, no fallback.
        """
        async with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self.now()):
                return entry.value

            try:
                value = await fetch_fn()
            except Exception as e:
                if entry is not None:
                    # fetched_at is left untouched so the next call retries
                    logger.warning(f"{self.name}: using stale cache for {key} due to error: {e}")
                    return entry.value

                if fallback is None:
                    raise SourceUnavailableError(key, e) from e

                logger.error(f"{self.name}: fetch for {key} failed with no prior value, using fallback: {e}")
                value = fallback()
                self.seed(key, value, ttl)
                return value

            self.seed(key, value, ttl)
            return value
