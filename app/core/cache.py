"""In-memory TTL cache with FIFO capacity eviction and a periodic expiry sweep.

Expired entries are dropped lazily on read and proactively by ``cleanup()``,
which the background sweep calls once per interval so keys that are written
once and never read again do not pile up.

Capacity eviction is first-in-first-out: when the store is full, the entry
inserted longest ago goes first, whether or not anyone read it recently.
"""
import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_SIZE = 100
CLEANUP_INTERVAL_SECONDS = 60.0


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at > self.ttl


class CacheStore:
    """Bounded key/value store. Not thread-safe; meant for a single event loop."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        # dict keeps insertion order, which is the eviction order
        self._entries: dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def set(self, key: str, value: Any, ttl: float | None = None, max_size: int | None = None) -> None:
        """Insert or overwrite ``key``. An overwrite moves the key to the back of the queue."""
        ttl = self.default_ttl if ttl is None else ttl
        limit = self.max_size if max_size is None else max_size

        if key in self._entries:
            del self._entries[key]
        elif self._entries and len(self._entries) >= limit:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Cache full ({limit}), evicted {oldest}")

        self._entries[key] = CacheEntry(value=value, inserted_at=self._clock(), ttl=ttl)

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._entries.pop(key, None)
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """Return cached value if not expired, else None."""
        entry = self._live_entry(key)
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def invalidate(self, pattern: str) -> int:
        """Delete every key matched by the regular expression ``pattern``.

        An invalid pattern raises ``re.error`` before anything is removed.
        """
        regex = re.compile(pattern)
        return self._delete_where(lambda key: regex.search(key) is not None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Delete every key that starts with ``prefix``."""
        return self._delete_where(lambda key: key.startswith(prefix))

    def cleanup(self) -> int:
        """Drop all expired entries. Returns how many were removed."""
        now = self._clock()
        return self._delete_where(lambda key: self._entries[key].is_expired(now))

    def _delete_where(self, predicate: Callable[[str], bool]) -> int:
        # Snapshot first so deleting never disturbs the iteration
        doomed = [key for key in list(self._entries) if predicate(key)]
        for key in doomed:
            self._entries.pop(key, None)
        return len(doomed)

    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def stats(self) -> dict:
        # total_keys/memory_usage/hit_rate match what RedisCache.stats() reports
        lookups = self.hits + self.misses
        return {
            "total_keys": len(self._entries),
            "memory_usage": "n/a",
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups * 100, 2) if lookups else 0.0,
        }


async def run_periodic_cleanup(store: CacheStore, interval: float = CLEANUP_INTERVAL_SECONDS) -> None:
    """Sweep expired entries out of ``store`` every ``interval`` seconds, forever."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = store.cleanup()
        except Exception as e:
            logger.error(f"Cache cleanup failed: {e}")
            continue
        if removed:
            logger.debug(f"Cache cleanup removed {removed} expired entries")


class CacheBackend(ABC):
    """Async cache capability shared by the in-process and Redis stores."""

    @abstractmethod
    async def get(self, key: str) -> Any | None: ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def invalidate_prefix(self, prefix: str) -> int: ...

    @abstractmethod
    async def invalidate_pattern(self, pattern: str) -> int: ...

    @abstractmethod
    async def clear(self) -> None: ...

    @abstractmethod
    async def health_check(self) -> bool: ...

    @abstractmethod
    async def stats(self) -> dict: ...

    @abstractmethod
    async def close(self) -> None: ...


class MemoryCache(CacheBackend):
    """CacheBackend over a process-local CacheStore."""

    def __init__(self, store: CacheStore | None = None):
        self.store = store or CacheStore()
        self._cleanup_task: asyncio.Task | None = None

    def start_cleanup(self, interval: float = CLEANUP_INTERVAL_SECONDS) -> None:
        """Schedule the background sweep on the running loop. Idempotent."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(run_periodic_cleanup(self.store, interval))

    async def get(self, key: str) -> Any | None:
        return self.store.get(key)

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self.store.set(key, value, ttl=ttl)

    async def delete(self, key: str) -> bool:
        return self.store.delete(key)

    async def invalidate_prefix(self, prefix: str) -> int:
        return self.store.invalidate_prefix(prefix)

    async def invalidate_pattern(self, pattern: str) -> int:
        return self.store.invalidate(pattern)

    async def clear(self) -> None:
        self.store.clear()

    async def health_check(self) -> bool:
        return True

    async def stats(self) -> dict:
        return self.store.stats()

    async def close(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
