"""Poll/user cache facade over a CacheBackend.

Key namespaces:
    poll:<id>              single poll
    poll:votes:<id>        vote counts for one poll
    poll:analytics:<id>    computed analytics for one poll
    polls:<filters>        list query results, keyed by canonical JSON filters
    polls:top:<limit>      most-voted polls
    user:<id>              user profile

Any write to a poll must be followed by ``invalidate_poll``: list entries may
embed the poll's aggregates and there is no index of which ones do, so the
whole ``polls:`` namespace goes.

Nothing in here raises on a cache failure (only a bad regex passed to
``invalidate_pattern`` does). Callers must stay correct if every call misses.
"""
import json
import logging
import re
from typing import Any, Awaitable, Callable, Mapping

from pydantic import BaseModel

from app.core.cache import CacheBackend, CacheStore, MemoryCache
from app.core.config import Settings
from app.core.redis_cache import RedisCache

logger = logging.getLogger(__name__)

POLL_PREFIX = "poll:"
POLLS_PREFIX = "polls:"
USER_PREFIX = "user:"

Loader = Callable[[], Awaitable[Any]]


def serialize_filters(filters: Mapping[str, Any] | BaseModel | None) -> str:
    """Canonical JSON for a filter set: None values dropped, keys sorted."""
    if filters is None:
        data = {}
    elif isinstance(filters, BaseModel):
        data = filters.model_dump(exclude_none=True)
    else:
        data = {k: v for k, v in filters.items() if v is not None}
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def poll_key(poll_id: str) -> str:
    return f"{POLL_PREFIX}{poll_id}"


def polls_key(filters: Mapping[str, Any] | BaseModel | None) -> str:
    return f"{POLLS_PREFIX}{serialize_filters(filters)}"


def user_key(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


class PollCache:
    def __init__(
        self,
        backend: CacheBackend,
        ttl: float | None = None,
        list_ttl: float | None = None,
        votes_ttl: float | None = None,
        analytics_ttl: float | None = None,
    ):
        self.backend = backend
        # None means "use the backend's default"
        self.ttl = ttl
        self.list_ttl = list_ttl if list_ttl is not None else ttl
        self.votes_ttl = votes_ttl if votes_ttl is not None else ttl
        self.analytics_ttl = analytics_ttl if analytics_ttl is not None else ttl

    # --- guarded backend access ---

    async def _get(self, key: str) -> Any | None:
        try:
            return await self.backend.get(key)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}, treating as miss: {e}")
            return None

    async def _set(self, key: str, value: Any, ttl: float | None) -> None:
        try:
            await self.backend.set(key, value, ttl=ttl)
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")

    async def _delete(self, key: str) -> bool:
        try:
            return await self.backend.delete(key)
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")
            return False

    async def _invalidate_prefix(self, prefix: str) -> int:
        try:
            return await self.backend.invalidate_prefix(prefix)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for {prefix}*: {e}")
            return 0

    async def fetch(self, key: str, loader: Loader, ttl: float | None = None) -> Any | None:
        """Read-through: cached value, or the loader's result (cached unless None)."""
        cached = await self._get(key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            await self._set(key, value, ttl if ttl is not None else self.ttl)
        return value

    # --- polls ---

    async def get_poll(self, poll_id: str) -> dict | None:
        return await self._get(poll_key(poll_id))

    async def set_poll(self, poll_id: str, poll: dict) -> None:
        await self._set(poll_key(poll_id), poll, self.ttl)

    async def fetch_poll(self, poll_id: str, loader: Loader) -> dict | None:
        return await self.fetch(poll_key(poll_id), loader, self.ttl)

    async def get_polls(self, filters) -> list[dict] | None:
        return await self._get(polls_key(filters))

    async def set_polls(self, filters, polls: list[dict]) -> None:
        await self._set(polls_key(filters), polls, self.list_ttl)

    async def fetch_polls(self, filters, loader: Loader) -> list[dict] | None:
        return await self.fetch(polls_key(filters), loader, self.list_ttl)

    async def get_poll_votes(self, poll_id: str) -> dict | None:
        return await self.get_with_key("poll:votes", poll_id)

    async def set_poll_votes(self, poll_id: str, vote_data: dict) -> None:
        await self.set_with_key("poll:votes", poll_id, vote_data, ttl=self.votes_ttl)

    async def get_poll_analytics(self, poll_id: str) -> dict | None:
        return await self.get_with_key("poll:analytics", poll_id)

    async def set_poll_analytics(self, poll_id: str, analytics: dict) -> None:
        await self.set_with_key("poll:analytics", poll_id, analytics, ttl=self.analytics_ttl)

    async def get_top_polls(self, limit: int) -> list[dict] | None:
        return await self.get_with_key("polls:top", str(limit))

    async def set_top_polls(self, limit: int, polls: list[dict]) -> None:
        await self.set_with_key("polls:top", str(limit), polls, ttl=self.analytics_ttl)

    async def invalidate_poll(self, poll_id: str) -> None:
        """Drop one poll and every cached poll list."""
        await self._delete(poll_key(poll_id))
        await self.delete_with_key("poll:votes", poll_id)
        await self.delete_with_key("poll:analytics", poll_id)
        await self._invalidate_prefix(POLLS_PREFIX)

    async def invalidate_poll_lists(self) -> None:
        await self._invalidate_prefix(POLLS_PREFIX)

    async def invalidate_all_polls(self) -> None:
        await self._invalidate_prefix(POLL_PREFIX)
        await self._invalidate_prefix(POLLS_PREFIX)

    # --- users ---

    async def get_user(self, user_id: str) -> dict | None:
        return await self._get(user_key(user_id))

    async def set_user(self, user_id: str, user: dict) -> None:
        await self._set(user_key(user_id), user, self.ttl)

    async def fetch_user(self, user_id: str, loader: Loader) -> dict | None:
        return await self.fetch(user_key(user_id), loader, self.ttl)

    async def invalidate_user(self, user_id: str) -> None:
        await self._delete(user_key(user_id))

    # --- ad hoc namespaces ---

    async def get_with_key(self, base: str, identifier: str) -> Any | None:
        return await self._get(f"{base}:{identifier}")

    async def set_with_key(self, base: str, identifier: str, value: Any, ttl: float | None = None) -> None:
        await self._set(f"{base}:{identifier}", value, ttl if ttl is not None else self.ttl)

    async def delete_with_key(self, base: str, identifier: str) -> bool:
        return await self._delete(f"{base}:{identifier}")

    async def invalidate_pattern(self, pattern: str) -> int:
        """Regex invalidation. Prefer the namespace helpers; a bad pattern raises re.error."""
        re.compile(pattern)
        try:
            return await self.backend.invalidate_pattern(pattern)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for /{pattern}/: {e}")
            return 0

    # --- maintenance ---

    async def health_check(self) -> bool:
        try:
            return await self.backend.health_check()
        except Exception as e:
            logger.error(f"Cache health check failed: {e}")
            return False

    async def get_cache_stats(self) -> dict:
        try:
            return await self.backend.stats()
        except Exception as e:
            logger.error(f"Failed to get cache stats: {e}")
            return {}

    async def clear(self) -> None:
        try:
            await self.backend.clear()
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as e:
            logger.error(f"Failed to close cache: {e}")


def _memory_backend(settings: Settings) -> MemoryCache:
    store = CacheStore(max_size=settings.CACHE_MAX_SIZE, default_ttl=settings.CACHE_TTL_SECONDS)
    return MemoryCache(store)


async def connect_poll_cache(settings: Settings) -> PollCache:
    """Build the process cache from settings.

    A configured Redis that does not answer PING is bypassed in favour of the
    in-process store.
    """
    backend: CacheBackend
    if settings.redis_enabled:
        backend = RedisCache.from_url(settings.REDIS_URL, default_ttl=settings.CACHE_TTL_SECONDS)
        if await backend.health_check():
            logger.info("Cache backend: redis")
        else:
            logger.warning("Redis unavailable, falling back to in-memory cache")
            await backend.close()
            backend = _memory_backend(settings)
    else:
        backend = _memory_backend(settings)

    if isinstance(backend, MemoryCache):
        backend.start_cleanup(settings.CACHE_CLEANUP_INTERVAL_SECONDS)
        logger.info("Cache backend: memory")

    return PollCache(
        backend,
        ttl=settings.CACHE_TTL_SECONDS,
        list_ttl=settings.POLL_LIST_TTL_SECONDS,
        votes_ttl=settings.VOTE_TTL_SECONDS,
        analytics_ttl=settings.ANALYTICS_TTL_SECONDS,
    )
