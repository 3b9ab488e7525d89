"""Redis-backed cache for values shared across instances or kept across restarts.

Values are JSON-encoded on write and decoded on read; TTLs are handed to Redis
with SETEX instead of being checked locally. Any transport or serialization
error is logged and turned into a miss (reads) or a no-op (writes), so a
flaky Redis never fails the request that is using it.
"""
import json
import logging
import math
import re
from typing import Any

import redis.asyncio as redis

from app.core.cache import DEFAULT_TTL_SECONDS, CacheBackend

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")

_EMPTY_STATS = {"total_keys": 0, "memory_usage": "0B", "hit_rate": 0.0}


def _glob_escape(text: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", text)


class RedisCache(CacheBackend):
    def __init__(self, client: redis.Redis, default_ttl: float = DEFAULT_TTL_SECONDS):
        self._client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, default_ttl: float = DEFAULT_TTL_SECONDS) -> "RedisCache":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            health_check_interval=30,
        )
        return cls(client, default_ttl)

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        # SETEX only takes whole seconds, and zero is rejected
        seconds = max(1, math.ceil(ttl))
        try:
            payload = json.dumps(value)
            await self._client.setex(key, seconds, payload)
        except Exception as e:
            logger.warning(f"Redis set failed for {key}: {e}")

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except Exception as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def invalidate_prefix(self, prefix: str) -> int:
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{_glob_escape(prefix)}*")]
            if not keys:
                return 0
            return await self._client.delete(*keys)
        except Exception as e:
            logger.warning(f"Redis invalidate failed for prefix {prefix}: {e}")
            return 0

    async def invalidate_pattern(self, pattern: str) -> int:
        regex = re.compile(pattern)
        try:
            keys = [key async for key in self._client.scan_iter() if regex.search(key)]
            if not keys:
                return 0
            return await self._client.delete(*keys)
        except Exception as e:
            logger.warning(f"Redis invalidate failed for pattern {pattern}: {e}")
            return 0

    async def clear(self) -> None:
        """Flush the selected Redis database."""
        try:
            await self._client.flushdb()
        except Exception as e:
            logger.warning(f"Redis flush failed: {e}")

    async def health_check(self) -> bool:
        try:
            await self._client.ping()
            return True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def stats(self) -> dict:
        """Key count, memory use and keyspace hit rate as reported by the server."""
        try:
            memory = await self._client.info("memory")
            counters = await self._client.info("stats")
            total_keys = await self._client.dbsize()
        except Exception as e:
            logger.error(f"Failed to get cache stats: {e}")
            return dict(_EMPTY_STATS)

        hits = int(counters.get("keyspace_hits", 0))
        misses = int(counters.get("keyspace_misses", 0))
        hit_rate = hits / (hits + misses) * 100 if hits + misses else 0.0
        return {
            "total_keys": total_keys,
            "memory_usage": str(memory.get("used_memory_human", "0B")),
            "hit_rate": round(hit_rate, 2),
        }

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except Exception as e:
            logger.error(f"Failed to close Redis connection: {e}")
