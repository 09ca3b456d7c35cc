"""Shared cache for geocode results.

The in-process ``LRUCache`` covers a single worker; when ``REDIS_URL`` is
configured this Redis-backed service lets every worker reuse the same
resolved place names. Values are stored as JSON strings.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheService(ABC):
    """Interface for an async key/value cache with TTLs."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value for ``key`` or None."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a JSON-serializable value under ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""

    @abstractmethod
    async def invalidate(self, pattern: str) -> int:
        """Remove every key matching a glob pattern such as ``geocode:*``."""

    @staticmethod
    def build_geocode_key(name: str) -> str:
        """Cache key for a place name.

        Example:
            >>> CacheService.build_geocode_key("  New York ")
            'geocode:new york'
        """
        return f"geocode:{name.strip().lower()}"


class RedisCacheService(CacheService):
    """Redis implementation of ``CacheService``.

    The connection is opened lazily on first use and closed by
    ``disconnect()`` during application shutdown.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", default_ttl: int = 86400) -> None:
        self._redis_url = redis_url
        self._default_ttl = default_ttl
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ensure_connected(self) -> redis.Redis:
        if self._client is None:
            await self.connect()
        return self._client  # type: ignore

    async def get(self, key: str) -> Any | None:
        client = await self._ensure_connected()
        value = await client.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"[CACHE] Dropping non-JSON value at {key}")
            await client.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        client = await self._ensure_connected()
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        await client.set(key, json.dumps(value), ex=ttl)

    async def delete(self, key: str) -> bool:
        client = await self._ensure_connected()
        return (await client.delete(key)) > 0

    async def invalidate(self, pattern: str) -> int:
        """Delete keys matching ``pattern`` using SCAN rather than KEYS."""
        client = await self._ensure_connected()
        deleted = 0
        cursor = 0
        while True:
            cursor, keys = await client.scan(cursor=cursor, match=pattern, count=100)
            if keys:
                deleted += await client.delete(*keys)
            if cursor == 0:
                break
        return deleted

    @property
    def default_ttl(self) -> int:
        return self._default_ttl
