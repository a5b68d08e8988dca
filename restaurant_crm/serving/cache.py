"""
Redis Summary Cache

Segment summaries are read far more often than they are recalculated, so
the latest summary per restaurant is kept in Redis until the next pass
replaces it. Redis is optional: with no client the cache always misses
and the API reads from the database.
"""

import json
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from restaurant_crm.config import get_settings

logger = structlog.get_logger(__name__)

_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """Connect to Redis and verify the connection with a ping."""
    global _client

    if _client is not None:
        return _client

    settings = get_settings().redis
    client = Redis.from_url(
        settings.get_url(),
        max_connections=settings.max_connections,
        socket_timeout=settings.socket_timeout,
        decode_responses=settings.decode_responses,
    )
    try:
        await client.ping()
    except Exception as e:
        logger.error("Redis connection failed", url=settings.get_url(), error=str(e))
        await client.aclose()
        raise

    _client = client
    logger.info("Redis connection established", host=settings.host, db=settings.db)
    return _client


async def close_redis() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis connection closed")


def get_redis() -> Redis:
    """
    Get the Redis client.

    Raises:
        RuntimeError: If Redis is not initialized
    """
    if _client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _client


class CacheManager:
    """
    JSON values under a key namespace.

    Example:
        cache = CacheManager("summaries", default_ttl=600)
        summary = await cache.get_or_set("r-1", load_summary)
    """

    def __init__(self, namespace: str, default_ttl: int = 3600):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        if _client is None:
            return None
        try:
            raw = await _client.get(self._key(key))
        except RedisError as e:
            logger.warning("Cache read failed", namespace=self.namespace, key=key, error=str(e))
            return None
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable value; returns False when nothing was written."""
        if _client is None:
            return False
        try:
            await _client.setex(self._key(key), ttl or self.default_ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.warning("Cache write failed", namespace=self.namespace, key=key, error=str(e))
            return False
        return True

    async def delete(self, key: str) -> bool:
        if _client is None:
            return False
        try:
            return await _client.delete(self._key(key)) > 0
        except RedisError as e:
            logger.warning("Cache delete failed", namespace=self.namespace, key=key, error=str(e))
            return False

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Optional[Any]]],
        ttl: Optional[int] = None,
    ) -> Optional[Any]:
        """Cached value, or the factory's result cached for next time. None is never cached."""
        value = await self.get(key)
        if value is not None:
            return value

        value = await factory()
        if value is not None:
            await self.set(key, value, ttl)
        return value


summary_cache = CacheManager("summaries", default_ttl=get_settings().redis.summary_ttl_seconds)
