import asyncio
import logging
import redis.asyncio as redis
from .config import settings
from typing import Optional

logger = logging.getLogger(__name__)

class RedisClient:
    """Optional read-through cache for the redirect path.

    Every call degrades to a no-op (or a miss) when Redis is not configured,
    not reachable or slower than ``timeout``, so the database stays the
    source of truth.
    """

    def __init__(self):
        self.client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def connect(self):
        if not settings.REDIS_URL:
            logger.info("REDIS_URL not set, redirect cache disabled")
            return
        self.client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.CACHE_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.CACHE_TIMEOUT_SECONDS,
        )
        try:
            await self.client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unreachable, redirect cache disabled: {e}")
            await self.client.aclose()
            self.client = None

    async def close(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    def _timeout(self, timeout: Optional[float]) -> float:
        return settings.CACHE_TIMEOUT_SECONDS if timeout is None else timeout

    async def get(self, key: str, timeout: Optional[float] = None) -> Optional[str]:
        if not self.client:
            return None
        try:
            return await asyncio.wait_for(self.client.get(key), self._timeout(timeout))
        except (redis.RedisError, asyncio.TimeoutError) as e:
            logger.warning(f"Cache read failed for {key}: {e!r}")
            return None

    async def set(self, key: str, value: str, ex: int = None, timeout: Optional[float] = None):
        if not self.client:
            return
        try:
            await asyncio.wait_for(self.client.set(key, value, ex=ex), self._timeout(timeout))
        except (redis.RedisError, asyncio.TimeoutError) as e:
            logger.warning(f"Cache write failed for {key}: {e!r}")

    async def delete(self, key: str, timeout: Optional[float] = None):
        if not self.client:
            return
        try:
            await asyncio.wait_for(self.client.delete(key), self._timeout(timeout))
        except (redis.RedisError, asyncio.TimeoutError) as e:
            logger.warning(f"Cache invalidation failed for {key}: {e!r}")

redis_client = RedisClient()

def link_cache_key(code: str) -> str:
    return f"link:{code}"
