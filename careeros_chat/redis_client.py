import redis.asyncio as redis
from typing import Optional


class RedisClient:
    """Async Redis client wrapper"""

    def __init__(self, url: str):
        self.url = url
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Initialize Redis connection"""
        self._client = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def close(self) -> None:
        """Close Redis connection"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RuntimeError("Redis client not initialized. Call connect() first.")
        return self._client

    async def ping(self) -> bool:
        return await self.client.ping()

    # Counter operations
    async def incr(self, key: str) -> int:
        return await self.client.incr(key)

    # List operations
    async def rpush(self, name: str, *values: str) -> int:
        return await self.client.rpush(name, *values)

    async def lrange(self, name: str, start: int, end: int) -> list:
        return await self.client.lrange(name, start, end)

    async def ltrim(self, name: str, start: int, end: int) -> bool:
        return await self.client.ltrim(name, start, end)

    async def llen(self, name: str) -> int:
        return await self.client.llen(name)
