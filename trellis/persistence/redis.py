"""Redis implementation of the key-value store."""

from __future__ import annotations

from typing import Optional, Sequence

import redis.asyncio as redis

from .base import BaseStore


class RedisStore(BaseStore):
    """Store records in Redis through a bounded connection pool."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        max_connections: int = 5,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.max_connections = max_connections
        self._redis: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        pool = redis.ConnectionPool(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            max_connections=self.max_connections,
            decode_responses=True,
        )
        self._redis = redis.Redis(connection_pool=pool)
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose(close_connection_pool=True)
            self._redis = None

    async def _client(self) -> redis.Redis:
        if not self._redis:
            await self.connect()
        return self._redis

    # ------------------------------------------------------------------
    async def get(self, key: str) -> Optional[str]:
        client = await self._client()
        return await client.get(key)

    async def mget(self, keys: Sequence[str]) -> list[Optional[str]]:
        if not keys:
            return []
        client = await self._client()
        return await client.mget(list(keys))

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        client = await self._client()
        await client.set(key, value, ex=ttl)

    async def set_if_absent(
        self, key: str, value: str, ttl: Optional[int] = None
    ) -> bool:
        client = await self._client()
        return bool(await client.set(key, value, ex=ttl, nx=True))

    async def exists(self, key: str) -> bool:
        client = await self._client()
        return bool(await client.exists(key))

    async def delete(self, key: str) -> None:
        client = await self._client()
        await client.delete(key)

    async def expire(self, key: str, ttl: int) -> None:
        client = await self._client()
        await client.expire(key, ttl)

    async def scan(self, pattern: str) -> list[str]:
        client = await self._client()
        return [key async for key in client.scan_iter(match=pattern)]
