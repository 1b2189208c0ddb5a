"""Redis lists as work queues."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional, Tuple

import redis.asyncio as redis

from ..contracts import JobMessage
from .base import BaseTransport, Deadline, decode_message

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """One Redis list per queue: ``LPUSH`` to publish, ``BRPOP`` to consume.

    A popped message is gone from Redis, so ``ack`` has nothing to do and a
    worker crash loses the job it was running.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "trellis:queue",
        block_timeout: int = 1,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self.block_timeout = block_timeout
        self._redis: Optional[redis.Redis] = None

    def queue_name(self, topic: str) -> str:
        return f"{self.prefix}:{topic}"

    async def connect(self) -> None:
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> redis.Redis:
        if not self._redis:
            await self.connect()
        return self._redis

    async def publish(self, topic: str, message: JobMessage) -> None:
        client = await self._client()
        await client.lpush(self.queue_name(topic), message.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, JobMessage]]:
        client = await self._client()
        name = self.queue_name(topic)
        deadline = Deadline(lifespan)
        while not deadline.passed:
            popped = await client.brpop(name, timeout=self.block_timeout)
            if not popped:
                continue
            body = popped[1]
            message = decode_message(body)
            if message is None:
                logger.error(f"Discarding unreadable message from {name}: {body!r}")
                continue
            yield body, message

    async def ack(self, raw_message: str) -> None:
        pass
