"""Process-local work queue."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from ..contracts import JobMessage
from .base import BaseTransport, Deadline

Delivery = Tuple[str, JobMessage]

POLL_INTERVAL = 0.05


class InMemoryTransport(BaseTransport[Delivery]):
    """Deques keyed by topic. Used by tests and single-process runs.

    Messages are popped before they are yielded, so a consumer may publish
    while handling one.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[Delivery]] = defaultdict(deque)

    async def publish(self, topic: str, message: JobMessage) -> None:
        self._queues[topic].append((message.to_json(), message))

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Delivery, JobMessage]]:
        deadline = Deadline(lifespan)
        queue = self._queues[topic]
        while not deadline.passed:
            if not queue:
                await asyncio.sleep(POLL_INTERVAL)
                continue
            delivery = queue.popleft()
            yield delivery, delivery[1]

    async def ack(self, raw_message: Delivery) -> None:
        pass

    def pending(self, topic: str) -> List[JobMessage]:
        """Messages published to ``topic`` and not yet consumed."""
        return [message for _, message in self._queues[topic]]
