"""Work queue interface shared by every transport backend."""

from __future__ import annotations

import abc
import asyncio
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from pydantic import ValidationError

from ..contracts import JobMessage

RawMessageT = TypeVar("RawMessageT")


class Deadline:
    """End of a subscription's lifespan, measured on the running loop's clock."""

    def __init__(self, lifespan: Optional[float]) -> None:
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._at = None if lifespan is None else loop.time() + lifespan

    @property
    def passed(self) -> bool:
        return self._at is not None and self._loop.time() >= self._at


def decode_message(body: str | bytes) -> Optional[JobMessage]:
    """Parse a queue payload, ``None`` when it is not a job message."""
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    try:
        return JobMessage.from_json(body)
    except ValidationError:
        return None


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Queue of ``JobMessage`` requests, one topic per job queue.

    ``RawMessageT`` is whatever the backend needs back in ``ack``/``nack``.
    """

    async def connect(self) -> None:
        """Open the broker connection. Backends without one do nothing."""

    async def disconnect(self) -> None:
        """Close the broker connection."""

    @abc.abstractmethod
    async def publish(self, topic: str, message: JobMessage) -> None:
        """Append ``message`` to the queue ``topic``."""
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, JobMessage]]:
        """Yield ``(raw, message)`` pairs from ``topic``.

        With a ``lifespan`` (seconds) the iteration ends once it has passed;
        otherwise it runs until cancelled. Unreadable payloads are logged and
        skipped.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Mark a delivered message as handled."""
        raise NotImplementedError

    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Give a message back. Backends that cannot redeliver just ack it."""
        await self.ack(raw_message)
