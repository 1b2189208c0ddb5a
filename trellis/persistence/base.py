"""Abstract key-value store used by the repository."""

from __future__ import annotations

import abc
from typing import Optional, Sequence


class BaseStore(metaclass=abc.ABCMeta):
    """Single-key operations against a shared key-value store.

    Implementations must make each call individually consistent. Nothing
    here spans more than one key atomically.
    """

    async def connect(self) -> None:
        """Open connection to the store (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the store (no-op by default)."""
        pass

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def mget(self, keys: Sequence[str]) -> list[Optional[str]]:
        return [await self.get(key) for key in keys]

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Write ``value``; any previous expiry on ``key`` is dropped."""
        raise NotImplementedError

    @abc.abstractmethod
    async def set_if_absent(
        self, key: str, value: str, ttl: Optional[int] = None
    ) -> bool:
        """Atomically write ``value`` only when ``key`` does not exist.

        Returns ``True`` when the write happened.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def expire(self, key: str, ttl: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def scan(self, pattern: str) -> list[str]:
        """Return all keys matching the glob ``pattern``."""
        raise NotImplementedError
