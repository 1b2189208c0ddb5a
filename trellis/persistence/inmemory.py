"""In-memory implementation of the key-value store."""

from __future__ import annotations

import time
from fnmatch import fnmatchcase
from typing import Dict, Optional, Tuple

from .base import BaseStore


class InMemoryStore(BaseStore):
    """Keep records in local memory.

    Useful for tests or single-process runs. Data is not persisted across
    process restarts and is not shared between processes.
    """

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return value

    @staticmethod
    def _deadline(ttl: Optional[int]) -> Optional[float]:
        return time.monotonic() + ttl if ttl is not None else None

    # ------------------------------------------------------------------
    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._data[key] = (value, self._deadline(ttl))

    async def set_if_absent(
        self, key: str, value: str, ttl: Optional[int] = None
    ) -> bool:
        if self._live(key) is not None:
            return False
        self._data[key] = (value, self._deadline(ttl))
        return True

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def expire(self, key: str, ttl: int) -> None:
        value = self._live(key)
        if value is not None:
            self._data[key] = (value, self._deadline(ttl))

    async def scan(self, pattern: str) -> list[str]:
        return [
            key
            for key in list(self._data)
            if fnmatchcase(key, pattern) and self._live(key) is not None
        ]
