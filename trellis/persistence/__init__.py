"""Key-value store backends for trellis records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import TrellisConfig, load_config
from .base import BaseStore
from .inmemory import InMemoryStore
from .models import WorkflowRecord


def get_store(
    backend: Optional[str] = None, config: Optional[TrellisConfig] = None
) -> BaseStore:
    """Factory function to get the configured store.

    The backend is taken from ``backend``, the ``TRELLIS_STORE`` environment
    variable or the loaded configuration, in that order.
    """

    config = config or load_config()
    backend = (backend or os.getenv("TRELLIS_STORE") or config.store.backend).lower()

    if backend == "inmemory":
        return InMemoryStore()
    elif backend == "redis":
        from .redis import RedisStore

        redis_conf = config.store.redis
        return RedisStore(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            max_connections=redis_conf.max_connections,
        )
    else:
        raise ValueError(f"Unsupported store backend: {backend}")


__all__ = ["BaseStore", "InMemoryStore", "WorkflowRecord", "get_store"]
