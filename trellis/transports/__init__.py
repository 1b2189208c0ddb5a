"""Work queue backends and the factory selecting one from configuration."""

from __future__ import annotations

import os
from typing import Optional

from ..config import TrellisConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport

BACKENDS = ("inmemory", "redis", "kafka", "rabbitmq")


def get_transport(
    backend: Optional[str] = None, config: Optional[TrellisConfig] = None
) -> BaseTransport:
    """Build the transport named by ``backend``, ``TRELLIS_TRANSPORT`` or config.

    Queue names are prefixed with the configured namespace so several
    deployments can share one broker. Broker clients are imported lazily;
    Kafka and RabbitMQ need their optional extras.
    """
    config = config or load_config()
    backend = (backend or os.getenv("TRELLIS_TRANSPORT") or config.transport.backend).lower()
    settings = config.transport

    if backend == "inmemory":
        return InMemoryTransport()
    if backend == "redis":
        from .redis import RedisTransport

        return RedisTransport(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            password=settings.redis.password,
            prefix=f"{config.namespace}:queue",
        )
    if backend == "kafka":
        from .kafka import KafkaTransport

        return KafkaTransport(brokers=settings.kafka_brokers, group_id=config.namespace)
    if backend == "rabbitmq":
        from .rabbitmq import RabbitMQTransport

        return RabbitMQTransport(url=settings.rabbitmq_url, prefix=config.namespace)
    raise ValueError(f"Unsupported transport backend {backend!r}; expected one of {BACKENDS}")


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
