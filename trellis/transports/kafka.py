"""Kafka topics as work queues, via aiokafka."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Tuple

try:
    from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
    from aiokafka.structs import TopicPartition
except ImportError:  # pragma: no cover - optional extra
    AIOKafkaConsumer = None  # type: ignore
    AIOKafkaProducer = None  # type: ignore
    TopicPartition = None  # type: ignore

from ..contracts import JobMessage
from .base import BaseTransport, Deadline, decode_message

logger = logging.getLogger(__name__)


class KafkaTransport(BaseTransport[Any]):
    """Publish each queue to the topic ``<group_id>.<queue>``.

    Workers of one namespace share a consumer group, so each message is
    handled by one of them. Offsets are committed on ``ack``; unreadable
    records go to ``<group_id>.deadletter``.
    """

    def __init__(
        self,
        brokers: Iterable[str] | str = "localhost:9092",
        group_id: str = "trellis",
        poll_timeout_ms: int = 1000,
    ) -> None:
        if AIOKafkaProducer is None:
            raise ImportError("KafkaTransport needs the 'kafka' extra (aiokafka)")
        self.brokers = [brokers] if isinstance(brokers, str) else list(brokers)
        self.group_id = group_id
        self.poll_timeout_ms = poll_timeout_ms
        self._producer: Optional[AIOKafkaProducer] = None
        self._consumers: Dict[str, AIOKafkaConsumer] = {}

    def topic_name(self, topic: str) -> str:
        return f"{self.group_id}.{topic}"

    @property
    def deadletter_topic(self) -> str:
        return self.topic_name("deadletter")

    async def connect(self) -> None:
        if self._producer is None:
            self._producer = AIOKafkaProducer(bootstrap_servers=self.brokers)
            await self._producer.start()

    async def disconnect(self) -> None:
        for consumer in self._consumers.values():
            await consumer.stop()
        self._consumers.clear()
        if self._producer:
            await self._producer.stop()
            self._producer = None

    async def _consumer(self, topic: str) -> AIOKafkaConsumer:
        consumer = self._consumers.get(topic)
        if consumer is None:
            consumer = AIOKafkaConsumer(
                self.topic_name(topic),
                bootstrap_servers=self.brokers,
                group_id=self.group_id,
                enable_auto_commit=False,
                auto_offset_reset="earliest",
            )
            await consumer.start()
            self._consumers[topic] = consumer
        return consumer

    async def publish(self, topic: str, message: JobMessage) -> None:
        await self.connect()
        await self._producer.send_and_wait(
            self.topic_name(topic), value=message.to_json().encode("utf-8")
        )

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[Any, JobMessage]]:
        consumer = await self._consumer(topic)
        deadline = Deadline(lifespan)
        while not deadline.passed:
            batches = await consumer.getmany(timeout_ms=self.poll_timeout_ms, max_records=1)
            for records in batches.values():
                for record in records:
                    message = decode_message(record.value)
                    if message is None:
                        logger.error(
                            f"Dead-lettering unreadable record at "
                            f"{record.topic}:{record.partition}:{record.offset}"
                        )
                        await self.nack(record, requeue=False)
                        continue
                    yield record, message

    def _consumer_for(self, record: Any) -> AIOKafkaConsumer:
        prefix = f"{self.group_id}."
        return self._consumers[record.topic[len(prefix):]]

    async def ack(self, raw_message: Any) -> None:
        partition = TopicPartition(raw_message.topic, raw_message.partition)
        await self._consumer_for(raw_message).commit({partition: raw_message.offset + 1})

    async def nack(self, raw_message: Any, requeue: bool = True) -> None:
        if requeue:
            partition = TopicPartition(raw_message.topic, raw_message.partition)
            self._consumer_for(raw_message).seek(partition, raw_message.offset)
            return
        await self.connect()
        await self._producer.send_and_wait(self.deadletter_topic, value=raw_message.value)
        await self.ack(raw_message)
