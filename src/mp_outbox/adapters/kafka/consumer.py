"""Kafka adapter – KafkaSubscription (consume side)."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from mp_outbox.config.settings import RelaySettings
from mp_outbox.kernel.messaging import Delivery, Subscription
from mp_outbox.resilience.retry import BackoffStrategy, ExponentialBackoff

logger = logging.getLogger(__name__)


def _require_aiokafka() -> Any:
    try:
        import aiokafka  # type: ignore[import-untyped]
        import aiokafka.errors  # type: ignore[import-untyped]
        return aiokafka
    except ImportError as exc:
        raise ImportError("Install 'mp-outbox[kafka]' to use the Kafka adapter") from exc


class KafkaDelivery(Delivery):
    """One fetched record; ack commits past it, nack rewinds to it."""

    def __init__(self, subscription: "KafkaSubscription", record: Any, partition: Any, attempt: int) -> None:
        key = record.key.decode() if isinstance(record.key, bytes) else (record.key or "")
        super().__init__(record.topic, subscription.group_id, key, record.value, attempt)
        self._subscription = subscription
        self._partition = partition
        self.offset = record.offset

    async def ack(self) -> None:
        await self._subscription._commit(self._partition, self.offset)

    async def nack(self) -> None:
        await self._subscription._rewind(self._partition, self.offset, self.attempt)


class KafkaSubscription(Subscription):
    """aiokafka consumer with manual commits and in-place redelivery.

    A nacked record is redelivered after a backoff by seeking back to its
    offset, which also holds back every later record of that partition, so
    per-key order survives retries. Attempts are counted per
    ``(partition, offset)`` for the dead-letter decision.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        topics: list[str],
        *,
        backoff: BackoffStrategy | None = None,
        **kwargs: Any,
    ) -> None:
        self._aiokafka = _require_aiokafka()
        kwargs.setdefault("auto_offset_reset", "earliest")
        self._consumer = self._aiokafka.AIOKafkaConsumer(
            *topics,
            bootstrap_servers=bootstrap_servers,
            group_id=group_id,
            enable_auto_commit=False,
            **kwargs,
        )
        self.group_id = group_id
        self._backoff = backoff or ExponentialBackoff()
        self._attempts: dict[tuple[Any, int], int] = {}

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        group_id: str,
        *,
        topics: list[str] | None = None,
        **kwargs: Any,
    ) -> "KafkaSubscription":
        backoff = ExponentialBackoff(
            settings.redelivery_base_delay_seconds,
            settings.redelivery_max_delay_seconds,
            jitter=True,
        )
        return cls(
            settings.kafka_bootstrap_servers,
            group_id,
            topics or [settings.topic],
            backoff=backoff,
            **kwargs,
        )

    async def start(self) -> None:
        await self._consumer.start()

    async def stop(self) -> None:
        await self._consumer.stop()

    async def __aenter__(self) -> "KafkaSubscription":
        await self.start()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.stop()

    def __aiter__(self) -> AsyncIterator[Delivery]:
        return self._deliveries()

    async def _deliveries(self) -> AsyncIterator[Delivery]:
        while True:
            record = await self._consumer.getone()
            partition = self._aiokafka.TopicPartition(record.topic, record.partition)
            attempt = self._attempts.get((partition, record.offset), 0) + 1
            self._attempts[(partition, record.offset)] = attempt
            yield KafkaDelivery(self, record, partition, attempt)

    async def _commit(self, partition: Any, offset: int) -> None:
        await self._consumer.commit({partition: offset + 1})
        self._attempts.pop((partition, offset), None)
        logger.debug("kafka.committed partition=%s offset=%s", partition, offset + 1)

    async def _rewind(self, partition: Any, offset: int, attempt: int) -> None:
        delay = self._backoff.compute(attempt)
        logger.info("kafka.redeliver partition=%s offset=%s attempt=%s delay=%.2f", partition, offset, attempt, delay)
        await asyncio.sleep(delay)
        self._consumer.seek(partition, offset)


__all__ = ["KafkaDelivery", "KafkaSubscription"]
