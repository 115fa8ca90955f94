"""Kafka adapter – KafkaBroker (publish side)."""
from __future__ import annotations

import logging
from typing import Any

from mp_outbox.config.settings import RelaySettings
from mp_outbox.kernel.messaging import MessageBroker, PublishOutcome

logger = logging.getLogger(__name__)

# refused by the cluster for this message; retrying the same bytes cannot help
_PERMANENT_ERRORS = ("MessageSizeTooLargeError", "InvalidTopicError", "TopicAuthorizationFailedError")


def _require_aiokafka() -> Any:
    try:
        import aiokafka  # type: ignore[import-untyped]
        import aiokafka.errors  # type: ignore[import-untyped]
        return aiokafka
    except ImportError as exc:
        raise ImportError("Install 'mp-outbox[kafka]' to use the Kafka adapter") from exc


class KafkaBroker(MessageBroker):
    """aiokafka-backed :class:`MessageBroker`.

    The partition key becomes the Kafka message key, so all records of one
    key land on one partition and keep their order. ``acks="all"`` and the
    idempotent producer make an ACK mean "durably replicated".
    """

    def __init__(self, bootstrap_servers: str, **producer_kwargs: Any) -> None:
        self._aiokafka = _require_aiokafka()
        producer_kwargs.setdefault("acks", "all")
        producer_kwargs.setdefault("enable_idempotence", True)
        self._producer = self._aiokafka.AIOKafkaProducer(bootstrap_servers=bootstrap_servers, **producer_kwargs)
        self._started = False

    @classmethod
    def from_settings(cls, settings: RelaySettings, **producer_kwargs: Any) -> "KafkaBroker":
        producer_kwargs.setdefault("client_id", settings.producer)
        return cls(settings.kafka_bootstrap_servers, **producer_kwargs)

    async def start(self) -> None:
        await self._producer.start()
        self._started = True

    async def stop(self) -> None:
        await self._producer.stop()
        self._started = False

    async def __aenter__(self) -> "KafkaBroker":
        await self.start()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.stop()

    async def publish(self, topic: str, partition_key: str, data: bytes) -> PublishOutcome:
        if not self._started:
            await self.start()
        errors = self._aiokafka.errors
        permanent = tuple(getattr(errors, name) for name in _PERMANENT_ERRORS)
        try:
            await self._producer.send_and_wait(topic, value=data, key=partition_key.encode())
        except permanent as exc:
            logger.error("kafka.rejected topic=%s key=%s error=%r", topic, partition_key, exc)
            return PublishOutcome.REJECTED
        except errors.KafkaError as exc:
            logger.warning("kafka.nack topic=%s key=%s error=%r", topic, partition_key, exc)
            return PublishOutcome.NACK
        logger.debug("kafka.published topic=%s key=%s", topic, partition_key)
        return PublishOutcome.ACK


__all__ = ["KafkaBroker"]
