"""Kernel messaging – broker ports.

The broker delivers at-least-once and in order *within* a partition key; it
makes no ordering promise across keys.
"""
from __future__ import annotations

import abc
from collections.abc import AsyncIterator
from enum import Enum


class PublishOutcome(str, Enum):
    ACK = "ACK"
    NACK = "NACK"          # transient: retry on a later tick
    REJECTED = "REJECTED"  # permanent: needs operator repair, never dropped


class MessageBroker(abc.ABC):
    """Port: ``publish(topic, partitionKey, envelopeBytes) -> ack | nack``."""

    @abc.abstractmethod
    async def publish(self, topic: str, partition_key: str, data: bytes) -> PublishOutcome: ...


class Delivery(abc.ABC):
    """One delivery attempt of a message to a consumer group."""

    def __init__(
        self,
        topic: str,
        consumer_group: str,
        partition_key: str,
        data: bytes,
        attempt: int = 1,
    ) -> None:
        self.topic = topic
        self.consumer_group = consumer_group
        self.partition_key = partition_key
        self.data = data
        self.attempt = attempt

    @abc.abstractmethod
    async def ack(self) -> None:
        """Confirm processing; the broker will not redeliver."""

    @abc.abstractmethod
    async def nack(self) -> None:
        """Reject processing; the broker redelivers with backoff."""

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(topic={self.topic!r}, key={self.partition_key!r}, "
            f"attempt={self.attempt})"
        )


class Subscription(abc.ABC):
    """Port: ``subscribe(topic, consumerGroupId)`` as an async stream of deliveries."""

    @abc.abstractmethod
    async def start(self) -> None: ...

    @abc.abstractmethod
    async def stop(self) -> None: ...

    @abc.abstractmethod
    def __aiter__(self) -> AsyncIterator[Delivery]: ...


__all__ = ["Delivery", "MessageBroker", "PublishOutcome", "Subscription"]
