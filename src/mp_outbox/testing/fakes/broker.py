"""Testing fakes – InMemoryBroker with per-group subscriptions."""
from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from mp_outbox.kernel.messaging import Delivery, EventEnvelope, MessageBroker, PublishOutcome, Subscription


@dataclass(frozen=True)
class PublishedMessage:
    topic: str
    partition_key: str
    data: bytes
    offset: int

    @property
    def envelope(self) -> EventEnvelope:
        return EventEnvelope.from_bytes(self.data)


class InMemoryBroker(MessageBroker):
    """In-memory broker for tests.

    ``script(...)`` queues outcomes (or exceptions) for the next publishes;
    unscripted publishes are ACKed and appended to the log.
    """

    def __init__(self) -> None:
        self._log: list[PublishedMessage] = []
        self._scripted: deque[PublishOutcome | BaseException] = deque()
        self._subscriptions: list[InMemorySubscription] = []
        self.publish_calls = 0

    def script(self, *outcomes: PublishOutcome | BaseException) -> None:
        self._scripted.extend(outcomes)

    async def publish(self, topic: str, partition_key: str, data: bytes) -> PublishOutcome:
        self.publish_calls += 1
        if self._scripted:
            outcome = self._scripted.popleft()
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is not PublishOutcome.ACK:
                return outcome
        message = PublishedMessage(topic, partition_key, data, len(self._log))
        self._log.append(message)
        for subscription in self._subscriptions:
            if subscription.topic == topic:
                subscription.enqueue(message)
        return PublishOutcome.ACK

    def subscribe(self, topic: str, consumer_group: str) -> "InMemorySubscription":
        """Subscribe from the beginning of *topic*'s log."""
        subscription = InMemorySubscription(topic, consumer_group)
        for message in self.of_topic(topic):
            subscription.enqueue(message)
        self._subscriptions.append(subscription)
        return subscription

    def redeliver(self, offset: int) -> None:
        """Deliver the message at *offset* again to every subscription (a duplicate)."""
        message = self._log[offset]
        for subscription in self._subscriptions:
            if subscription.topic == message.topic:
                subscription.enqueue(message)

    @property
    def published(self) -> list[PublishedMessage]:
        return list(self._log)

    def of_topic(self, topic: str) -> list[PublishedMessage]:
        return [m for m in self._log if m.topic == topic]

    def event_ids(self, topic: str | None = None) -> list[str]:
        messages = self._log if topic is None else self.of_topic(topic)
        return [m.envelope.event_id for m in messages]

    def clear(self) -> None:
        self._log.clear()
        self._scripted.clear()


class InMemoryDelivery(Delivery):
    def __init__(self, subscription: "InMemorySubscription", message: PublishedMessage, attempt: int) -> None:
        super().__init__(message.topic, subscription.consumer_group, message.partition_key, message.data, attempt)
        self.message = message
        self._subscription = subscription

    async def ack(self) -> None:
        self._subscription.acked.append(self.message)

    async def nack(self) -> None:
        self._subscription.nacked.append(self.message)
        # redelivered before anything queued behind it
        self._subscription.enqueue(self.message, attempt=self.attempt + 1, front=True)


class InMemorySubscription(Subscription):
    """FIFO delivery queue for one consumer group."""

    def __init__(self, topic: str, consumer_group: str) -> None:
        self.topic = topic
        self.consumer_group = consumer_group
        self._queue: deque[tuple[PublishedMessage, int]] = deque()
        self._wakeup = asyncio.Event()
        self._stopped = False
        self.acked: list[PublishedMessage] = []
        self.nacked: list[PublishedMessage] = []

    def enqueue(self, message: PublishedMessage, *, attempt: int = 1, front: bool = False) -> None:
        if front:
            self._queue.appendleft((message, attempt))
        else:
            self._queue.append((message, attempt))
        self._wakeup.set()

    def next_delivery(self) -> InMemoryDelivery | None:
        if not self._queue:
            return None
        message, attempt = self._queue.popleft()
        return InMemoryDelivery(self, message, attempt)

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def drain(self, dispatcher: Any) -> list[Any]:
        """Dispatch until the queue is empty; return each dispatch outcome."""
        outcomes = []
        while (delivery := self.next_delivery()) is not None:
            outcomes.append(await dispatcher.dispatch(delivery))
        return outcomes

    async def start(self) -> None:
        self._stopped = False

    async def stop(self) -> None:
        self._stopped = True
        self._wakeup.set()

    def __aiter__(self) -> AsyncIterator[Delivery]:
        return self._deliveries()

    async def _deliveries(self) -> AsyncIterator[Delivery]:
        while not self._stopped:
            delivery = self.next_delivery()
            if delivery is not None:
                yield delivery
                continue
            self._wakeup.clear()
            await self._wakeup.wait()


__all__ = ["InMemoryBroker", "InMemoryDelivery", "InMemorySubscription", "PublishedMessage"]
