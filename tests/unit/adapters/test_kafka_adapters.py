"""Unit tests for the Kafka adapter (mocked, no broker required)."""
from __future__ import annotations

import asyncio
from collections import namedtuple
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from mp_outbox.adapters.kafka import KafkaBroker, KafkaSubscription
from mp_outbox.config import RelaySettings
from mp_outbox.kernel.messaging import PublishOutcome
from mp_outbox.resilience.retry import ConstantBackoff


class KafkaError(Exception):
    pass


class MessageSizeTooLargeError(KafkaError):
    pass


class InvalidTopicError(KafkaError):
    pass


class TopicAuthorizationFailedError(KafkaError):
    pass


class KafkaTimeoutError(KafkaError):
    pass


_ERRORS = SimpleNamespace(
    KafkaError=KafkaError,
    MessageSizeTooLargeError=MessageSizeTooLargeError,
    InvalidTopicError=InvalidTopicError,
    TopicAuthorizationFailedError=TopicAuthorizationFailedError,
)

TopicPartition = namedtuple("TopicPartition", ["topic", "partition"])
ConsumerRecord = namedtuple("ConsumerRecord", ["topic", "partition", "offset", "key", "value"])


def _mock_aiokafka():
    """Return (mock_module, mock_producer, mock_consumer)."""
    mock_prod = MagicMock()
    mock_prod.start = AsyncMock()
    mock_prod.stop = AsyncMock()
    mock_prod.send_and_wait = AsyncMock()
    mock_cons = MagicMock()
    mock_cons.start = AsyncMock()
    mock_cons.stop = AsyncMock()
    mock_cons.commit = AsyncMock()
    mock_cons.getone = AsyncMock()
    mock_ak = MagicMock()
    mock_ak.errors = _ERRORS
    mock_ak.TopicPartition = TopicPartition
    mock_ak.AIOKafkaProducer.return_value = mock_prod
    mock_ak.AIOKafkaConsumer.return_value = mock_cons
    return mock_ak, mock_prod, mock_cons


def _make_broker(**kwargs) -> tuple[KafkaBroker, MagicMock, MagicMock]:
    mock_ak, mock_prod, _ = _mock_aiokafka()
    with patch("mp_outbox.adapters.kafka.producer._require_aiokafka", return_value=mock_ak):
        broker = KafkaBroker("localhost:9092", **kwargs)
    return broker, mock_prod, mock_ak


def _make_subscription() -> tuple[KafkaSubscription, MagicMock, MagicMock]:
    mock_ak, _, mock_cons = _mock_aiokafka()
    with patch("mp_outbox.adapters.kafka.consumer._require_aiokafka", return_value=mock_ak):
        subscription = KafkaSubscription(
            "localhost:9092", "scores", ["votes"], backoff=ConstantBackoff(0.0)
        )
    return subscription, mock_cons, mock_ak


class TestKafkaBroker:
    def test_producer_defaults_to_durable_idempotent_writes(self) -> None:
        _, _, mock_ak = _make_broker()
        kwargs = mock_ak.AIOKafkaProducer.call_args.kwargs
        assert kwargs["acks"] == "all"
        assert kwargs["enable_idempotence"] is True
        assert kwargs["bootstrap_servers"] == "localhost:9092"

    def test_producer_kwargs_override_defaults(self) -> None:
        _, _, mock_ak = _make_broker(acks=1)
        assert mock_ak.AIOKafkaProducer.call_args.kwargs["acks"] == 1

    def test_publish_sends_partition_key_as_message_key(self) -> None:
        async def run() -> None:
            broker, mock_prod, _ = _make_broker()
            outcome = await broker.publish("votes", "post-1", b"{}")
            assert outcome is PublishOutcome.ACK
            mock_prod.start.assert_awaited_once()
            mock_prod.send_and_wait.assert_awaited_once_with("votes", value=b"{}", key=b"post-1")

        asyncio.run(run())

    def test_transient_error_is_nack(self) -> None:
        async def run() -> None:
            broker, mock_prod, _ = _make_broker()
            mock_prod.send_and_wait.side_effect = KafkaTimeoutError("request timed out")
            assert await broker.publish("votes", "post-1", b"{}") is PublishOutcome.NACK

        asyncio.run(run())

    def test_permanent_error_is_rejected(self) -> None:
        async def run() -> None:
            broker, mock_prod, _ = _make_broker()
            mock_prod.send_and_wait.side_effect = MessageSizeTooLargeError("too big")
            assert await broker.publish("votes", "post-1", b"{}") is PublishOutcome.REJECTED

        asyncio.run(run())

    def test_context_manager_starts_and_stops(self) -> None:
        async def run() -> None:
            broker, mock_prod, _ = _make_broker()
            async with broker:
                await broker.publish("votes", "post-1", b"{}")
            mock_prod.start.assert_awaited_once()
            mock_prod.stop.assert_awaited_once()

        asyncio.run(run())


class TestKafkaSubscription:
    def test_consumer_uses_manual_commits(self) -> None:
        _, _, mock_ak = _make_subscription()
        args = mock_ak.AIOKafkaConsumer.call_args
        assert args.args == ("votes",)
        assert args.kwargs["group_id"] == "scores"
        assert args.kwargs["enable_auto_commit"] is False
        assert args.kwargs["auto_offset_reset"] == "earliest"

    def test_ack_commits_past_the_record(self) -> None:
        async def run() -> None:
            subscription, mock_cons, _ = _make_subscription()
            mock_cons.getone.return_value = ConsumerRecord("votes", 3, 41, b"post-1", b"{}")
            delivery = await anext(aiter(subscription))
            assert delivery.partition_key == "post-1"
            assert delivery.consumer_group == "scores"
            assert delivery.attempt == 1
            await delivery.ack()
            mock_cons.commit.assert_awaited_once_with({TopicPartition("votes", 3): 42})

        asyncio.run(run())

    def test_nack_seeks_back_and_counts_attempts(self) -> None:
        async def run() -> None:
            subscription, mock_cons, _ = _make_subscription()
            mock_cons.getone.return_value = ConsumerRecord("votes", 0, 7, b"post-1", b"{}")
            deliveries = aiter(subscription)
            first = await anext(deliveries)
            await first.nack()
            mock_cons.seek.assert_called_once_with(TopicPartition("votes", 0), 7)
            second = await anext(deliveries)
            assert second.attempt == 2
            await second.ack()
            third = await anext(deliveries)
            assert third.attempt == 1

        asyncio.run(run())

    def test_start_and_stop_delegate_to_consumer(self) -> None:
        async def run() -> None:
            subscription, mock_cons, _ = _make_subscription()
            async with subscription:
                pass
            mock_cons.start.assert_awaited_once()
            mock_cons.stop.assert_awaited_once()

        asyncio.run(run())


class TestFromSettings:
    _settings = RelaySettings(
        database_url="sqlite+aiosqlite://",
        producer="votes",
        topic="votes.events",
        kafka_bootstrap_servers="kafka-1:9092,kafka-2:9092",
        redelivery_base_delay_seconds=1.0,
        redelivery_max_delay_seconds=8.0,
    )

    def test_broker_identifies_as_the_producer(self) -> None:
        mock_ak, _, _ = _mock_aiokafka()
        with patch("mp_outbox.adapters.kafka.producer._require_aiokafka", return_value=mock_ak):
            KafkaBroker.from_settings(self._settings)
        kwargs = mock_ak.AIOKafkaProducer.call_args.kwargs
        assert kwargs["bootstrap_servers"] == "kafka-1:9092,kafka-2:9092"
        assert kwargs["client_id"] == "votes"

    def test_subscription_reads_topic_and_redelivery_bounds(self) -> None:
        mock_ak, _, _ = _mock_aiokafka()
        with patch("mp_outbox.adapters.kafka.consumer._require_aiokafka", return_value=mock_ak):
            subscription = KafkaSubscription.from_settings(self._settings, "scores")
        args = mock_ak.AIOKafkaConsumer.call_args
        assert args.args == ("votes.events",)
        assert args.kwargs["group_id"] == "scores"
        assert all(0 <= delay <= 8.0 for delay in subscription._backoff.schedule(10))
