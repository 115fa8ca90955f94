"""Unit tests for OutboxPublisher and OutboxRelay."""
from __future__ import annotations

import asyncio

import pytest

from mp_outbox.adapters.sqlalchemy import SqlAlchemyOutboxStore, SqlAlchemyUnitOfWork
from mp_outbox.application.consumer import DispatchOutcome, HandlerRegistry, IdempotentDispatcher
from mp_outbox.application.derived import VOTE_CHANGED, ScoreAggregator
from mp_outbox.application.outbox import OutboxPublisher, OutboxRelay, OutboxWriter
from mp_outbox.config.settings import RelaySettings
from mp_outbox.kernel.errors import BrokerError, InfrastructureError
from mp_outbox.kernel.messaging import OutboxRecord, PublishOutcome
from mp_outbox.kernel.types import new_event_id
from mp_outbox.observability.metrics import names
from mp_outbox.testing import FakeClock, FakeMetricsRegistry, InMemoryBroker
from mp_outbox.testing.fixtures import create_test_database


async def _append(uow_factory, writer: OutboxWriter, key: str, event_type: str = "TripCreated.v1", **payload):
    async with uow_factory() as uow:
        return await writer.append(uow.outbox, event_type, partition_key=key, payload={"key": key, **payload})


class GatedBroker(InMemoryBroker):
    """Holds every publish until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def publish(self, topic: str, partition_key: str, data: bytes) -> PublishOutcome:
        self.entered.set()
        await self.release.wait()
        return await super().publish(topic, partition_key, data)


class PoisonedKeyBroker(InMemoryBroker):
    """Rejects every publish for one partition key."""

    def __init__(self, poisoned_key: str) -> None:
        super().__init__()
        self.poisoned_key = poisoned_key

    async def publish(self, topic: str, partition_key: str, data: bytes) -> PublishOutcome:
        if partition_key == self.poisoned_key:
            self.publish_calls += 1
            return PublishOutcome.REJECTED
        return await super().publish(topic, partition_key, data)


class TestPublishPending:
    def test_publishes_in_creation_order_and_marks_published(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            clock = FakeClock()
            writer = OutboxWriter("trips", clock=clock)
            first = await _append(uow_factory, writer, "trip-1", seq=1)
            clock.advance(seconds=1)
            second = await _append(uow_factory, writer, "trip-2", seq=2)
            clock.advance(seconds=1)
            third = await _append(uow_factory, writer, "trip-1", seq=3)

            publisher = OutboxPublisher(uow_factory, broker, topic="trips", clock=clock)
            report = await publisher.publish_pending()

            assert report.selected == 3
            assert report.published == 3
            assert broker.event_ids("trips") == [first.event_id, second.event_id, third.event_id]
            async with uow_factory() as uow:
                stored = await uow.outbox.get(first.event_id)
                assert stored.published is True
                assert stored.published_at == clock.now()
                assert (await uow.outbox.backlog()).pending == 0
            await factory.dispose()

        asyncio.run(run())

    def test_published_envelope_matches_record(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            record = await _append(uow_factory, OutboxWriter("trips"), "trip-9", seats=3)
            await OutboxPublisher(uow_factory, broker).publish_pending()
            [message] = broker.of_topic("events")
            envelope = message.envelope
            assert message.partition_key == "trip-9"
            assert envelope.event_id == record.event_id
            assert envelope.event_type == "TripCreated.v1"
            assert envelope.producer == "trips"
            assert envelope.payload == {"key": "trip-9", "seats": 3}
            await factory.dispose()

        asyncio.run(run())

    def test_topic_resolver_is_called_per_record(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            writer = OutboxWriter("trips")
            await _append(uow_factory, writer, "trip-1", event_type="TripCreated.v1")
            await _append(uow_factory, writer, "trip-1", event_type="TripCancelled.v1")
            publisher = OutboxPublisher(
                uow_factory, broker, topic=lambda record: record.event_type.split(".")[0].lower()
            )
            await publisher.publish_pending()
            assert [m.topic for m in broker.published] == ["tripcreated", "tripcancelled"]
            await factory.dispose()

        asyncio.run(run())

    def test_batch_size_limits_selection(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            writer = OutboxWriter("trips")
            for n in range(5):
                await _append(uow_factory, writer, f"trip-{n}")
            publisher = OutboxPublisher(uow_factory, broker, batch_size=2)
            assert (await publisher.publish_pending()).published == 2
            assert (await publisher.backlog()).pending == 3
            await factory.dispose()

        asyncio.run(run())

    def test_empty_outbox_is_a_noop(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            broker = InMemoryBroker()
            publisher = OutboxPublisher(SqlAlchemyUnitOfWork.factory(factory), broker)
            report = await publisher.publish_pending()
            assert report.selected == 0
            assert broker.publish_calls == 0
            await factory.dispose()

        asyncio.run(run())

    def test_non_positive_batch_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            OutboxPublisher(lambda: None, InMemoryBroker(), batch_size=0)


class TestPublishFailures:
    def test_nack_blocks_later_records_of_the_same_key(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            clock = FakeClock()
            writer = OutboxWriter("trips", clock=clock)
            a = await _append(uow_factory, writer, "k1")
            clock.advance(seconds=1)
            b = await _append(uow_factory, writer, "k1")
            clock.advance(seconds=1)
            c = await _append(uow_factory, writer, "k2")
            metrics = FakeMetricsRegistry()
            publisher = OutboxPublisher(uow_factory, broker, clock=clock, metrics=metrics)

            broker.script(PublishOutcome.NACK)
            report = await publisher.publish_pending()

            assert report.published == 1
            assert report.failed == 1
            assert report.deferred == 1
            assert broker.event_ids() == [c.event_id]
            async with uow_factory() as uow:
                failed = await uow.outbox.get(a.event_id)
            assert failed.published is False
            assert failed.publish_attempts == 1
            assert failed.last_error == "NACK"
            metrics.assert_counter_total(names.OUTBOX_PUBLISH_FAILED, 1)

            report = await publisher.publish_pending()
            assert report.published == 2
            assert broker.event_ids() == [c.event_id, a.event_id, b.event_id]
            await factory.dispose()

        asyncio.run(run())

    def test_rejected_record_stays_pending_until_repaired(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            metrics = FakeMetricsRegistry()
            record = await _append(uow_factory, OutboxWriter("trips"), "k1")
            publisher = OutboxPublisher(uow_factory, broker, metrics=metrics)

            broker.script(PublishOutcome.REJECTED, PublishOutcome.REJECTED)
            assert (await publisher.publish_pending()).rejected == 1
            assert (await publisher.publish_pending()).rejected == 1
            async with uow_factory() as uow:
                stored = await uow.outbox.get(record.event_id)
            assert stored.published is False
            assert stored.publish_attempts == 2
            metrics.assert_counter_total(names.OUTBOX_PUBLISH_REJECTED, 2)

            assert (await publisher.publish_pending()).published == 1
            assert broker.event_ids() == [record.event_id]
            await factory.dispose()

        asyncio.run(run())

    def test_rejected_key_does_not_starve_other_keys(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = PoisonedKeyBroker("poison")
            clock = FakeClock()
            writer = OutboxWriter("trips", clock=clock)
            for _ in range(3):
                await _append(uow_factory, writer, "poison")
                clock.advance(seconds=1)
            healthy = await _append(uow_factory, writer, "k2")
            publisher = OutboxPublisher(uow_factory, broker, batch_size=3, clock=clock)

            report = await publisher.publish_pending()

            assert broker.event_ids() == [healthy.event_id]
            assert report.selected == 4
            assert report.rejected == 1
            assert report.deferred == 2
            assert report.published == 1
            report = await publisher.publish_pending()
            assert report.rejected == 1
            assert report.published == 0
            assert (await publisher.backlog()).pending == 3
            await factory.dispose()

        asyncio.run(run())

    def test_selection_stops_once_batch_is_attempted(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = PoisonedKeyBroker("poison")
            clock = FakeClock()
            writer = OutboxWriter("trips", clock=clock)
            for key in ("poison", "poison", "k2", "k3", "k4"):
                await _append(uow_factory, writer, key)
                clock.advance(seconds=1)
            publisher = OutboxPublisher(uow_factory, broker, batch_size=2, clock=clock)

            report = await publisher.publish_pending()

            assert report.rejected == 1
            assert report.published == 1
            assert [m.partition_key for m in broker.published] == ["k2"]
            await factory.dispose()

        asyncio.run(run())

    def test_record_without_row_id_aborts_the_tick(self) -> None:
        record = OutboxRecord(
            event_id=new_event_id(),
            event_type="TripCreated.v1",
            partition_key="k1",
            payload=b"{}",
            producer="trips",
            occurred_at=FakeClock().now(),
        )

        class IdlessOutbox:
            async def fetch_unpublished(self, limit, *, claim=False, exclude_keys=()):
                return [record]

        class StubUnitOfWork:
            outbox = IdlessOutbox()

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc_info):
                return None

        broker = InMemoryBroker()
        publisher = OutboxPublisher(StubUnitOfWork, broker)
        with pytest.raises(InfrastructureError, match="no row id"):
            asyncio.run(publisher.publish_pending())
        assert broker.publish_calls == 0

    def test_broker_exceptions_map_to_outcomes(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            writer = OutboxWriter("trips")
            transient = await _append(uow_factory, writer, "k1")
            permanent = await _append(uow_factory, writer, "k2")
            unexpected = await _append(uow_factory, writer, "k3")
            broker.script(
                BrokerError("leader not available"),
                BrokerError("message too large", permanent=True),
                ConnectionResetError("peer went away"),
            )
            report = await OutboxPublisher(uow_factory, broker).publish_pending()

            assert report.failed == 2
            assert report.rejected == 1
            assert report.published == 0
            async with uow_factory() as uow:
                assert (await uow.outbox.get(transient.event_id)).last_error == "leader not available"
                assert (await uow.outbox.get(permanent.event_id)).last_error == "message too large"
                assert "ConnectionResetError" in (await uow.outbox.get(unexpected.event_id)).last_error
            await factory.dispose()

        asyncio.run(run())


class TestCrashAfterBrokerAck:
    def test_republished_event_is_applied_once(self, sqlite_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            writer = OutboxWriter("votes")
            aggregator = ScoreAggregator(writer)
            async with uow_factory() as uow:
                await aggregator.record_vote(uow, "post-1", "user-1", 1)

            original = SqlAlchemyOutboxStore.mark_published
            crashes = []

            async def crash_once(self, record_id, published_at):
                if not crashes:
                    crashes.append(record_id)
                    raise RuntimeError("relay process died")
                return await original(self, record_id, published_at)

            monkeypatch.setattr(SqlAlchemyOutboxStore, "mark_published", crash_once)
            publisher = OutboxPublisher(uow_factory, broker)
            with pytest.raises(RuntimeError):
                await publisher.publish_pending()
            assert not publisher.is_running
            assert (await publisher.backlog()).pending == 1

            report = await publisher.publish_pending()
            assert report.published == 1
            assert len(set(broker.event_ids())) == 1
            assert len(broker.event_ids()) == 2

            # a replica consumer maintains its own copy of the score
            replica = await create_test_database(sqlite_url.replace("outbox.db", "replica.db"))
            replica_uows = SqlAlchemyUnitOfWork.factory(replica)
            registry = HandlerRegistry()
            registry.register(VOTE_CHANGED, ScoreAggregator().handle_vote_changed)
            dispatcher = IdempotentDispatcher("scores", replica_uows, registry)
            subscription = broker.subscribe("events", "scores")

            outcomes = await subscription.drain(dispatcher)

            assert outcomes == [DispatchOutcome.APPLIED, DispatchOutcome.DUPLICATE]
            async with replica_uows() as uow:
                score = await uow.scores.get("post-1")
            assert (score.upvotes, score.downvotes, score.score) == (1, 0, 1)
            await replica.dispose()
            await factory.dispose()

        asyncio.run(run())


class TestReentrancy:
    def test_overlapping_tick_is_skipped(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = GatedBroker()
            await _append(uow_factory, OutboxWriter("trips"), "k1")
            publisher = OutboxPublisher(uow_factory, broker)

            first = asyncio.create_task(publisher.publish_pending())
            await broker.entered.wait()
            assert publisher.is_running
            second = await publisher.publish_pending()
            broker.release.set()
            first_report = await first

            assert second.skipped is True
            assert first_report.published == 1
            assert broker.publish_calls == 1
            await factory.dispose()

        asyncio.run(run())


class TestPurgeAndBacklog:
    def test_purge_removes_only_published_records_past_retention(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            clock = FakeClock()
            metrics = FakeMetricsRegistry()
            writer = OutboxWriter("trips", clock=clock)
            publisher = OutboxPublisher(
                uow_factory, broker, clock=clock, metrics=metrics, purge_chunk_size=2
            )
            old = [await _append(uow_factory, writer, f"old-{n}") for n in range(3)]
            await publisher.publish_pending()
            broker.script(PublishOutcome.NACK)
            stuck = await _append(uow_factory, writer, "stuck")
            await publisher.publish_pending()

            clock.advance(days=6)
            recent = await _append(uow_factory, writer, "recent")
            broker.script(PublishOutcome.NACK)
            await publisher.publish_pending()
            clock.advance(days=2)

            assert await publisher.purge_published() == 3
            async with uow_factory() as uow:
                for record in old:
                    assert await uow.outbox.get(record.event_id) is None
                assert (await uow.outbox.get(recent.event_id)).published is True
                assert (await uow.outbox.get(stuck.event_id)).published is False
            metrics.assert_counter_total(names.OUTBOX_PURGED, 3)
            assert await publisher.purge_published() == 0
            await factory.dispose()

        asyncio.run(run())

    def test_backlog_gauges_track_pending_records(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            clock = FakeClock()
            metrics = FakeMetricsRegistry()
            writer = OutboxWriter("trips", clock=clock)
            await _append(uow_factory, writer, "k1")
            await _append(uow_factory, writer, "k1")
            clock.advance(seconds=90)
            publisher = OutboxPublisher(uow_factory, broker, clock=clock, metrics=metrics)

            broker.script(PublishOutcome.NACK)
            await publisher.publish_pending()
            assert metrics.gauge_value(names.OUTBOX_BACKLOG_SIZE) == 2
            assert metrics.gauge_value(names.OUTBOX_BACKLOG_OLDEST_AGE) == 90.0

            await publisher.publish_pending()
            assert metrics.gauge_value(names.OUTBOX_BACKLOG_SIZE) == 0
            assert metrics.gauge_value(names.OUTBOX_BACKLOG_OLDEST_AGE) == 0.0
            await factory.dispose()

        asyncio.run(run())


class TestOutboxRelay:
    def test_relay_publishes_in_the_background(self, sqlite_url: str) -> None:
        async def run() -> None:
            factory = await create_test_database(sqlite_url)
            uow_factory = SqlAlchemyUnitOfWork.factory(factory)
            broker = InMemoryBroker()
            record = await _append(uow_factory, OutboxWriter("trips"), "k1")
            relay = OutboxRelay(
                OutboxPublisher(uow_factory, broker),
                poll_interval_seconds=0.01,
                purge_interval_seconds=60,
            )
            await relay.start()
            assert relay.is_running
            for _ in range(200):
                if broker.publish_calls:
                    break
                await asyncio.sleep(0.01)
            await relay.stop()

            assert not relay.is_running
            assert broker.event_ids() == [record.event_id]
            await factory.dispose()

        asyncio.run(run())

    def test_from_settings_wires_publisher(self, sqlite_url: str) -> None:
        settings = RelaySettings(topic="trips", batch_size=10, poll_interval_seconds=0.2)
        relay = OutboxRelay.from_settings(settings, lambda: None, InMemoryBroker())
        jobs = {job.id: job for job in relay.scheduler.list_jobs()}
        assert jobs["outbox.publish"].interval_seconds == 0.2
        assert jobs["outbox.purge"].interval_seconds == settings.purge_interval_seconds
