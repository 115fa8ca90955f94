"""Application outbox – OutboxPublisher.

One tick of the publisher::

    fetch unpublished (oldest first) ─► publish each to the broker
        ACK       ─► mark published (idempotent)
        NACK      ─► leave pending, record attempt, block the key
        REJECTED  ─► leave pending, record attempt, block the key, log error

Records of a blocked key are skipped for the rest of the tick, and selection
pages past them, so one stuck key never holds back the others.

A crash between the broker's ack and the mark leaves the record pending, so
it is published again on the next tick. Consumers absorb the duplicate
through their dedup ledger.
"""
from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable
from datetime import datetime, timedelta

from mp_outbox.kernel.errors import (
    BrokerError,
    InfrastructureError,
    SerializationError,
    describe_error,
)
from mp_outbox.kernel.messaging import (
    MessageBroker,
    OutboxBacklog,
    OutboxRecord,
    PublishOutcome,
    UnitOfWork,
)
from mp_outbox.kernel.time import Clock, SystemClock
from mp_outbox.observability.logging import get_logger
from mp_outbox.observability.metrics import Metrics, NoopMetrics
from mp_outbox.observability.metrics import names

logger = get_logger(__name__)

TopicResolver = Callable[[OutboxRecord], str]


@dataclasses.dataclass(frozen=True)
class PublishReport:
    """Summary of one publisher tick."""

    selected: int = 0
    published: int = 0
    failed: int = 0
    rejected: int = 0
    deferred: int = 0
    skipped: bool = False


class OutboxPublisher:
    """Relays committed outbox records to the broker.

    Parameters
    ----------
    uow_factory:
        Returns a fresh :class:`UnitOfWork`; each tick runs in one of them.
    broker:
        Destination :class:`MessageBroker`.
    topic:
        A topic name, or a callable choosing the topic per record.
    batch_size:
        Maximum records selected per tick.
    claim_rows:
        Lock selected rows and skip rows locked by other publishers.
    retention:
        How long published records are kept before :meth:`purge_published`
        deletes them.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        broker: MessageBroker,
        *,
        topic: str | TopicResolver = "events",
        batch_size: int = 50,
        claim_rows: bool = False,
        retention: timedelta = timedelta(days=7),
        purge_chunk_size: int = 1000,
        clock: Clock | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._uow_factory = uow_factory
        self._broker = broker
        self._topic = topic
        self._batch_size = batch_size
        self._claim_rows = claim_rows
        self._retention = retention
        self._purge_chunk_size = purge_chunk_size
        self._clock = clock or SystemClock()
        self._tick_lock = asyncio.Lock()
        metrics = metrics or NoopMetrics()
        self._published = metrics.instrument(names.OUTBOX_PUBLISHED)
        self._failed = metrics.instrument(names.OUTBOX_PUBLISH_FAILED)
        self._rejected = metrics.instrument(names.OUTBOX_PUBLISH_REJECTED)
        self._latency = metrics.instrument(names.OUTBOX_PUBLISH_LATENCY)
        self._purged = metrics.instrument(names.OUTBOX_PURGED)
        self._backlog_size = metrics.instrument(names.OUTBOX_BACKLOG_SIZE)
        self._backlog_age = metrics.instrument(names.OUTBOX_BACKLOG_OLDEST_AGE)

    @property
    def is_running(self) -> bool:
        return self._tick_lock.locked()

    async def publish_pending(self) -> PublishReport:
        """Run one tick; returns ``PublishReport(skipped=True)`` if one is in flight."""
        if self._tick_lock.locked():
            logger.debug("outbox.tick_skipped")
            return PublishReport(skipped=True)
        async with self._tick_lock:
            report = await self._publish_batch()
            await self._refresh_backlog()
        if report.selected:
            logger.info(
                "outbox.tick",
                selected=report.selected,
                published=report.published,
                failed=report.failed,
                rejected=report.rejected,
                deferred=report.deferred,
            )
        return report

    async def _publish_batch(self) -> PublishReport:
        selected = published = failed = rejected = deferred = 0
        attempted = 0
        blocked: set[str] = set()
        async with self._uow_factory() as uow:
            # a blocked key must not starve the others: page past its records
            while attempted < self._batch_size:
                limit = self._batch_size - attempted
                records = await uow.outbox.fetch_unpublished(
                    limit, claim=self._claim_rows, exclude_keys=blocked
                )
                selected += len(records)
                for record in records:
                    if record.partition_key in blocked:
                        deferred += 1
                        continue
                    attempted += 1
                    record_id = _stored_id(record)
                    outcome, error = await self._publish_one(record)
                    if outcome is PublishOutcome.ACK:
                        if await uow.outbox.mark_published(record_id, self._clock.now()):
                            published += 1
                            self._published.add(1, {"event_type": record.event_type})
                        else:
                            logger.debug("outbox.already_published", event_id=record.event_id)
                        continue
                    blocked.add(record.partition_key)
                    await uow.outbox.record_failure(record_id, error or outcome.value)
                    if outcome is PublishOutcome.REJECTED:
                        rejected += 1
                        self._rejected.add(1, {"event_type": record.event_type})
                        logger.error(
                            "outbox.publish_rejected",
                            event_id=record.event_id,
                            event_type=record.event_type,
                            partition_key=record.partition_key,
                            attempts=record.publish_attempts + 1,
                            error=error,
                        )
                    else:
                        failed += 1
                        self._failed.add(1, {"event_type": record.event_type})
                        logger.warning(
                            "outbox.publish_failed",
                            event_id=record.event_id,
                            partition_key=record.partition_key,
                            attempts=record.publish_attempts + 1,
                            error=error,
                        )
                if len(records) < limit:
                    break
        return PublishReport(
            selected=selected,
            published=published,
            failed=failed,
            rejected=rejected,
            deferred=deferred,
        )

    async def _publish_one(self, record: OutboxRecord) -> tuple[PublishOutcome, str | None]:
        try:
            data = record.to_envelope().to_bytes()
        except SerializationError as exc:
            return PublishOutcome.REJECTED, exc.message
        topic = self._topic(record) if callable(self._topic) else self._topic
        start = time.perf_counter()
        try:
            outcome = await self._broker.publish(topic, record.partition_key, data)
        except BrokerError as exc:
            outcome = PublishOutcome.REJECTED if exc.permanent else PublishOutcome.NACK
            return outcome, exc.message
        except Exception as exc:  # noqa: BLE001
            logger.warning("outbox.broker_error", event_id=record.event_id, exc_info=True)
            return PublishOutcome.NACK, describe_error(exc)
        finally:
            self._latency.record((time.perf_counter() - start) * 1000.0, {"topic": topic})
        return outcome, None

    async def purge_published(self, now: datetime | None = None) -> int:
        """Delete published records older than the retention window.

        Deletes in chunks, one transaction each, so a large purge never holds
        long locks against the publisher.
        """
        before = (now or self._clock.now()) - self._retention
        total = 0
        while True:
            async with self._uow_factory() as uow:
                removed = await uow.outbox.purge_published(before, limit=self._purge_chunk_size)
            total += removed
            if removed < self._purge_chunk_size:
                break
        if total:
            self._purged.add(total)
            logger.info("outbox.purged", count=total, before=before.isoformat())
        return total

    async def backlog(self) -> OutboxBacklog:
        async with self._uow_factory() as uow:
            return await uow.outbox.backlog()

    async def _refresh_backlog(self) -> None:
        backlog = await self.backlog()
        self._backlog_size.set(backlog.pending)
        self._backlog_age.set(backlog.oldest_age_seconds(self._clock.now()))


def _stored_id(record: OutboxRecord) -> int:
    if record.id is None:
        raise InfrastructureError(
            f"Outbox record '{record.event_id}' has no row id",
            detail={"event_id": record.event_id},
        )
    return record.id


__all__ = ["OutboxPublisher", "PublishReport", "TopicResolver"]
