"""Application consumer – IdempotentDispatcher.

Effectively-once application on top of at-least-once delivery::

    decode ─► ledger has (group, event_id)? ── yes ─► ack (DUPLICATE)
                         │ no
                         ▼
              handler(envelope, uow) + ledger insert   (one transaction)
                         │ commit
                         ▼
                        ack (APPLIED)

A handler failure rolls the transaction back and nacks the delivery; once
``max_attempts`` is reached the message goes to the dead-letter store and is
acked so the partition is no longer blocked.

Ledger entries are kept for ``ledger_retention``, which must outlast the
broker's redelivery horizon; :meth:`IdempotentDispatcher.ledger_purge_job`
deletes older ones.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum

from mp_outbox.application.consumer.handlers import EventHandler, HandlerRegistry
from mp_outbox.application.scheduler import Job
from mp_outbox.config.settings import RelaySettings
from mp_outbox.kernel.errors import (
    DuplicateEventError,
    NotFoundError,
    SerializationError,
    describe_error,
)
from mp_outbox.kernel.messaging import (
    DeadLetterEntry,
    DedupLedgerEntry,
    Delivery,
    EventEnvelope,
    UnitOfWork,
)
from mp_outbox.kernel.time import Clock, SystemClock
from mp_outbox.observability.logging import event_log_context, get_logger
from mp_outbox.observability.metrics import Metrics, NoopMetrics
from mp_outbox.observability.metrics import names
from mp_outbox.observability.tracing import attached_trace_context

logger = get_logger(__name__)


class DispatchOutcome(str, Enum):
    APPLIED = "APPLIED"
    DUPLICATE = "DUPLICATE"
    IGNORED = "IGNORED"
    RETRY = "RETRY"
    DEAD_LETTERED = "DEAD_LETTERED"


class IdempotentDispatcher:
    """Apply each delivered event at most once per consumer group."""

    def __init__(
        self,
        consumer_group: str,
        uow_factory: Callable[[], UnitOfWork],
        handlers: HandlerRegistry,
        *,
        max_attempts: int = 5,
        ledger_retention: timedelta = timedelta(days=14),
        ledger_purge_interval_seconds: float = 3600.0,
        clock: Clock | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if ledger_retention <= timedelta(0):
            raise ValueError("ledger_retention must be positive")
        self._group = consumer_group
        self._uow_factory = uow_factory
        self._handlers = handlers
        self._max_attempts = max_attempts
        self._ledger_retention = ledger_retention
        self._ledger_purge_interval = ledger_purge_interval_seconds
        self._clock = clock or SystemClock()
        metrics = metrics or NoopMetrics()
        self._applied = metrics.instrument(names.CONSUMER_APPLIED)
        self._duplicate = metrics.instrument(names.CONSUMER_DUPLICATE)
        self._failed = metrics.instrument(names.CONSUMER_FAILED)
        self._dead_lettered = metrics.instrument(names.CONSUMER_DEAD_LETTERED)

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        consumer_group: str,
        uow_factory: Callable[[], UnitOfWork],
        handlers: HandlerRegistry,
        *,
        clock: Clock | None = None,
        metrics: Metrics | None = None,
    ) -> "IdempotentDispatcher":
        return cls(
            consumer_group,
            uow_factory,
            handlers,
            max_attempts=settings.max_delivery_attempts,
            ledger_retention=timedelta(days=settings.ledger_retention_days),
            ledger_purge_interval_seconds=settings.purge_interval_seconds,
            clock=clock,
            metrics=metrics,
        )

    @property
    def consumer_group(self) -> str:
        return self._group

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def ledger_retention(self) -> timedelta:
        return self._ledger_retention

    async def dispatch(self, delivery: Delivery) -> DispatchOutcome:
        try:
            envelope = EventEnvelope.from_bytes(delivery.data)
        except SerializationError as exc:
            logger.error(
                "dispatch.undecodable",
                consumer_group=self._group,
                topic=delivery.topic,
                error=exc.message,
            )
            await self._dead_letter(delivery, None, f"undecodable envelope: {exc.message}")
            await delivery.ack()
            return DispatchOutcome.DEAD_LETTERED

        with event_log_context(
            consumer_group=self._group,
            event_id=envelope.event_id,
            event_type=envelope.event_type,
            partition_key=envelope.partition_key,
        ):
            handler = self._handlers.get(envelope.event_type)
            if handler is None:
                logger.debug("dispatch.ignored")
                await delivery.ack()
                return DispatchOutcome.IGNORED
            try:
                outcome = await self._apply(envelope, handler)
            except Exception as exc:  # noqa: BLE001
                return await self._handle_failure(delivery, envelope, exc)
            await delivery.ack()
            return outcome

    async def _apply(self, envelope: EventEnvelope, handler: EventHandler) -> DispatchOutcome:
        try:
            async with self._uow_factory() as uow:
                if await uow.ledger.contains(self._group, envelope.event_id):
                    outcome = DispatchOutcome.DUPLICATE
                else:
                    with attached_trace_context(envelope.trace_context):
                        await handler(envelope, uow)
                    await uow.ledger.record(
                        DedupLedgerEntry(self._group, envelope.event_id, self._clock.now())
                    )
                    outcome = DispatchOutcome.APPLIED
        except DuplicateEventError:
            # a concurrent consumer of the same group committed first
            outcome = DispatchOutcome.DUPLICATE
        if outcome is DispatchOutcome.DUPLICATE:
            self._duplicate.add(1, {"consumer_group": self._group})
            logger.info("dispatch.duplicate")
        else:
            self._applied.add(1, {"consumer_group": self._group, "event_type": envelope.event_type})
            logger.debug("dispatch.applied")
        return outcome

    async def _handle_failure(
        self,
        delivery: Delivery,
        envelope: EventEnvelope,
        exc: Exception,
    ) -> DispatchOutcome:
        self._failed.add(1, {"consumer_group": self._group, "event_type": envelope.event_type})
        if delivery.attempt >= self._max_attempts:
            reason = describe_error(exc)
            logger.error("dispatch.dead_lettered", attempt=delivery.attempt, error=reason)
            await self._dead_letter(delivery, envelope, reason)
            await delivery.ack()
            return DispatchOutcome.DEAD_LETTERED
        logger.warning("dispatch.retry", attempt=delivery.attempt, error=describe_error(exc), exc_info=exc)
        await delivery.nack()
        return DispatchOutcome.RETRY

    async def _dead_letter(
        self,
        delivery: Delivery,
        envelope: EventEnvelope | None,
        reason: str,
    ) -> None:
        entry = DeadLetterEntry(
            consumer_group=self._group,
            data=delivery.data,
            reason=reason,
            event_id=envelope.event_id if envelope else None,
            event_type=envelope.event_type if envelope else None,
            topic=delivery.topic,
            attempts=delivery.attempt,
            failed_at=self._clock.now(),
        )
        async with self._uow_factory() as uow:
            await uow.dead_letters.push(entry)
        self._dead_lettered.add(1, {"consumer_group": self._group})

    async def replay(self, entry_id: str) -> DispatchOutcome:
        """Re-run a dead-lettered message through the ledger-guarded path.

        Handler errors propagate to the operator and leave the entry in place.
        Replaying an entry that was already applied returns ``DUPLICATE``.
        """
        async with self._uow_factory() as uow:
            entry = await uow.dead_letters.get(entry_id)
        if entry is None or entry.consumer_group != self._group:
            raise NotFoundError("DeadLetterEntry", entry_id)
        envelope = EventEnvelope.from_bytes(entry.data)
        handler = self._handlers.get(envelope.event_type)
        if handler is None:
            logger.warning("dispatch.replay_ignored", dead_letter_id=entry_id, event_type=envelope.event_type)
            return DispatchOutcome.IGNORED
        with event_log_context(
            consumer_group=self._group,
            event_id=envelope.event_id,
            event_type=envelope.event_type,
            dead_letter_id=entry_id,
        ):
            outcome = await self._apply(envelope, handler)
            async with self._uow_factory() as uow:
                await uow.dead_letters.mark_replayed(entry_id, self._clock.now())
            logger.info("dispatch.replayed", outcome=outcome.value)
        return outcome

    async def purge_ledger(self, now: datetime | None = None) -> int:
        """Delete this group's ledger entries older than the retention window."""
        cutoff = (now or self._clock.now()) - self._ledger_retention
        async with self._uow_factory() as uow:
            removed = await uow.ledger.purge_before(self._group, cutoff)
        if removed:
            logger.info("dispatch.ledger_purged", consumer_group=self._group, removed=removed)
        return removed

    def ledger_purge_job(self, interval_seconds: float | None = None) -> Job:
        return Job(
            id=f"consumer.ledger_purge.{self._group}",
            name=f"Purge dedup ledger of {self._group}",
            handler=self.purge_ledger,
            interval_seconds=interval_seconds or self._ledger_purge_interval,
        )


__all__ = ["DispatchOutcome", "IdempotentDispatcher"]
