"""Application outbox – OutboxRelay: the publisher and purge loops of one partition."""
from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta

from mp_outbox.application.outbox.publisher import OutboxPublisher
from mp_outbox.application.scheduler import Job, PeriodicScheduler
from mp_outbox.config.settings import RelaySettings
from mp_outbox.kernel.messaging import MessageBroker, UnitOfWork
from mp_outbox.kernel.time import Clock
from mp_outbox.observability.logging import get_logger
from mp_outbox.observability.metrics import Metrics

PUBLISH_JOB_ID = "outbox.publish"
PURGE_JOB_ID = "outbox.purge"

logger = get_logger(__name__)


class OutboxRelay:
    """Runs :meth:`OutboxPublisher.publish_pending` and
    :meth:`OutboxPublisher.purge_published` as independent periodic tasks.

    ``stop()`` lets an in-flight batch finish before returning.
    """

    def __init__(
        self,
        publisher: OutboxPublisher,
        *,
        poll_interval_seconds: float = 0.5,
        purge_interval_seconds: float = 3600.0,
        scheduler: PeriodicScheduler | None = None,
    ) -> None:
        self.publisher = publisher
        self.scheduler = scheduler or PeriodicScheduler()
        self.scheduler.add_job(
            Job(
                id=PUBLISH_JOB_ID,
                name="Publish pending outbox records",
                handler=publisher.publish_pending,
                interval_seconds=poll_interval_seconds,
            )
        )
        self.scheduler.add_job(
            Job(
                id=PURGE_JOB_ID,
                name="Purge published outbox records",
                handler=publisher.purge_published,
                interval_seconds=purge_interval_seconds,
            )
        )

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        uow_factory: Callable[[], UnitOfWork],
        broker: MessageBroker,
        *,
        clock: Clock | None = None,
        metrics: Metrics | None = None,
    ) -> "OutboxRelay":
        publisher = OutboxPublisher(
            uow_factory,
            broker,
            topic=settings.topic,
            batch_size=settings.batch_size,
            claim_rows=settings.claim_rows,
            retention=timedelta(days=settings.retention_days),
            clock=clock,
            metrics=metrics,
        )
        logger.info("relay.configured", settings=settings.as_log_dict())
        return cls(
            publisher,
            poll_interval_seconds=settings.poll_interval_seconds,
            purge_interval_seconds=settings.purge_interval_seconds,
            scheduler=PeriodicScheduler(clock),
        )

    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running


__all__ = ["OutboxRelay", "PUBLISH_JOB_ID", "PURGE_JOB_ID"]
