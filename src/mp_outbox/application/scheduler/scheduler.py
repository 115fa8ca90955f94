"""Application scheduler – Scheduler port and single job execution."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from mp_outbox.application.scheduler.job import Job
from mp_outbox.kernel.errors import describe_error
from mp_outbox.kernel.time import Clock, SystemClock
from mp_outbox.observability.logging import get_logger

__all__ = ["JobRun", "Scheduler", "execute_job"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class JobRun:
    """Outcome of one execution of a :class:`Job`."""

    job_id: str
    started_at: datetime
    finished_at: datetime
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def duration_ms(self) -> float:
        return (self.finished_at - self.started_at).total_seconds() * 1000


async def execute_job(job: Job, clock: Clock | None = None) -> JobRun:
    """Run *job* once; a failing handler is logged and recorded, never raised."""
    clock = clock or SystemClock()
    started_at = clock.now()
    error: str | None = None
    try:
        await job.handler()
    except Exception as exc:  # noqa: BLE001
        error = describe_error(exc)
        logger.exception("job.failed", job_id=job.id, job_name=job.name)
    return JobRun(job_id=job.id, started_at=started_at, finished_at=clock.now(), error=error)


@runtime_checkable
class Scheduler(Protocol):
    """Port: own a set of periodic jobs and their lifecycle."""

    def add_job(self, job: Job) -> None: ...
    def remove_job(self, job_id: str) -> None: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def list_jobs(self) -> list[Job]: ...
