"""Application scheduler – PeriodicTask and PeriodicScheduler.

Every background role (publisher tick, purge, reconciliation) is a
:class:`PeriodicTask`: an independent asyncio task that runs its job every
``interval_seconds``, skips a run while the previous one is in flight, and on
:meth:`PeriodicTask.stop` waits for the in-flight run instead of cancelling
it mid-transaction.
"""
from __future__ import annotations

import asyncio
from collections import deque

from mp_outbox.application.scheduler.job import Job
from mp_outbox.application.scheduler.scheduler import JobRun, execute_job
from mp_outbox.kernel.time import Clock
from mp_outbox.observability.logging import get_logger

__all__ = ["PeriodicScheduler", "PeriodicTask"]

logger = get_logger(__name__)


class PeriodicTask:
    """Run *job* every ``job.interval_seconds`` on its own asyncio task."""

    def __init__(self, job: Job, *, history_size: int = 100, clock: Clock | None = None) -> None:
        self._job = job
        self._guard = asyncio.Lock()
        self._stopping: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None
        self._clock = clock
        self.history: deque[JobRun] = deque(maxlen=history_size)
        self.consecutive_failures = 0

    @property
    def job(self) -> Job:
        return self._job

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_busy(self) -> bool:
        return self._guard.locked()

    async def run_once(self) -> JobRun | None:
        """Run the job now; ``None`` when a run is already in flight."""
        if self._guard.locked():
            logger.debug("job.skipped", job_id=self._job.id)
            return None
        async with self._guard:
            outcome = await execute_job(self._job, self._clock)
        self.history.append(outcome)
        if outcome.success:
            self.consecutive_failures = 0
        else:
            self.consecutive_failures += 1
            logger.warning(
                "job.failing", job_id=self._job.id, consecutive_failures=self.consecutive_failures
            )
        return outcome

    def start(self) -> None:
        if self.is_running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self._job.id}")
        logger.info("job.started", job_id=self._job.id, interval_seconds=self._job.interval_seconds)

    async def stop(self) -> None:
        """Stop scheduling new runs and wait for the in-flight one to finish."""
        if self._task is None or self._stopping is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("job.stopped", job_id=self._job.id)

    async def _loop(self) -> None:
        assert self._stopping is not None
        while not self._stopping.is_set():
            if self._job.enabled:
                await self.run_once()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._job.interval_seconds)
            except TimeoutError:
                pass


class PeriodicScheduler:
    """Scheduler that owns one :class:`PeriodicTask` per registered job."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock
        self._tasks: dict[str, PeriodicTask] = {}
        self._running = False
        self._detached: set[asyncio.Task[None]] = set()

    def add_job(self, job: Job) -> None:
        if job.id in self._tasks:
            raise ValueError(f"Job '{job.id}' is already registered")
        task = PeriodicTask(job, clock=self._clock)
        self._tasks[job.id] = task
        if self._running:
            task.start()

    def remove_job(self, job_id: str) -> None:
        task = self._tasks.pop(job_id, None)
        if task is not None and task.is_running:
            stopper = asyncio.get_running_loop().create_task(task.stop())
            self._detached.add(stopper)
            stopper.add_done_callback(self._detached.discard)

    def task(self, job_id: str) -> PeriodicTask:
        return self._tasks[job_id]

    async def start(self) -> None:
        self._running = True
        for task in self._tasks.values():
            task.start()

    async def stop(self) -> None:
        self._running = False
        await asyncio.gather(*(task.stop() for task in self._tasks.values()), *self._detached)

    def list_jobs(self) -> list[Job]:
        return [task.job for task in self._tasks.values()]

    async def trigger(self, job_id: str) -> JobRun | None:
        """Manually fire a job outside its schedule (still guarded)."""
        return await self._tasks[job_id].run_once()

    @property
    def is_running(self) -> bool:
        return self._running
