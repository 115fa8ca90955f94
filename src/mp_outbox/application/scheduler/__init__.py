"""Application scheduler – periodic jobs for relay, purge and reconciliation."""
from mp_outbox.application.scheduler.job import Job
from mp_outbox.application.scheduler.periodic import PeriodicScheduler, PeriodicTask
from mp_outbox.application.scheduler.scheduler import JobRun, Scheduler, execute_job

__all__ = [
    "Job",
    "JobRun",
    "PeriodicScheduler",
    "PeriodicTask",
    "Scheduler",
    "execute_job",
]
