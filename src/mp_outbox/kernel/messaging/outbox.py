"""Kernel messaging – outbox record and store port.

Record lifecycle::

    created (published=False) ──► published ──► purged (row deleted)

There are no back-transitions: ``published`` is never reset and only
published rows are ever purged.
"""
from __future__ import annotations

import abc
import dataclasses
from collections.abc import Collection
from datetime import datetime
from enum import Enum

from mp_outbox.kernel.messaging.envelope import EventEnvelope, decode_payload
from mp_outbox.kernel.time import utc_now


class OutboxStatus(str, Enum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"


@dataclasses.dataclass
class OutboxRecord:
    """An event persisted atomically with the domain change it describes."""

    event_id: str
    event_type: str
    partition_key: str
    payload: bytes
    producer: str = ""
    trace_context: dict[str, str] = dataclasses.field(default_factory=dict)
    occurred_at: datetime = dataclasses.field(default_factory=utc_now)
    created_at: datetime = dataclasses.field(default_factory=utc_now)
    published: bool = False
    published_at: datetime | None = None
    publish_attempts: int = 0
    last_error: str | None = None
    id: int | None = None

    @property
    def status(self) -> OutboxStatus:
        return OutboxStatus.PUBLISHED if self.published else OutboxStatus.PENDING

    def to_envelope(self) -> EventEnvelope:
        return EventEnvelope(
            event_id=self.event_id,
            event_type=self.event_type,
            occurred_at=self.occurred_at,
            producer=self.producer,
            partition_key=self.partition_key,
            payload=decode_payload(self.payload),
            trace_context=dict(self.trace_context),
        )


@dataclasses.dataclass(frozen=True)
class OutboxBacklog:
    """Unpublished-record statistics used for backlog metrics."""

    pending: int = 0
    oldest_created_at: datetime | None = None

    def oldest_age_seconds(self, now: datetime) -> float:
        if self.oldest_created_at is None:
            return 0.0
        return max(0.0, (now - self.oldest_created_at).total_seconds())


class OutboxStore(abc.ABC):
    """Port: the per-partition outbox table, bound to one local transaction."""

    @abc.abstractmethod
    async def append(self, record: OutboxRecord) -> OutboxRecord:
        """Insert *record*; it becomes visible when the transaction commits."""

    @abc.abstractmethod
    async def get(self, event_id: str) -> OutboxRecord | None: ...

    @abc.abstractmethod
    async def fetch_unpublished(
        self,
        limit: int = 50,
        *,
        claim: bool = False,
        exclude_keys: Collection[str] = (),
    ) -> list[OutboxRecord]:
        """Oldest unpublished records first, ordered by ``(created_at, event_id)``.

        Records whose partition key is in *exclude_keys* are not returned.

        With ``claim=True`` the rows are locked for this transaction and rows
        locked by other publishers are skipped (where the database supports it).
        """

    @abc.abstractmethod
    async def mark_published(self, record_id: int, published_at: datetime) -> bool:
        """Flip ``published`` to true; return ``False`` if it already was."""

    @abc.abstractmethod
    async def record_failure(self, record_id: int, error: str) -> None:
        """Bump ``publish_attempts`` and remember *error* for repair tooling."""

    @abc.abstractmethod
    async def purge_published(self, before: datetime, limit: int | None = None) -> int:
        """Delete published rows with ``published_at < before``; return count."""

    @abc.abstractmethod
    async def backlog(self) -> OutboxBacklog: ...


__all__ = ["OutboxBacklog", "OutboxRecord", "OutboxStatus", "OutboxStore"]
