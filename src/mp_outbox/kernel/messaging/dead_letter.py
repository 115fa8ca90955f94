"""Kernel messaging – dead-letter channel port."""
from __future__ import annotations

import abc
import dataclasses
from datetime import datetime
from uuid import uuid4

from mp_outbox.kernel.time import utc_now


@dataclasses.dataclass
class DeadLetterEntry:
    """A message that exhausted its delivery attempts for a consumer group."""

    consumer_group: str
    data: bytes
    reason: str
    id: str = dataclasses.field(default_factory=lambda: str(uuid4()))
    event_id: str | None = None
    event_type: str | None = None
    topic: str = ""
    attempts: int = 0
    failed_at: datetime = dataclasses.field(default_factory=utc_now)
    replayed_at: datetime | None = None

    @property
    def replayed(self) -> bool:
        return self.replayed_at is not None


class DeadLetterStore(abc.ABC):
    """Port: persistence for dead-lettered messages awaiting manual replay."""

    @abc.abstractmethod
    async def push(self, entry: DeadLetterEntry) -> None: ...

    @abc.abstractmethod
    async def get(self, entry_id: str) -> DeadLetterEntry | None: ...

    @abc.abstractmethod
    async def list(
        self,
        consumer_group: str,
        limit: int = 100,
        *,
        include_replayed: bool = False,
    ) -> list[DeadLetterEntry]:
        """Return at most *limit* entries, oldest first."""

    @abc.abstractmethod
    async def mark_replayed(self, entry_id: str, replayed_at: datetime) -> None: ...


__all__ = ["DeadLetterEntry", "DeadLetterStore"]
