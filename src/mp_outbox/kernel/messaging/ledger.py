"""Kernel messaging – dedup ledger port."""
from __future__ import annotations

import abc
import dataclasses
from datetime import datetime

from mp_outbox.kernel.time import utc_now


@dataclasses.dataclass(frozen=True)
class DedupLedgerEntry:
    """Proof that *consumer_group* applied *event_id*."""

    consumer_group: str
    event_id: str
    processed_at: datetime = dataclasses.field(default_factory=utc_now)


class DedupLedger(abc.ABC):
    """Port: per-consumer-group record of applied event ids.

    Writes must join the caller's transaction so the entry commits or rolls
    back together with the state change it guards.
    """

    @abc.abstractmethod
    async def contains(self, consumer_group: str, event_id: str) -> bool: ...

    @abc.abstractmethod
    async def record(self, entry: DedupLedgerEntry) -> None:
        """Insert *entry*; raise ``DuplicateEventError`` if the pair exists."""

    @abc.abstractmethod
    async def purge_before(self, consumer_group: str, before: datetime) -> int:
        """Drop entries older than the broker's redelivery horizon."""


__all__ = ["DedupLedger", "DedupLedgerEntry"]
