"""Application outbox – OutboxWriter.

The writer is the only way domain code emits events. It appends to the
outbox store of the caller's unit of work and never talks to the broker, so
the event commits or aborts together with the domain rows::

    async with uow_factory() as uow:
        trip = await uow.session.merge(trip_row)
        await writer.append(
            uow.outbox,
            "TripCreated.v1",
            partition_key=trip.id,
            payload={"tripId": trip.id, "ownerId": trip.owner_id},
        )
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mp_outbox.kernel.errors import ValidationError
from mp_outbox.kernel.messaging import EventType, OutboxRecord, OutboxStore, encode_payload
from mp_outbox.kernel.time import Clock, SystemClock
from mp_outbox.kernel.types import new_event_id
from mp_outbox.observability.logging import get_logger
from mp_outbox.observability.tracing import current_trace_context

logger = get_logger(__name__)


class OutboxWriter:
    """Append versioned events to a transaction-scoped outbox store."""

    def __init__(self, producer: str, *, clock: Clock | None = None) -> None:
        if not producer or not producer.strip():
            raise ValidationError("producer identity must not be blank")
        self._producer = producer
        self._clock = clock or SystemClock()

    @property
    def producer(self) -> str:
        return self._producer

    async def append(
        self,
        store: OutboxStore,
        event_type: str,
        *,
        partition_key: str,
        payload: Any,
        trace_context: Mapping[str, str] | None = None,
    ) -> OutboxRecord:
        """Append exactly one record through *store* and return it.

        Raises ``ValidationError`` for an unversioned type or blank key and
        ``SerializationError`` for a payload that is not JSON-serialisable;
        either aborts the caller's transaction.
        """
        EventType.parse(event_type)
        if not partition_key or not str(partition_key).strip():
            raise ValidationError.for_field("partition_key", partition_key, "partition_key must not be blank")
        body = encode_payload(payload)
        carrier = dict(trace_context) if trace_context is not None else current_trace_context()
        now = self._clock.now()
        record = OutboxRecord(
            event_id=new_event_id(),
            event_type=event_type,
            partition_key=str(partition_key),
            payload=body,
            producer=self._producer,
            trace_context=carrier,
            occurred_at=now,
            created_at=now,
        )
        stored = await store.append(record)
        logger.debug(
            "outbox.appended",
            event_id=stored.event_id,
            event_type=event_type,
            partition_key=stored.partition_key,
        )
        return stored


__all__ = ["OutboxWriter"]
