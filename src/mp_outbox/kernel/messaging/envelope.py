"""Kernel messaging – the versioned event envelope carried over the broker.

Wire format is a UTF-8 JSON object::

    {
      "eventId": "0192...",            # UUIDv7
      "eventType": "TripCreated.v1",
      "occurredAt": "2026-01-01T12:00:00+00:00",
      "producerIdentity": "trips",
      "partitionKey": "trip-42",
      "traceContext": {"traceparent": "00-..."},
      "payload": {...}
    }

Evolution is additive only: decoders ignore keys they do not know, fields are
never removed or renamed, and an incompatible payload shape gets a new
``.vN`` suffix on the type name.
"""
from __future__ import annotations

import dataclasses
import enum
import json
import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from mp_outbox.kernel.errors import SerializationError, ValidationError

_EVENT_TYPE_RE = re.compile(r"^(?P<name>[A-Za-z][A-Za-z0-9_.\-]*?)\.v(?P<version>[1-9][0-9]*)$")

_REQUIRED_KEYS = (
    "eventId",
    "eventType",
    "occurredAt",
    "producerIdentity",
    "partitionKey",
    "payload",
)


@dataclasses.dataclass(frozen=True)
class EventType:
    """A type name plus its explicit contract version (``VoteChanged.v2``)."""

    name: str
    version: int

    @classmethod
    def parse(cls, value: str) -> "EventType":
        match = _EVENT_TYPE_RE.match(value or "")
        if match is None:
            raise ValidationError.for_field(
                "event_type", value, f"Event type {value!r} must look like '<Name>.v<N>'"
            )
        return cls(name=match.group("name"), version=int(match.group("version")))

    def __str__(self) -> str:
        return f"{self.name}.v{self.version}"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, uuid.UUID | Decimal):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_payload(payload: Any) -> bytes:
    """Serialize an event body to compact JSON bytes."""
    try:
        return json.dumps(payload, default=_json_default, separators=(",", ":")).encode()
    except (TypeError, ValueError) as exc:
        raise SerializationError(
            f"Event payload is not JSON serializable: {exc}",
            payload_type=type(payload).__name__,
            cause=exc,
        ) from exc


def decode_payload(data: bytes) -> Any:
    try:
        return json.loads(data)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Stored payload is not valid JSON: {exc}", cause=exc) from exc


@dataclasses.dataclass(frozen=True)
class EventEnvelope:
    """Transport contract for one event."""

    event_id: str
    event_type: str
    occurred_at: datetime
    producer: str
    partition_key: str
    payload: Any
    trace_context: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def type(self) -> EventType:
        return EventType.parse(self.event_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventType": self.event_type,
            "occurredAt": self.occurred_at.isoformat(),
            "producerIdentity": self.producer,
            "partitionKey": self.partition_key,
            "traceContext": dict(self.trace_context),
            "payload": self.payload,
        }

    def to_bytes(self) -> bytes:
        try:
            return json.dumps(self.to_dict(), default=_json_default, separators=(",", ":")).encode()
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Envelope {self.event_id} is not serializable: {exc}", cause=exc) from exc

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventEnvelope":
        if not isinstance(data, dict):
            raise SerializationError("Envelope must be a JSON object", payload_type=type(data).__name__)
        missing = [key for key in _REQUIRED_KEYS if key not in data]
        if missing:
            raise SerializationError(f"Envelope is missing fields: {', '.join(missing)}")
        try:
            occurred_at = datetime.fromisoformat(data["occurredAt"])
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Invalid occurredAt: {data['occurredAt']!r}", cause=exc) from exc
        trace_context = data.get("traceContext") or {}
        if not isinstance(trace_context, dict):
            raise SerializationError("Envelope traceContext must be an object")
        return cls(
            event_id=str(data["eventId"]),
            event_type=str(data["eventType"]),
            occurred_at=occurred_at,
            producer=str(data["producerIdentity"]),
            partition_key=str(data["partitionKey"]),
            payload=data["payload"],
            trace_context={str(k): str(v) for k, v in trace_context.items()},
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "EventEnvelope":
        try:
            parsed = json.loads(data)
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Envelope is not valid JSON: {exc}", cause=exc) from exc
        return cls.from_dict(parsed)


__all__ = ["EventEnvelope", "EventType", "decode_payload", "encode_payload"]
