"""Event identifiers.

Event ids are UUIDv7 strings: globally unique and time-sortable, so the
lexical order of ids assigned by one process follows creation order.
"""

from __future__ import annotations

import uuid

import uuid_utils

from mp_outbox.kernel.errors.domain import ValidationError


def new_event_id() -> str:
    """Return a fresh UUIDv7 string."""
    return str(uuid_utils.uuid7())


def parse_event_id(value: str) -> str:
    """Validate *value* as a UUID and return its canonical string form."""
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid event id: {value!r}", cause=exc) from exc


__all__ = ["new_event_id", "parse_event_id"]
