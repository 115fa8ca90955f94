"""Domain errors: rule violations raised inside a local transaction.

Raising one of these inside a unit of work rolls back the business write
and its outbox record together.
"""

from __future__ import annotations

from typing import Any

from mp_outbox.kernel.errors.base import BaseError


class DomainError(BaseError):
    default_code = "domain_error"


class ValidationError(DomainError):
    """Input rejected before anything was written.

    ``errors`` lists the offending fields as ``{"field": ..., "value": ...}``.
    """

    default_code = "validation_error"

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors: list[dict[str, Any]] = list(errors or [])

    @classmethod
    def for_field(cls, field: str, value: Any, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "value": value}])

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}


class NotFoundError(DomainError):
    default_code = "not_found"

    def __init__(self, resource: str, identifier: Any = None, **kwargs: Any) -> None:
        message = f"{resource} not found" if identifier is None else f"{resource} '{identifier}' not found"
        super().__init__(message, **kwargs)
        self.resource = resource
        self.identifier = identifier


class ConflictError(DomainError):
    """A write collided with existing state (unique key, concurrent writer)."""

    default_code = "conflict"


class DuplicateEventError(ConflictError):
    """``(consumer_group, event_id)`` is already in the dedup ledger.

    Raised by the ledger insert; the dispatcher rolls back the handler's
    writes and acks the delivery.
    """

    default_code = "duplicate_event"

    def __init__(self, consumer_group: str, event_id: str, **kwargs: Any) -> None:
        kwargs.setdefault("detail", {"consumer_group": consumer_group, "event_id": event_id})
        super().__init__(
            f"Event '{event_id}' already applied by consumer group '{consumer_group}'",
            **kwargs,
        )
        self.consumer_group = consumer_group
        self.event_id = event_id


__all__ = [
    "ConflictError",
    "DomainError",
    "DuplicateEventError",
    "NotFoundError",
    "ValidationError",
]
