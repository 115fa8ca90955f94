"""Kernel – framework-agnostic building blocks."""

from mp_outbox.kernel.errors import (
    ApplicationError,
    BaseError,
    BrokerError,
    ConflictError,
    DomainError,
    DuplicateEventError,
    InfrastructureError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    SerializationError,
    ValidationError,
)

__all__ = [
    "ApplicationError",
    "BaseError",
    "BrokerError",
    "ConflictError",
    "DomainError",
    "DuplicateEventError",
    "InfrastructureError",
    "NotFoundError",
    "PermissionDeniedError",
    "QuotaExceededError",
    "SerializationError",
    "ValidationError",
]
