"""Kernel error hierarchy: public re-export surface.

Hierarchy::

    BaseError
    ├── DomainError          (domain.py)
    │   ├── ValidationError
    │   ├── NotFoundError
    │   └── ConflictError
    │       └── DuplicateEventError
    ├── ApplicationError     (application.py)
    │   ├── QuotaExceededError
    │   └── PermissionDeniedError
    └── InfrastructureError  (infrastructure.py)
        ├── SerializationError
        ├── BrokerError
        └── CacheUnavailableError
"""

from mp_outbox.kernel.errors.application import (
    ApplicationError,
    PermissionDeniedError,
    QuotaExceededError,
)
from mp_outbox.kernel.errors.base import MAX_REASON_LENGTH, BaseError, describe_error
from mp_outbox.kernel.errors.domain import (
    ConflictError,
    DomainError,
    DuplicateEventError,
    NotFoundError,
    ValidationError,
)
from mp_outbox.kernel.errors.infrastructure import (
    BrokerError,
    CacheUnavailableError,
    InfrastructureError,
    SerializationError,
)

__all__ = [
    "MAX_REASON_LENGTH",
    "ApplicationError",
    "BaseError",
    "BrokerError",
    "CacheUnavailableError",
    "ConflictError",
    "DomainError",
    "DuplicateEventError",
    "InfrastructureError",
    "NotFoundError",
    "PermissionDeniedError",
    "QuotaExceededError",
    "SerializationError",
    "ValidationError",
    "describe_error",
]
