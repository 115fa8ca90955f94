"""Infrastructure errors: broker, cache and codec failures."""

from __future__ import annotations

from typing import Any

from mp_outbox.kernel.errors.base import BaseError


class InfrastructureError(BaseError):
    default_code = "infrastructure_error"


class SerializationError(InfrastructureError):
    """A payload or envelope could not be encoded or decoded.

    Retrying cannot fix the same bytes: publishers treat it as a rejection
    and consumers dead-letter the message at once.
    """

    default_code = "serialization_error"

    def __init__(self, message: str, *, payload_type: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.payload_type = payload_type


class BrokerError(InfrastructureError):
    """The broker refused or failed a publish.

    ``permanent`` marks refusals that will repeat on every attempt (oversized
    record, unknown topic, authorization); the rest are worth retrying.
    """

    default_code = "broker_error"

    def __init__(
        self,
        message: str,
        *,
        permanent: bool = False,
        topic: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.permanent = permanent
        self.topic = topic


class CacheUnavailableError(InfrastructureError):
    """The shared decision cache could not be reached."""

    default_code = "cache_unavailable"


__all__ = [
    "BrokerError",
    "CacheUnavailableError",
    "InfrastructureError",
    "SerializationError",
]
