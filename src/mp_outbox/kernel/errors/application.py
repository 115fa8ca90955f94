"""Application-layer errors: synchronous rejections surfaced to callers."""

from __future__ import annotations

from typing import Any

from mp_outbox.kernel.errors.base import BaseError


class ApplicationError(BaseError):
    """Cross-cutting application-layer concern."""

    default_code = "application_error"


class QuotaExceededError(ApplicationError):
    """A usage increment would push a principal past its period limit.

    Raised without any partial increment having been applied.
    """

    default_code = "quota_exceeded"

    def __init__(
        self,
        principal_id: str,
        metric: str,
        *,
        requested: int,
        used: int | None = None,
        limit: int | None = None,
        period: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"Quota '{metric}' exceeded for principal '{principal_id}'",
            detail={
                "requested": requested,
                "used": used,
                "limit": limit,
                "period": period,
            },
            **kwargs,
        )
        self.principal_id = principal_id
        self.metric = metric
        self.requested = requested
        self.used = used
        self.limit = limit
        self.period = period


class PermissionDeniedError(ApplicationError):
    """Authenticated principal lacks the required permission."""

    default_code = "permission_denied"

    def __init__(
        self,
        message: str = "Access denied",
        *,
        permission: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.permission = permission


__all__ = [
    "ApplicationError",
    "PermissionDeniedError",
    "QuotaExceededError",
]
