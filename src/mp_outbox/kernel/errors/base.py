"""Root error class for mp-outbox, plus the one-line failure description
stored on outbox rows, dead letters and job results."""

from __future__ import annotations

import json
from typing import Any

#: Upper bound on stored failure descriptions (``last_error``, dead-letter reason).
MAX_REASON_LENGTH = 1000


class BaseError(Exception):
    """Root of the error hierarchy.

    ``code`` is a stable slug for log queries; ``detail`` carries structured
    context (ids, limits) that must survive JSON logging.
    """

    default_code: str = "base_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        detail: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail: dict[str, Any] = dict(detail or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }
        if self.cause is not None:
            payload["cause"] = repr(self.cause)
        return payload


def describe_error(exc: BaseException) -> str:
    """Return a bounded, single-line description of *exc*.

    Library errors contribute their message only; anything else is prefixed
    with the exception type so driver failures stay recognisable.
    """
    if isinstance(exc, BaseError):
        text = exc.message
    else:
        text = f"{type(exc).__name__}: {exc}"
    text = " ".join(text.split())
    return text[:MAX_REASON_LENGTH]


__all__ = ["MAX_REASON_LENGTH", "BaseError", "describe_error"]
