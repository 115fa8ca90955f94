"""Observability – redaction of secrets in structured log events.

Relay and consumer logs routinely carry settings and broker configuration.
Keys named like credentials are replaced outright; connection URLs keep
their scheme and host but lose the password (``user:***@host``).
"""
from __future__ import annotations

import re
from typing import Any

DEFAULT_SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "password", "passwd", "secret", "token", "api_key", "apikey",
    "authorization", "sasl_plain_password", "ssl_password",
})

_URL_CREDENTIALS = re.compile(r"(?P<prefix>[a-zA-Z][\w+.-]*://[^:/@\s]*:)(?P<password>[^@\s]+)@")


def mask_url_password(value: str) -> str:
    """``postgresql+asyncpg://app:s3cret@db/outbox`` -> ``postgresql+asyncpg://app:***@db/outbox``."""
    return _URL_CREDENTIALS.sub(r"\g<prefix>***@", value)


class SensitiveFieldsFilter:
    REDACTED = "[REDACTED]"

    def __init__(self, sensitive_fields: frozenset[str] | None = None) -> None:
        self._fields = frozenset(f.lower() for f in (sensitive_fields or DEFAULT_SENSITIVE_FIELDS))

    def is_sensitive(self, key: str) -> bool:
        return key.lower() in self._fields

    def redact(self, data: dict[str, Any]) -> dict[str, Any]:
        """Redact top-level keys only."""
        return {k: (self.REDACTED if self.is_sensitive(k) else v) for k, v in data.items()}

    def redact_deep(self, data: dict[str, Any]) -> dict[str, Any]:
        """Redact nested dicts and lists, masking URL credentials in strings."""
        return {k: (self.REDACTED if self.is_sensitive(k) else self._scrub(v)) for k, v in data.items()}

    def _scrub(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self.redact_deep(value)
        if isinstance(value, (list, tuple)):
            return type(value)(self._scrub(item) for item in value)
        if isinstance(value, str) and "://" in value:
            return mask_url_password(value)
        return value


__all__ = ["DEFAULT_SENSITIVE_FIELDS", "SensitiveFieldsFilter", "mask_url_password"]
