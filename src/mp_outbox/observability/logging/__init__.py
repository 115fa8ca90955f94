"""Observability – structured logging helpers."""
from mp_outbox.observability.logging.factory import NOISY_LOGGERS, JsonLoggerFactory
from mp_outbox.observability.logging.filters import (
    DEFAULT_SENSITIVE_FIELDS,
    SensitiveFieldsFilter,
    mask_url_password,
)
from mp_outbox.observability.logging.processors import event_log_context, get_logger

__all__ = [
    "DEFAULT_SENSITIVE_FIELDS",
    "NOISY_LOGGERS",
    "JsonLoggerFactory",
    "SensitiveFieldsFilter",
    "event_log_context",
    "get_logger",
    "mask_url_password",
]
