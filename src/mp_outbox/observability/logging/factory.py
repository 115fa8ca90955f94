"""Observability – JsonLoggerFactory."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import structlog

from mp_outbox.observability.logging.filters import SensitiveFieldsFilter

#: Driver loggers that are chatty at INFO; pinned to WARNING unless overridden.
NOISY_LOGGERS: tuple[str, ...] = ("aiokafka", "sqlalchemy.engine", "aiosqlite", "asyncio")


class JsonLoggerFactory:
    """One-call logging setup for relay and consumer processes.

    structlog events and stdlib records from the adapters go through the
    same root handler, so both come out as one JSON object per line with the
    bound ``event_id`` / ``consumer_group`` context and secrets removed.
    """

    @staticmethod
    def configure(
        level: int = logging.INFO,
        sensitive_fields: frozenset[str] | None = None,
        *,
        service: str | None = None,
        json_output: bool = True,
        quiet_loggers: Iterable[str] = NOISY_LOGGERS,
    ) -> None:
        redactor = SensitiveFieldsFilter(sensitive_fields)

        def _redact(logger: Any, method: str, event_dict: dict[str, Any]) -> dict[str, Any]:  # noqa: ARG001
            return redactor.redact_deep(event_dict)

        shared: list[Any] = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
        ]
        if service is not None:

            def _add_service(logger: Any, method: str, event_dict: dict[str, Any]) -> dict[str, Any]:  # noqa: ARG001
                event_dict.setdefault("service", service)
                return event_dict

            shared.append(_add_service)
        shared.append(_redact)

        structlog.configure(
            processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        renderer: Any = (
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
        )
        formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        root = logging.getLogger()
        root.handlers.clear()
        root.addHandler(handler)
        root.setLevel(level)
        for name in quiet_loggers:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))


__all__ = ["NOISY_LOGGERS", "JsonLoggerFactory"]
