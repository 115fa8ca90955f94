"""Observability – W3C trace-context propagation through the outbox.

The writer captures the active OpenTelemetry context into the record's
``trace_context`` carrier; the dispatcher re-attaches it around the handler
so consumer spans join the producer's trace.
"""
from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from opentelemetry import context as otel_context
from opentelemetry.propagate import extract, inject


def current_trace_context() -> dict[str, str]:
    """Return the active context as a string carrier (empty when no span is active)."""
    carrier: dict[str, str] = {}
    inject(carrier)
    return carrier


@contextmanager
def attached_trace_context(carrier: Mapping[str, str] | None) -> Iterator[None]:
    """Make the context encoded in *carrier* current for the duration of the block."""
    if not carrier:
        yield
        return
    token = otel_context.attach(extract(dict(carrier)))
    try:
        yield
    finally:
        otel_context.detach(token)


__all__ = ["attached_trace_context", "current_trace_context"]
