"""Observability – NoopMetrics implementation."""
from __future__ import annotations

from mp_outbox.observability.metrics.ports import Labels, Metrics


class _NoopInstrument:
    def add(self, value: float = 1.0, labels: Labels | None = None) -> None:
        pass

    def record(self, value: float, labels: Labels | None = None) -> None:
        pass

    def set(self, value: float, labels: Labels | None = None) -> None:
        pass


_NOOP = _NoopInstrument()


class NoopMetrics(Metrics):
    """Default backend: every instrument discards its measurements."""

    def counter(self, name: str, description: str = "", unit: str = "") -> _NoopInstrument:
        return _NOOP

    def histogram(self, name: str, description: str = "", unit: str = "ms") -> _NoopInstrument:
        return _NOOP

    def gauge(self, name: str, description: str = "", unit: str = "") -> _NoopInstrument:
        return _NOOP


__all__ = ["NoopMetrics"]
