"""OpenTelemetry adapter – OtelMetrics."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, Observation

from mp_outbox.observability.metrics import Counter, Gauge, Histogram, Labels, Metrics


def _attributes(labels: Labels | None) -> dict[str, str] | None:
    return dict(labels) if labels else None


class _OtelCounter(Counter):
    def __init__(self, counter: Any) -> None:
        self._c = counter

    def add(self, value: float = 1.0, labels: Labels | None = None) -> None:
        self._c.add(value, attributes=_attributes(labels))


class _OtelHistogram(Histogram):
    def __init__(self, hist: Any) -> None:
        self._h = hist

    def record(self, value: float, labels: Labels | None = None) -> None:
        self._h.record(value, attributes=_attributes(labels))


class _OtelGauge(Gauge):
    """Last-value gauge reported through an observable-gauge callback."""

    def __init__(self) -> None:
        self._values: dict[tuple[tuple[str, str], ...], float] = {}

    def set(self, value: float, labels: Labels | None = None) -> None:
        self._values[tuple(sorted((labels or {}).items()))] = value

    def observe(self, options: CallbackOptions) -> Iterable[Observation]:
        for labels, value in list(self._values.items()):
            yield Observation(value, attributes=dict(labels))


class OtelMetrics(Metrics):
    """OpenTelemetry metrics adapter over the globally configured meter provider."""

    def __init__(self, meter_name: str = "mp_outbox") -> None:
        self._meter = metrics.get_meter(meter_name)
        self._gauges: dict[str, _OtelGauge] = {}

    def counter(self, name: str, description: str = "", unit: str = "") -> Counter:
        return _OtelCounter(self._meter.create_counter(name, description=description, unit=unit))

    def histogram(self, name: str, description: str = "", unit: str = "ms") -> Histogram:
        return _OtelHistogram(self._meter.create_histogram(name, description=description, unit=unit))

    def gauge(self, name: str, description: str = "", unit: str = "") -> Gauge:
        # one observable gauge per name; later calls share its values
        if name not in self._gauges:
            gauge = _OtelGauge()
            self._meter.create_observable_gauge(
                name, callbacks=[gauge.observe], description=description, unit=unit
            )
            self._gauges[name] = gauge
        return self._gauges[name]


__all__ = ["OtelMetrics"]
