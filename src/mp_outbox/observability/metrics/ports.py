"""Observability – metric instrument protocols and the Metrics factory port."""
from __future__ import annotations

import abc
from collections.abc import Mapping
from typing import Any, Protocol

from mp_outbox.observability.metrics.names import CATALOG

Labels = Mapping[str, str]


class Counter(Protocol):
    def add(self, value: float = 1.0, labels: Labels | None = None) -> None: ...


class Histogram(Protocol):
    def record(self, value: float, labels: Labels | None = None) -> None: ...


class Gauge(Protocol):
    """Last-value gauge (backlog size, oldest age)."""

    def set(self, value: float, labels: Labels | None = None) -> None: ...


class Metrics(abc.ABC):
    """Port: factory for metric instruments."""

    @abc.abstractmethod
    def counter(self, name: str, description: str = "", unit: str = "") -> Counter: ...

    @abc.abstractmethod
    def histogram(self, name: str, description: str = "", unit: str = "ms") -> Histogram: ...

    @abc.abstractmethod
    def gauge(self, name: str, description: str = "", unit: str = "") -> Gauge: ...

    def instrument(self, name: str) -> Any:
        """Create the catalogued instrument *name* with its kind, description and unit."""
        try:
            spec = CATALOG[name]
        except KeyError:
            raise KeyError(f"Unknown metric '{name}'") from None
        factory = {"counter": self.counter, "histogram": self.histogram, "gauge": self.gauge}[spec.kind]
        return factory(name, spec.description, spec.unit)


__all__ = ["Counter", "Gauge", "Histogram", "Labels", "Metrics"]
