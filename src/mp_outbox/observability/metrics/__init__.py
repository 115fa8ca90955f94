"""Observability – metrics ports."""
from mp_outbox.observability.metrics.noop import NoopMetrics
from mp_outbox.observability.metrics.ports import Counter, Gauge, Histogram, Labels, Metrics

__all__ = ["Counter", "Gauge", "Histogram", "Labels", "Metrics", "NoopMetrics"]
