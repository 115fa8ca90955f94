"""OpenTelemetry adapter – metrics export."""
from mp_outbox.adapters.opentelemetry.metrics import OtelMetrics

__all__ = ["OtelMetrics"]
