"""Config settings – RelaySettings for publisher and consumer processes."""
from __future__ import annotations

import dataclasses
from typing import ClassVar

from mp_outbox.config.settings.base import Settings
from mp_outbox.config.validation import InvalidSettingValueError


@dataclasses.dataclass
class RelaySettings(Settings):
    """Operational knobs for one partition's outbox relay and its consumers.

    Loaded from ``OUTBOX_*`` environment variables, e.g. ``OUTBOX_BATCH_SIZE``.
    """

    _prefix: ClassVar[str] = "OUTBOX"

    database_url: str
    producer: str
    topic: str = "events"
    kafka_bootstrap_servers: str = "localhost:9092"
    batch_size: int = 50
    poll_interval_seconds: float = 0.5
    retention_days: int = 7
    ledger_retention_days: int = 14
    purge_interval_seconds: float = 3600.0
    claim_rows: bool = False
    max_delivery_attempts: int = 5
    redelivery_base_delay_seconds: float = 0.5
    redelivery_max_delay_seconds: float = 60.0
    reconcile_interval_seconds: float = 300.0
    drift_tolerance: int = 0
    permission_cache_ttl_seconds: float = 30.0
    permission_cache_max_entries: int = 10_000

    def _validate(self) -> None:
        positive = (
            "batch_size",
            "poll_interval_seconds",
            "retention_days",
            "ledger_retention_days",
            "purge_interval_seconds",
            "max_delivery_attempts",
            "redelivery_base_delay_seconds",
            "reconcile_interval_seconds",
            "permission_cache_ttl_seconds",
            "permission_cache_max_entries",
        )
        for name in positive:
            value = getattr(self, name)
            if value <= 0:
                raise InvalidSettingValueError(name, value, "must be positive")
        if self.drift_tolerance < 0:
            raise InvalidSettingValueError("drift_tolerance", self.drift_tolerance, "must be >= 0")
        if self.redelivery_max_delay_seconds < self.redelivery_base_delay_seconds:
            raise InvalidSettingValueError(
                "redelivery_max_delay_seconds",
                self.redelivery_max_delay_seconds,
                "must be >= redelivery_base_delay_seconds",
            )
        if not self.producer.strip():
            raise InvalidSettingValueError("producer", self.producer, "must not be blank")


__all__ = ["RelaySettings"]
