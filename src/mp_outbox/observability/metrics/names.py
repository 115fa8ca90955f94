"""Observability – metric names emitted by the relay, dispatcher and maintainers.

:data:`CATALOG` holds the kind, description and unit of every name so that
all backends export identical instruments.
"""
from __future__ import annotations

from typing import Literal, NamedTuple

OUTBOX_PUBLISHED = "outbox.published"
OUTBOX_PUBLISH_FAILED = "outbox.publish.failed"
OUTBOX_PUBLISH_REJECTED = "outbox.publish.rejected"
OUTBOX_PUBLISH_LATENCY = "outbox.publish.latency"
OUTBOX_PURGED = "outbox.purged"
OUTBOX_BACKLOG_SIZE = "outbox.backlog.size"
OUTBOX_BACKLOG_OLDEST_AGE = "outbox.backlog.oldest_age_seconds"

CONSUMER_APPLIED = "consumer.applied"
CONSUMER_DUPLICATE = "consumer.duplicate"
CONSUMER_FAILED = "consumer.failed"
CONSUMER_DEAD_LETTERED = "consumer.dead_lettered"

AGGREGATE_DRIFT = "aggregate.drift"
QUOTA_EXCEEDED = "quota.exceeded"
PERMISSION_CACHE_HIT = "permission.cache.hit"
PERMISSION_CACHE_MISS = "permission.cache.miss"


class InstrumentSpec(NamedTuple):
    kind: Literal["counter", "histogram", "gauge"]
    description: str
    unit: str = ""


CATALOG: dict[str, InstrumentSpec] = {
    OUTBOX_PUBLISHED: InstrumentSpec("counter", "Outbox records published"),
    OUTBOX_PUBLISH_FAILED: InstrumentSpec("counter", "Transient publish failures"),
    OUTBOX_PUBLISH_REJECTED: InstrumentSpec("counter", "Permanently rejected publishes"),
    OUTBOX_PUBLISH_LATENCY: InstrumentSpec("histogram", "Broker round-trip", "ms"),
    OUTBOX_PURGED: InstrumentSpec("counter", "Published records purged"),
    OUTBOX_BACKLOG_SIZE: InstrumentSpec("gauge", "Unpublished records"),
    OUTBOX_BACKLOG_OLDEST_AGE: InstrumentSpec("gauge", "Age of the oldest unpublished record", "s"),
    CONSUMER_APPLIED: InstrumentSpec("counter", "Events applied"),
    CONSUMER_DUPLICATE: InstrumentSpec("counter", "Duplicate deliveries skipped"),
    CONSUMER_FAILED: InstrumentSpec("counter", "Handler failures"),
    CONSUMER_DEAD_LETTERED: InstrumentSpec("counter", "Messages dead-lettered"),
    AGGREGATE_DRIFT: InstrumentSpec("counter", "Aggregate rows corrected by reconciliation"),
    QUOTA_EXCEEDED: InstrumentSpec("counter", "Rejected quota increments"),
    PERMISSION_CACHE_HIT: InstrumentSpec("counter", "Permission cache hits"),
    PERMISSION_CACHE_MISS: InstrumentSpec("counter", "Permission cache misses"),
}
