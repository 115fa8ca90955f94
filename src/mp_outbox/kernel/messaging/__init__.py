"""Kernel messaging – envelope, outbox, dedup ledger, broker, dead letter (ports only)."""
from mp_outbox.kernel.messaging.broker import (
    Delivery,
    MessageBroker,
    PublishOutcome,
    Subscription,
)
from mp_outbox.kernel.messaging.dead_letter import DeadLetterEntry, DeadLetterStore
from mp_outbox.kernel.messaging.envelope import (
    EventEnvelope,
    EventType,
    decode_payload,
    encode_payload,
)
from mp_outbox.kernel.messaging.ledger import DedupLedger, DedupLedgerEntry
from mp_outbox.kernel.messaging.outbox import (
    OutboxBacklog,
    OutboxRecord,
    OutboxStatus,
    OutboxStore,
)
from mp_outbox.kernel.messaging.uow import UnitOfWork

__all__ = [
    "DeadLetterEntry",
    "DeadLetterStore",
    "DedupLedger",
    "DedupLedgerEntry",
    "Delivery",
    "EventEnvelope",
    "EventType",
    "MessageBroker",
    "OutboxBacklog",
    "OutboxRecord",
    "OutboxStatus",
    "OutboxStore",
    "PublishOutcome",
    "Subscription",
    "UnitOfWork",
    "decode_payload",
    "encode_payload",
]
