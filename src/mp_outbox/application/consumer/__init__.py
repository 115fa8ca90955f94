"""Application consumer – idempotent dispatch of broker deliveries."""
from mp_outbox.application.consumer.dispatcher import DispatchOutcome, IdempotentDispatcher
from mp_outbox.application.consumer.handlers import EventHandler, HandlerRegistry
from mp_outbox.application.consumer.worker import ConsumerWorker

__all__ = [
    "ConsumerWorker",
    "DispatchOutcome",
    "EventHandler",
    "HandlerRegistry",
    "IdempotentDispatcher",
]
