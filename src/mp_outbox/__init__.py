"""
mp_outbox – transactional outbox and idempotent event delivery.

Import path convention::

    from mp_outbox.kernel.messaging import EventEnvelope, OutboxRecord
    from mp_outbox.application.outbox import OutboxWriter, OutboxPublisher
    from mp_outbox.application.consumer import IdempotentDispatcher
    from mp_outbox.adapters.sqlalchemy import SqlAlchemyUnitOfWork
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
