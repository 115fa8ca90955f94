"""SQLAlchemy adapter – async persistence for outbox, ledger, dead letters and aggregates."""
from mp_outbox.adapters.sqlalchemy.dead_letter import SqlAlchemyDeadLetterStore
from mp_outbox.adapters.sqlalchemy.ledger import SqlAlchemyDedupLedger
from mp_outbox.adapters.sqlalchemy.models import (
    Base,
    DeadLetterModel,
    DedupLedgerModel,
    OutboxRecordModel,
    PermissionGrantModel,
    PostScoreModel,
    PostVoteModel,
    QuotaCounterModel,
)
from mp_outbox.adapters.sqlalchemy.outbox import SqlAlchemyOutboxStore
from mp_outbox.adapters.sqlalchemy.permissions import SqlAlchemyPermissionStore
from mp_outbox.adapters.sqlalchemy.quota import SqlAlchemyQuotaRepository
from mp_outbox.adapters.sqlalchemy.scores import SqlAlchemyScoreRepository, SqlAlchemyVoteSource
from mp_outbox.adapters.sqlalchemy.session import SqlAlchemySessionFactory
from mp_outbox.adapters.sqlalchemy.uow import SqlAlchemyUnitOfWork

__all__ = [
    "Base",
    "DeadLetterModel",
    "DedupLedgerModel",
    "OutboxRecordModel",
    "PermissionGrantModel",
    "PostScoreModel",
    "PostVoteModel",
    "QuotaCounterModel",
    "SqlAlchemyDeadLetterStore",
    "SqlAlchemyDedupLedger",
    "SqlAlchemyOutboxStore",
    "SqlAlchemyPermissionStore",
    "SqlAlchemyQuotaRepository",
    "SqlAlchemyScoreRepository",
    "SqlAlchemySessionFactory",
    "SqlAlchemyUnitOfWork",
    "SqlAlchemyVoteSource",
]
