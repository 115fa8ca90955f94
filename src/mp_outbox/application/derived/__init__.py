"""Application derived state – aggregates, quotas and permission caches kept by events."""
from mp_outbox.application.derived.permissions import (
    PERMISSION_CHANGED,
    PermissionKey,
    PermissionService,
    PermissionStore,
)
from mp_outbox.application.derived.quota import (
    QuotaCounter,
    QuotaPeriod,
    QuotaPolicy,
    QuotaRepository,
    QuotaUsage,
)
from mp_outbox.application.derived.scores import (
    VOTE_CHANGED,
    PostScore,
    ScoreAggregator,
    ScoreDelta,
    ScoreDrift,
    ScoreRepository,
    VoteDirection,
    VoteSource,
)

__all__ = [
    "PERMISSION_CHANGED",
    "VOTE_CHANGED",
    "PermissionKey",
    "PermissionService",
    "PermissionStore",
    "PostScore",
    "QuotaCounter",
    "QuotaPeriod",
    "QuotaPolicy",
    "QuotaRepository",
    "QuotaUsage",
    "ScoreAggregator",
    "ScoreDelta",
    "ScoreDrift",
    "ScoreRepository",
    "VoteDirection",
    "VoteSource",
]
