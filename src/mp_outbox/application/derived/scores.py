"""Application derived state – ScoreAggregator.

Post scores are a denormalised aggregate of the authoritative ``post_votes``
rows. Both write paths apply a signed delta, which is commutative, so
concurrent or reordered updates converge::

    previous  current   upvotes  downvotes  score
      NONE      UP        +1        0        +1
      UP        DOWN      -1       +1        -2
      DOWN      NONE       0       -1        +1

:meth:`ScoreAggregator.reconcile` recomputes from the votes and overwrites,
bounding any drift left by lost or double-applied deltas.
"""
from __future__ import annotations

import abc
import dataclasses
from collections.abc import Callable
from enum import IntEnum
from typing import Any, Protocol

from mp_outbox.application.outbox import OutboxWriter
from mp_outbox.application.scheduler import Job
from mp_outbox.config.settings import RelaySettings
from mp_outbox.kernel.errors import ValidationError
from mp_outbox.kernel.messaging import EventEnvelope, OutboxStore
from mp_outbox.observability.logging import get_logger
from mp_outbox.observability.metrics import Metrics, NoopMetrics
from mp_outbox.observability.metrics import names

logger = get_logger(__name__)

VOTE_CHANGED = "VoteChanged.v1"


class VoteDirection(IntEnum):
    DOWN = -1
    NONE = 0
    UP = 1

    @classmethod
    def coerce(cls, value: Any) -> "VoteDirection":
        try:
            return cls(int(value))
        except (TypeError, ValueError) as exc:
            raise ValidationError.for_field("direction", value, f"invalid vote direction {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class ScoreDelta:
    upvotes: int = 0
    downvotes: int = 0
    score: int = 0

    @classmethod
    def between(cls, previous: VoteDirection, current: VoteDirection) -> "ScoreDelta":
        return cls(
            upvotes=int(current is VoteDirection.UP) - int(previous is VoteDirection.UP),
            downvotes=int(current is VoteDirection.DOWN) - int(previous is VoteDirection.DOWN),
            score=int(current) - int(previous),
        )

    @property
    def is_zero(self) -> bool:
        return self.upvotes == 0 and self.downvotes == 0 and self.score == 0


@dataclasses.dataclass(frozen=True)
class PostScore:
    post_id: str
    upvotes: int = 0
    downvotes: int = 0
    score: int = 0


@dataclasses.dataclass(frozen=True)
class ScoreDrift:
    """Difference between a stored aggregate and its recomputation."""

    post_id: str
    stored: PostScore
    recomputed: PostScore

    @property
    def magnitude(self) -> int:
        return max(
            abs(self.stored.upvotes - self.recomputed.upvotes),
            abs(self.stored.downvotes - self.recomputed.downvotes),
            abs(self.stored.score - self.recomputed.score),
        )


class ScoreRepository(abc.ABC):
    """Port: the aggregate table owned by the score consumer."""

    @abc.abstractmethod
    async def get(self, post_id: str) -> PostScore | None: ...

    @abc.abstractmethod
    async def apply_delta(self, post_id: str, delta: ScoreDelta) -> None:
        """Atomically add *delta*, creating the row at zero if absent."""

    @abc.abstractmethod
    async def overwrite(self, score: PostScore) -> None: ...

    @abc.abstractmethod
    async def post_ids(self) -> list[str]: ...


class VoteSource(abc.ABC):
    """Port: the authoritative per-user vote rows."""

    @abc.abstractmethod
    async def upsert_vote(self, post_id: str, user_id: str, direction: VoteDirection) -> VoteDirection:
        """Store *direction* and return the direction it replaced."""

    @abc.abstractmethod
    async def tally(self, post_ids: list[str] | None = None) -> dict[str, PostScore]:
        """Recompute scores from the votes (all posts when *post_ids* is ``None``)."""


class ScoreUnitOfWork(Protocol):
    outbox: OutboxStore
    scores: ScoreRepository
    votes: VoteSource


class ScoreAggregator:
    """Maintains ``post_scores`` from votes through deltas and reconciliation."""

    def __init__(
        self,
        writer: OutboxWriter | None = None,
        *,
        drift_tolerance: int = 0,
        reconcile_interval_seconds: float = 300.0,
        metrics: Metrics | None = None,
    ) -> None:
        self._writer = writer
        self._tolerance = drift_tolerance
        self._reconcile_interval = reconcile_interval_seconds
        self._drift = (metrics or NoopMetrics()).instrument(names.AGGREGATE_DRIFT)

    @classmethod
    def from_settings(
        cls,
        settings: RelaySettings,
        writer: OutboxWriter | None = None,
        *,
        metrics: Metrics | None = None,
    ) -> "ScoreAggregator":
        return cls(
            writer,
            drift_tolerance=settings.drift_tolerance,
            reconcile_interval_seconds=settings.reconcile_interval_seconds,
            metrics=metrics,
        )

    async def record_vote(
        self,
        uow: ScoreUnitOfWork,
        post_id: str,
        user_id: str,
        direction: VoteDirection | int,
    ) -> ScoreDelta:
        """Upsert a vote and apply its delta inside the caller's transaction.

        When a writer is configured a ``VoteChanged.v1`` event is appended so
        replicas in other partitions follow through :meth:`handle_vote_changed`.
        """
        current = VoteDirection.coerce(direction)
        previous = await uow.votes.upsert_vote(post_id, user_id, current)
        delta = ScoreDelta.between(previous, current)
        if delta.is_zero:
            return delta
        await uow.scores.apply_delta(post_id, delta)
        if self._writer is not None:
            await self._writer.append(
                uow.outbox,
                VOTE_CHANGED,
                partition_key=post_id,
                payload={
                    "postId": post_id,
                    "userId": user_id,
                    "previous": int(previous),
                    "current": int(current),
                },
            )
        return delta

    async def handle_vote_changed(self, envelope: EventEnvelope, uow: ScoreUnitOfWork) -> None:
        payload = envelope.payload
        try:
            post_id = str(payload["postId"])
            previous = VoteDirection.coerce(payload.get("previous", 0))
            current = VoteDirection.coerce(payload["current"])
        except (AttributeError, KeyError, TypeError) as exc:
            raise ValidationError(f"malformed {VOTE_CHANGED} payload") from exc
        delta = ScoreDelta.between(previous, current)
        if not delta.is_zero:
            await uow.scores.apply_delta(post_id, delta)

    async def reconcile(self, uow: ScoreUnitOfWork, post_ids: list[str] | None = None) -> list[ScoreDrift]:
        """Overwrite aggregates with a recomputation; return the rows that drifted."""
        recomputed = await uow.votes.tally(post_ids)
        if post_ids is None:
            candidates = sorted(set(await uow.scores.post_ids()) | set(recomputed))
        else:
            candidates = list(post_ids)
        drifts: list[ScoreDrift] = []
        for post_id in candidates:
            stored = await uow.scores.get(post_id) or PostScore(post_id)
            fresh = recomputed.get(post_id, PostScore(post_id))
            if stored == fresh:
                continue
            drift = ScoreDrift(post_id, stored, fresh)
            drifts.append(drift)
            await uow.scores.overwrite(fresh)
            self._drift.add(1, {"aggregate": "post_score"})
            log = logger.warning if drift.magnitude > self._tolerance else logger.debug
            log(
                "aggregate.drift",
                aggregate="post_score",
                post_id=post_id,
                stored=dataclasses.asdict(stored),
                recomputed=dataclasses.asdict(fresh),
                magnitude=drift.magnitude,
            )
        return drifts

    def reconcile_job(
        self,
        uow_factory: Callable[[], Any],
        interval_seconds: float | None = None,
    ) -> Job:
        """A periodic :class:`Job` reconciling every post in its own transaction."""

        async def run() -> None:
            async with uow_factory() as uow:
                await self.reconcile(uow)

        return Job(
            id="aggregate.reconcile.post_score",
            name="Reconcile post scores",
            handler=run,
            interval_seconds=interval_seconds or self._reconcile_interval,
        )


__all__ = [
    "PostScore",
    "ScoreAggregator",
    "ScoreDelta",
    "ScoreDrift",
    "ScoreRepository",
    "ScoreUnitOfWork",
    "VOTE_CHANGED",
    "VoteDirection",
    "VoteSource",
]
