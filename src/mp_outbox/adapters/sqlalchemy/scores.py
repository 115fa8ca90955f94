"""SQLAlchemy adapter – post score aggregate and authoritative vote rows."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mp_outbox.adapters.sqlalchemy._dialect import insert_if_absent
from mp_outbox.adapters.sqlalchemy.models import PostScoreModel, PostVoteModel
from mp_outbox.application.derived.scores import (
    PostScore,
    ScoreDelta,
    ScoreRepository,
    VoteDirection,
    VoteSource,
)
from mp_outbox.kernel.time import utc_now


class SqlAlchemyScoreRepository(ScoreRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, post_id: str) -> PostScore | None:
        row = await self._session.get(PostScoreModel, post_id, populate_existing=True)
        if row is None:
            return None
        return PostScore(post_id, row.upvotes, row.downvotes, row.score)

    async def apply_delta(self, post_id: str, delta: ScoreDelta) -> None:
        now = utc_now()
        await self._ensure_row(post_id, now)
        # relative update: concurrent deltas commute instead of overwriting
        await self._session.execute(
            update(PostScoreModel)
            .where(PostScoreModel.post_id == post_id)
            .values(
                upvotes=PostScoreModel.upvotes + delta.upvotes,
                downvotes=PostScoreModel.downvotes + delta.downvotes,
                score=PostScoreModel.score + delta.score,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    async def overwrite(self, score: PostScore) -> None:
        now = utc_now()
        await self._ensure_row(score.post_id, now)
        await self._session.execute(
            update(PostScoreModel)
            .where(PostScoreModel.post_id == score.post_id)
            .values(
                upvotes=score.upvotes,
                downvotes=score.downvotes,
                score=score.score,
                updated_at=now,
                reconciled_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    async def post_ids(self) -> list[str]:
        result = await self._session.execute(select(PostScoreModel.post_id).order_by(PostScoreModel.post_id))
        return list(result.scalars().all())

    async def _ensure_row(self, post_id: str, now: datetime) -> None:
        await insert_if_absent(
            self._session,
            PostScoreModel,
            {"post_id": post_id, "upvotes": 0, "downvotes": 0, "score": 0, "updated_at": now},
            ["post_id"],
        )


class SqlAlchemyVoteSource(VoteSource):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_vote(self, post_id: str, user_id: str, direction: VoteDirection) -> VoteDirection:
        now = utc_now()
        # write first, then lock: the row exists before anyone reads it
        await insert_if_absent(
            self._session,
            PostVoteModel,
            {"post_id": post_id, "user_id": user_id, "direction": 0, "updated_at": now},
            ["post_id", "user_id"],
        )
        result = await self._session.execute(
            select(PostVoteModel.direction)
            .where(PostVoteModel.post_id == post_id, PostVoteModel.user_id == user_id)
            .with_for_update()
        )
        previous = VoteDirection(result.scalar_one())
        if previous is not direction:
            await self._session.execute(
                update(PostVoteModel)
                .where(PostVoteModel.post_id == post_id, PostVoteModel.user_id == user_id)
                .values(direction=int(direction), updated_at=now)
                .execution_options(synchronize_session=False)
            )
        return previous

    async def tally(self, post_ids: list[str] | None = None) -> dict[str, PostScore]:
        stmt = select(
            PostVoteModel.post_id,
            func.coalesce(func.sum(case((PostVoteModel.direction == 1, 1), else_=0)), 0),
            func.coalesce(func.sum(case((PostVoteModel.direction == -1, 1), else_=0)), 0),
            func.coalesce(func.sum(PostVoteModel.direction), 0),
        ).group_by(PostVoteModel.post_id)
        if post_ids is not None:
            stmt = stmt.where(PostVoteModel.post_id.in_(post_ids))
        result = await self._session.execute(stmt)
        return {
            post_id: PostScore(post_id, int(up), int(down), int(score))
            for post_id, up, down, score in result.all()
        }


__all__ = ["SqlAlchemyScoreRepository", "SqlAlchemyVoteSource"]
