"""SQLAlchemy adapter – SqlAlchemyPermissionStore."""
from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from mp_outbox.adapters.sqlalchemy._dialect import insert_if_absent
from mp_outbox.adapters.sqlalchemy.models import PermissionGrantModel
from mp_outbox.application.derived.permissions import PermissionKey, PermissionStore
from mp_outbox.kernel.time import utc_now


def _matches(key: PermissionKey) -> tuple:
    return (
        PermissionGrantModel.principal_id == key.principal_id,
        PermissionGrantModel.resource_type == key.resource_type,
        PermissionGrantModel.resource_id == key.resource_id,
        PermissionGrantModel.action == key.action,
    )


class SqlAlchemyPermissionStore(PermissionStore):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def is_allowed(self, key: PermissionKey) -> bool:
        result = await self._session.execute(select(PermissionGrantModel.action).where(*_matches(key)))
        return result.first() is not None

    async def grant(self, key: PermissionKey) -> bool:
        return await insert_if_absent(
            self._session,
            PermissionGrantModel,
            {
                "principal_id": key.principal_id,
                "resource_type": key.resource_type,
                "resource_id": key.resource_id,
                "action": key.action,
                "granted_at": utc_now(),
            },
            ["principal_id", "resource_type", "resource_id", "action"],
        )

    async def revoke(self, key: PermissionKey) -> bool:
        result = await self._session.execute(delete(PermissionGrantModel).where(*_matches(key)))
        return result.rowcount > 0

    async def revoke_resource(self, resource_type: str, resource_id: str) -> int:
        result = await self._session.execute(
            delete(PermissionGrantModel).where(
                PermissionGrantModel.resource_type == resource_type,
                PermissionGrantModel.resource_id == resource_id,
            )
        )
        return result.rowcount


__all__ = ["SqlAlchemyPermissionStore"]
