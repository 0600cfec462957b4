"""PostgreSQL implementation of BusinessRecordRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_access.db.tables import BusinessRecordRow
from tenant_access.models.organization import BusinessRecord


class PgBusinessRecordRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, record: BusinessRecord) -> None:
        self._session.add(
            BusinessRecordRow(
                id=record.id,
                org_id=record.org_id,
                vertical=record.vertical,
                kind=record.kind,
                created_at=record.created_at,
            )
        )
        await self._session.flush()

    async def count_by_kind(self, org_id: UUID) -> dict[str, int]:
        stmt = (
            select(BusinessRecordRow.kind, func.count())
            .where(BusinessRecordRow.org_id == org_id)
            .group_by(BusinessRecordRow.kind)
        )
        rows = (await self._session.execute(stmt)).all()
        return {kind: count for kind, count in rows}

    async def delete_by_org(self, org_id: UUID) -> int:
        stmt = delete(BusinessRecordRow).where(BusinessRecordRow.org_id == org_id)
        result = await self._session.execute(stmt)
        return result.rowcount
