"""PostgreSQL implementation of MembershipRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_access.authz.catalog import ROLE_RANKS
from tenant_access.db.tables import MembershipRow
from tenant_access.models.organization import Membership, MembershipStatus, Role

_ACTIVE = str(MembershipStatus.ACTIVE)

# Owners first: order by descending rank.
_RANK_ORDER = case(
    {str(role): -rank for role, rank in ROLE_RANKS.items()},
    value=MembershipRow.role,
)


class PgMembershipRepo:
    """Satisfies the MembershipRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, membership_id: UUID) -> Membership | None:
        stmt = select(MembershipRow).where(MembershipRow.id == membership_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def find(self, org_id: UUID, user_id: UUID) -> Membership | None:
        stmt = select(MembershipRow).where(
            MembershipRow.org_id == org_id, MembershipRow.user_id == user_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def find_active(self, org_id: UUID, user_id: UUID) -> Membership | None:
        stmt = select(MembershipRow).where(
            MembershipRow.org_id == org_id,
            MembershipRow.user_id == user_id,
            MembershipRow.status == _ACTIVE,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def add(self, membership: Membership) -> None:
        row = MembershipRow(
            id=membership.id,
            org_id=membership.org_id,
            user_id=membership.user_id,
            role=str(membership.role),
            status=str(membership.status),
            accepted_at=membership.accepted_at,
            created_at=membership.created_at,
        )
        self._session.add(row)
        await self._session.flush()

    async def update_role(
        self, membership_id: UUID, new_role: Role
    ) -> Membership | None:
        stmt = (
            update(MembershipRow)
            .where(MembershipRow.id == membership_id)
            .values(role=str(new_role))
            .returning(MembershipRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_membership(row) if row is not None else None

    async def remove(self, membership_id: UUID) -> bool:
        stmt = delete(MembershipRow).where(MembershipRow.id == membership_id)
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_active_by_org(
        self, org_id: UUID, *, offset: int = 0, limit: int = 50
    ) -> list[Membership]:
        stmt = (
            select(MembershipRow)
            .where(MembershipRow.org_id == org_id, MembershipRow.status == _ACTIVE)
            .order_by(
                _RANK_ORDER,
                MembershipRow.accepted_at.asc().nulls_last(),
                MembershipRow.id,
            )
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def list_active_by_user(self, user_id: UUID) -> list[Membership]:
        stmt = select(MembershipRow).where(
            MembershipRow.user_id == user_id, MembershipRow.status == _ACTIVE
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def count_by_status(self, org_id: UUID) -> dict[MembershipStatus, int]:
        stmt = (
            select(MembershipRow.status, func.count())
            .where(MembershipRow.org_id == org_id)
            .group_by(MembershipRow.status)
        )
        rows = (await self._session.execute(stmt)).all()
        return {MembershipStatus(status): count for status, count in rows}


def _row_to_membership(row: MembershipRow) -> Membership:
    return Membership(
        id=row.id,
        org_id=row.org_id,
        user_id=row.user_id,
        role=Role(row.role),
        status=MembershipStatus(row.status),
        accepted_at=row.accepted_at,
        created_at=row.created_at,
    )
