"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_access.db.tables import OrganizationRow
from tenant_access.models.organization import Organization, PlanTier
from tenant_access.repos.org_repo import DuplicateOrganizationError


class PgOrgRepo:
    """Satisfies the OrgRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(
        self, org_id: UUID, *, for_update: bool = False
    ) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.id == org_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_org(row)

    async def get_by_slug(self, slug: str) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.slug == slug)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_org(row)

    async def add(self, org: Organization) -> None:
        row = OrganizationRow(
            id=org.id,
            name=org.name,
            slug=org.slug,
            plan_tier=str(org.plan_tier),
            seat_limit=org.seat_limit,
            used_seats=org.used_seats,
            domain_allowlist=sorted(org.domain_allowlist),
            owner_user_id=org.owner_user_id,
            created_at=org.created_at,
            updated_at=org.updated_at,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise DuplicateOrganizationError(str(exc.orig)) from exc

    async def update(self, org: Organization) -> Organization:
        stmt = (
            update(OrganizationRow)
            .where(OrganizationRow.id == org.id)
            .values(
                name=org.name,
                slug=org.slug,
                plan_tier=str(org.plan_tier),
                seat_limit=org.seat_limit,
                domain_allowlist=sorted(org.domain_allowlist),
                updated_at=func.now(),
            )
            .returning(OrganizationRow)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_org(row)

    async def adjust_used_seats(self, org_id: UUID, delta: int) -> Organization:
        # Relative update: the counter moves in SQL, never read-modify-write.
        stmt = (
            update(OrganizationRow)
            .where(OrganizationRow.id == org_id)
            .values(
                used_seats=OrganizationRow.used_seats + delta,
                updated_at=func.now(),
            )
            .returning(OrganizationRow)
        )
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_org(row)

    async def delete(self, org_id: UUID) -> bool:
        stmt = delete(OrganizationRow).where(OrganizationRow.id == org_id)
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_by_ids(self, org_ids: Iterable[UUID]) -> list[Organization]:
        ids = list(org_ids)
        if not ids:
            return []
        stmt = select(OrganizationRow).where(OrganizationRow.id.in_(ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        by_id = {row.id: _row_to_org(row) for row in rows}
        return [by_id[i] for i in ids if i in by_id]


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        slug=row.slug,
        owner_user_id=row.owner_user_id,
        seat_limit=row.seat_limit,
        used_seats=row.used_seats,
        plan_tier=PlanTier(row.plan_tier),
        domain_allowlist=frozenset(row.domain_allowlist or ()),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
