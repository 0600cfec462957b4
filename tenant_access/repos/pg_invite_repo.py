"""PostgreSQL implementation of InviteRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_access.db.tables import InviteRow
from tenant_access.models.organization import Invite, InviteStatus, Role


class PgInviteRepo:
    """Satisfies the InviteRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, invite_id: UUID) -> Invite | None:
        stmt = select(InviteRow).where(InviteRow.id == invite_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_invite(row) if row is not None else None

    async def get_by_token(self, token: str) -> Invite | None:
        stmt = select(InviteRow).where(InviteRow.token == token)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_invite(row) if row is not None else None

    async def find_sent(self, org_id: UUID, email: str) -> Invite | None:
        stmt = select(InviteRow).where(
            InviteRow.org_id == org_id,
            InviteRow.email == email,
            InviteRow.status == str(InviteStatus.SENT),
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_invite(row) if row is not None else None

    async def add(self, invite: Invite) -> None:
        row = InviteRow(
            id=invite.id,
            org_id=invite.org_id,
            email=invite.email,
            role=str(invite.role),
            token=invite.token,
            status=str(invite.status),
            expires_at=invite.expires_at,
            invited_by_user_id=invite.invited_by_user_id,
            message=invite.message,
            created_at=invite.created_at,
        )
        self._session.add(row)
        await self._session.flush()

    async def update(self, invite: Invite) -> None:
        stmt = (
            update(InviteRow)
            .where(InviteRow.id == invite.id)
            .values(
                token=invite.token,
                status=str(invite.status),
                expires_at=invite.expires_at,
            )
        )
        await self._session.execute(stmt)

    async def list_by_org(self, org_id: UUID) -> list[Invite]:
        stmt = (
            select(InviteRow)
            .where(InviteRow.org_id == org_id)
            .order_by(InviteRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_invite(r) for r in rows]


def _row_to_invite(row: InviteRow) -> Invite:
    return Invite(
        id=row.id,
        org_id=row.org_id,
        email=row.email,
        role=Role(row.role),
        token=row.token,
        status=InviteStatus(row.status),
        expires_at=row.expires_at,
        invited_by_user_id=row.invited_by_user_id,
        message=row.message,
        created_at=row.created_at,
    )
