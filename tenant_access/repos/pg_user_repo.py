"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_access.db.tables import UserRow
from tenant_access.models.user import User, normalize_email


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == normalize_email(email))
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def add(self, user: User) -> None:
        # A concurrent first request for the same user may insert it first.
        stmt = (
            insert(UserRow)
            .values(id=user.id, email=user.email, name=user.name)
            .on_conflict_do_nothing(index_elements=[UserRow.id])
        )
        await self._session.execute(stmt)


def _row_to_user(row: UserRow) -> User:
    return User(id=row.id, email=row.email, name=row.name or "")
