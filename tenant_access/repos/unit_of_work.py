"""Transaction boundary around the repositories.

A unit of work groups every repo touched by one lifecycle operation into
a single atomic transaction: commit on clean exit, rollback on any
exception. Seat-touching operations call ``lock_organization`` before
their capacity check so that concurrent seat consumers serialize on the
organization row.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tenant_access.models.organization import Organization
from tenant_access.repos.invite_repo import InMemoryInviteRepo, InviteRepo
from tenant_access.repos.membership_repo import InMemoryMembershipRepo, MembershipRepo
from tenant_access.repos.memory_db import InMemoryDatabase
from tenant_access.repos.org_repo import InMemoryOrgRepo, OrgRepo
from tenant_access.repos.pg_invite_repo import PgInviteRepo
from tenant_access.repos.pg_membership_repo import PgMembershipRepo
from tenant_access.repos.pg_org_repo import PgOrgRepo
from tenant_access.repos.pg_record_repo import PgBusinessRecordRepo
from tenant_access.repos.pg_user_repo import PgUserRepo
from tenant_access.repos.record_repo import BusinessRecordRepo, InMemoryBusinessRecordRepo
from tenant_access.repos.user_repo import InMemoryUserRepo, UserRepo

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    orgs: OrgRepo
    memberships: MembershipRepo
    invites: InviteRepo
    users: UserRepo
    records: BusinessRecordRepo

    async def __aenter__(self) -> UnitOfWork: ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    async def lock_organization(self, org_id: UUID) -> Organization | None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]


class InMemoryUnitOfWork:
    """Serializable transactions over an InMemoryDatabase.

    The database lock is held for the whole transaction, so
    ``lock_organization`` is a plain read. Not reentrant: never open a
    unit of work inside another on the same database.
    """

    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db
        self.orgs = InMemoryOrgRepo(db)
        self.memberships = InMemoryMembershipRepo(db)
        self.invites = InMemoryInviteRepo(db)
        self.users = InMemoryUserRepo(db)
        self.records = InMemoryBusinessRecordRepo(db)
        self._snapshot = None

    async def __aenter__(self) -> InMemoryUnitOfWork:
        await self._db.lock.acquire()
        self._snapshot = self._db.snapshot()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self._db.restore(self._snapshot)
                logger.debug("In-memory transaction rolled back: %s", exc_type.__name__)
        finally:
            self._snapshot = None
            self._db.lock.release()

    async def lock_organization(self, org_id: UUID) -> Organization | None:
        return await self.orgs.get_by_id(org_id)


class PgUnitOfWork:
    """One AsyncSession per unit of work; row locks via SELECT ... FOR UPDATE."""

    def __init__(self, session_factory: Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> PgUnitOfWork:
        session = self._session_factory()
        self._session = session
        self.orgs = PgOrgRepo(session)
        self.memberships = PgMembershipRepo(session)
        self.invites = PgInviteRepo(session)
        self.users = PgUserRepo(session)
        self.records = PgBusinessRecordRepo(session)
        await session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        session = self._session
        if session is None:
            raise RuntimeError("unit of work is not active")
        try:
            if exc_type is None:
                await session.commit()
            else:
                await session.rollback()
        finally:
            await session.close()
            self._session = None

    async def lock_organization(self, org_id: UUID) -> Organization | None:
        return await self.orgs.get_by_id(org_id, for_update=True)
