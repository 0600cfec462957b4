"""Concurrent seat consumers and invite transitions serialize on the organization lock."""

from __future__ import annotations

import asyncio
from uuid import UUID

import pytest

from tenant_access.core.errors import BadRequestError, TenantAccessError
from tenant_access.models.organization import Invite, InviteStatus, Organization, Role
from tenant_access.repos.invite_repo import InMemoryInviteRepo
from tenant_access.repos.memory_db import InMemoryDatabase
from tenant_access.repos.unit_of_work import InMemoryUnitOfWork, PgUnitOfWork
from tenant_access.services.membership_service import MembershipLifecycleService
from tests.conftest import (
    FrozenClock,
    RecordingNotifier,
    assert_seat_invariants,
    make_principal,
    make_service,
)


def test_concurrent_accepts_for_the_last_seat() -> None:
    service, db = make_service()
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=2))
    alice = make_principal(email="alice@example.com")
    bob = make_principal(email="bob@example.com")
    invites = [
        asyncio.run(service.invite_member(org.id, p.email, Role.MEMBER, owner.user_id))
        for p in (alice, bob)
    ]

    async def race():
        return await asyncio.gather(
            service.accept_invitation(invites[0].token, alice),
            service.accept_invitation(invites[1].token, bob),
            return_exceptions=True,
        )

    results = asyncio.run(race())

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], BadRequestError)
    assert failures[0].message == "organization has reached seat limit"
    assert db.orgs[org.id].used_seats == 2
    assert sorted(i.status for i in db.invites.values()) == [
        InviteStatus.ACCEPTED,
        InviteStatus.SENT,
    ]
    assert_seat_invariants(db, org.id)


def test_concurrent_accepts_of_the_same_token() -> None:
    service, db = make_service()
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=5))
    invitee = make_principal(email="alice@example.com")
    invite = asyncio.run(service.invite_member(org.id, invitee.email, Role.MEMBER, owner.user_id))

    async def race():
        return await asyncio.gather(
            *(service.accept_invitation(invite.token, invitee) for _ in range(3)),
            return_exceptions=True,
        )

    results = asyncio.run(race())

    assert sum(not isinstance(r, Exception) for r in results) == 1
    assert all(isinstance(r, BadRequestError) for r in results if isinstance(r, Exception))
    assert db.orgs[org.id].used_seats == 2
    assert_seat_invariants(db, org.id)


def test_failed_transaction_rolls_back() -> None:
    service, db = make_service()
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=5))
    before = dict(db.memberships)

    async def boom():
        async with InMemoryUnitOfWork(db) as uow:
            await uow.orgs.adjust_used_seats(org.id, 3)
            raise RuntimeError("crash mid-transaction")

    with pytest.raises(RuntimeError):
        asyncio.run(boom())

    assert db.orgs[org.id].used_seats == 1
    assert db.memberships == before
    assert not db.lock.locked()


def test_unit_of_work_exit_without_enter_is_an_error() -> None:
    uow = PgUnitOfWork(lambda: None)  # type: ignore[arg-type, return-value]

    with pytest.raises(RuntimeError, match="not active"):
        asyncio.run(uow.__aexit__(None, None, None))


# ---- row-lock isolation ----


class YieldingInviteRepo(InMemoryInviteRepo):
    """Gives other tasks a turn on every statement, like a network round trip."""

    async def get_by_id(self, invite_id: UUID) -> Invite | None:
        await asyncio.sleep(0)
        return await super().get_by_id(invite_id)

    async def get_by_token(self, token: str) -> Invite | None:
        await asyncio.sleep(0)
        return await super().get_by_token(token)

    async def update(self, invite: Invite) -> None:
        await asyncio.sleep(0)
        await super().update(invite)


class RowLockUnitOfWork(InMemoryUnitOfWork):
    """Serializes only through lock_organization, held until the transaction ends.

    This mirrors READ COMMITTED with SELECT ... FOR UPDATE: statements of
    transactions that never lock the same organization row interleave freely.
    """

    def __init__(self, db: InMemoryDatabase, row_locks: dict[UUID, asyncio.Lock]) -> None:
        super().__init__(db)
        self.invites = YieldingInviteRepo(db)
        self._row_locks = row_locks
        self._held: list[asyncio.Lock] = []

    async def __aenter__(self) -> RowLockUnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        for lock in self._held:
            lock.release()
        self._held.clear()

    async def lock_organization(self, org_id: UUID) -> Organization | None:
        lock = self._row_locks.setdefault(org_id, asyncio.Lock())
        await lock.acquire()
        self._held.append(lock)
        return await self.orgs.get_by_id(org_id)


@pytest.mark.parametrize("transition", ["cancel", "resend"])
@pytest.mark.parametrize("accept_first", [True, False])
def test_invite_transition_racing_accept_has_one_winner(
    transition: str, accept_first: bool
) -> None:
    db = InMemoryDatabase()
    service, _ = make_service(db)
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=5))
    invitee = make_principal(email="alice@example.com")
    invite = asyncio.run(service.invite_member(org.id, invitee.email, Role.MEMBER, owner.user_id))

    row_locks: dict[UUID, asyncio.Lock] = {}
    racing = MembershipLifecycleService(
        lambda: RowLockUnitOfWork(db, row_locks), RecordingNotifier(), clock=FrozenClock()
    )

    async def race():
        accept = racing.accept_invitation(invite.token, invitee)
        if transition == "cancel":
            other = racing.cancel_invitation(invite.id, owner.user_id)
        else:
            other = racing.resend_invitation(invite.id, owner.user_id)
        pair = (accept, other) if accept_first else (other, accept)
        return await asyncio.gather(*pair, return_exceptions=True)

    results = asyncio.run(race())

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], TenantAccessError)

    stored = db.invites[invite.id]
    joined = any(m.user_id == invitee.user_id for m in db.memberships.values())
    if stored.status == InviteStatus.ACCEPTED:
        assert joined
        assert stored.token == invite.token
        assert db.orgs[org.id].used_seats == 2
    else:
        assert not joined
        assert db.orgs[org.id].used_seats == 1
        if transition == "cancel":
            assert stored.status == InviteStatus.REVOKED
        else:
            assert stored.status == InviteStatus.SENT
            assert stored.token != invite.token
    assert_seat_invariants(db, org.id)
