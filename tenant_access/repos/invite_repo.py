from __future__ import annotations

from typing import Protocol
from uuid import UUID

from tenant_access.models.organization import Invite, InviteStatus
from tenant_access.repos.memory_db import InMemoryDatabase


class InviteRepo(Protocol):
    async def get_by_id(self, invite_id: UUID) -> Invite | None: ...
    async def get_by_token(self, token: str) -> Invite | None: ...
    async def find_sent(self, org_id: UUID, email: str) -> Invite | None: ...
    async def add(self, invite: Invite) -> None: ...
    async def update(self, invite: Invite) -> None: ...
    async def list_by_org(self, org_id: UUID) -> list[Invite]: ...


class InMemoryInviteRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get_by_id(self, invite_id: UUID) -> Invite | None:
        return self._db.invites.get(invite_id)

    async def get_by_token(self, token: str) -> Invite | None:
        return next((i for i in self._db.invites.values() if i.token == token), None)

    async def find_sent(self, org_id: UUID, email: str) -> Invite | None:
        return next(
            (
                i
                for i in self._db.invites.values()
                if i.org_id == org_id
                and i.email == email
                and i.status == InviteStatus.SENT
            ),
            None,
        )

    async def add(self, invite: Invite) -> None:
        if await self.get_by_token(invite.token) is not None:
            raise ValueError("token already exists")
        if (
            invite.status == InviteStatus.SENT
            and await self.find_sent(invite.org_id, invite.email) is not None
        ):
            raise ValueError("a SENT invite already exists for this email")
        self._db.invites[invite.id] = invite

    async def update(self, invite: Invite) -> None:
        if invite.id not in self._db.invites:
            raise KeyError("invite not found")
        self._db.invites[invite.id] = invite

    async def list_by_org(self, org_id: UUID) -> list[Invite]:
        invites = [i for i in self._db.invites.values() if i.org_id == org_id]
        invites.sort(key=lambda i: i.created_at, reverse=True)
        return invites
