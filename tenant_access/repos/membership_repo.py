from __future__ import annotations

from collections import Counter
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from tenant_access.authz.catalog import ROLE_RANKS
from tenant_access.models.organization import Membership, MembershipStatus, Role
from tenant_access.repos.memory_db import InMemoryDatabase


class MembershipRepo(Protocol):
    async def get_by_id(self, membership_id: UUID) -> Membership | None: ...
    async def find(self, org_id: UUID, user_id: UUID) -> Membership | None: ...
    async def find_active(self, org_id: UUID, user_id: UUID) -> Membership | None: ...
    async def add(self, membership: Membership) -> None: ...
    async def update_role(
        self, membership_id: UUID, new_role: Role
    ) -> Membership | None: ...
    async def remove(self, membership_id: UUID) -> bool: ...
    async def list_active_by_org(
        self, org_id: UUID, *, offset: int = 0, limit: int = 50
    ) -> list[Membership]: ...
    async def list_active_by_user(self, user_id: UUID) -> list[Membership]: ...
    async def count_by_status(self, org_id: UUID) -> dict[MembershipStatus, int]: ...


def member_sort_key(m: Membership) -> tuple:
    """Owners first (highest rank), then earliest acceptance."""
    return (-ROLE_RANKS[m.role], m.accepted_at or m.created_at, str(m.id))


class InMemoryMembershipRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get_by_id(self, membership_id: UUID) -> Membership | None:
        return self._db.memberships.get(membership_id)

    async def find(self, org_id: UUID, user_id: UUID) -> Membership | None:
        return next(
            (
                m
                for m in self._db.memberships.values()
                if m.org_id == org_id and m.user_id == user_id
            ),
            None,
        )

    async def find_active(self, org_id: UUID, user_id: UUID) -> Membership | None:
        m = await self.find(org_id, user_id)
        return m if m is not None and m.is_active else None

    async def add(self, membership: Membership) -> None:
        if await self.find(membership.org_id, membership.user_id) is not None:
            raise ValueError("membership already exists")
        self._db.memberships[membership.id] = membership

    async def update_role(
        self, membership_id: UUID, new_role: Role
    ) -> Membership | None:
        existing = self._db.memberships.get(membership_id)
        if existing is None:
            return None
        updated = replace(existing, role=new_role)
        self._db.memberships[membership_id] = updated
        return updated

    async def remove(self, membership_id: UUID) -> bool:
        return self._db.memberships.pop(membership_id, None) is not None

    async def list_active_by_org(
        self, org_id: UUID, *, offset: int = 0, limit: int = 50
    ) -> list[Membership]:
        active = [
            m for m in self._db.memberships.values() if m.org_id == org_id and m.is_active
        ]
        active.sort(key=member_sort_key)
        return active[offset : offset + limit]

    async def list_active_by_user(self, user_id: UUID) -> list[Membership]:
        return [
            m
            for m in self._db.memberships.values()
            if m.user_id == user_id and m.is_active
        ]

    async def count_by_status(self, org_id: UUID) -> dict[MembershipStatus, int]:
        counts = Counter(
            m.status for m in self._db.memberships.values() if m.org_id == org_id
        )
        return dict(counts)
