from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from tenant_access.models.organization import Organization, utcnow
from tenant_access.repos.memory_db import InMemoryDatabase


class DuplicateOrganizationError(ValueError):
    """An organization with the same id or slug is already stored."""


class OrgRepo(Protocol):
    async def get_by_id(self, org_id: UUID) -> Organization | None: ...
    async def get_by_slug(self, slug: str) -> Organization | None: ...
    async def add(self, org: Organization) -> None: ...
    async def update(self, org: Organization) -> Organization: ...
    async def adjust_used_seats(self, org_id: UUID, delta: int) -> Organization: ...
    async def delete(self, org_id: UUID) -> bool: ...
    async def list_by_ids(self, org_ids: Iterable[UUID]) -> list[Organization]: ...


class InMemoryOrgRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return self._db.orgs.get(org_id)

    async def get_by_slug(self, slug: str) -> Organization | None:
        return next((o for o in self._db.orgs.values() if o.slug == slug), None)

    async def add(self, org: Organization) -> None:
        if org.id in self._db.orgs:
            raise DuplicateOrganizationError("organization already exists")
        if await self.get_by_slug(org.slug) is not None:
            raise DuplicateOrganizationError("slug already exists")
        self._db.orgs[org.id] = org

    async def update(self, org: Organization) -> Organization:
        if org.id not in self._db.orgs:
            raise KeyError("organization not found")
        updated = replace(org, updated_at=utcnow())
        self._db.orgs[org.id] = updated
        return updated

    async def adjust_used_seats(self, org_id: UUID, delta: int) -> Organization:
        org = self._db.orgs.get(org_id)
        if org is None:
            raise KeyError("organization not found")
        updated = replace(org, used_seats=org.used_seats + delta, updated_at=utcnow())
        self._db.orgs[org_id] = updated
        return updated

    async def delete(self, org_id: UUID) -> bool:
        if self._db.orgs.pop(org_id, None) is None:
            return False
        # Memberships and invites are owned by the organization.
        for mid in [m.id for m in self._db.memberships.values() if m.org_id == org_id]:
            del self._db.memberships[mid]
        for iid in [i.id for i in self._db.invites.values() if i.org_id == org_id]:
            del self._db.invites[iid]
        return True

    async def list_by_ids(self, org_ids: Iterable[UUID]) -> list[Organization]:
        return [self._db.orgs[i] for i in org_ids if i in self._db.orgs]
