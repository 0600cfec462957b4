"""Tenant-owned business records (properties, leads, campaigns, ...).

The vertical CRUD lives elsewhere; this repo only knows enough to count
records for organization stats and to purge them when an organization
is deleted.
"""

from __future__ import annotations

from collections import Counter
from typing import Protocol
from uuid import UUID

from tenant_access.models.organization import BusinessRecord
from tenant_access.repos.memory_db import InMemoryDatabase


class BusinessRecordRepo(Protocol):
    async def add(self, record: BusinessRecord) -> None: ...
    async def count_by_kind(self, org_id: UUID) -> dict[str, int]: ...
    async def delete_by_org(self, org_id: UUID) -> int: ...


class InMemoryBusinessRecordRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def add(self, record: BusinessRecord) -> None:
        self._db.records[record.id] = record

    async def count_by_kind(self, org_id: UUID) -> dict[str, int]:
        return dict(Counter(r.kind for r in self._db.records.values() if r.org_id == org_id))

    async def delete_by_org(self, org_id: UUID) -> int:
        doomed = [r.id for r in self._db.records.values() if r.org_id == org_id]
        for rid in doomed:
            del self._db.records[rid]
        return len(doomed)
