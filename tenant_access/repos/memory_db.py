"""Shared state behind the in-memory repositories.

All in-memory repos of one process read and write the same
InMemoryDatabase, so a unit of work can snapshot and restore every table
at once. ``lock`` serializes whole transactions, which gives the
in-memory store serializable isolation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from uuid import UUID

from tenant_access.models.organization import (
    BusinessRecord,
    Invite,
    Membership,
    Organization,
)
from tenant_access.models.user import User


@dataclass
class _Snapshot:
    orgs: dict[UUID, Organization]
    memberships: dict[UUID, Membership]
    invites: dict[UUID, Invite]
    users: dict[UUID, User]
    records: dict[UUID, BusinessRecord]


@dataclass
class InMemoryDatabase:
    orgs: dict[UUID, Organization] = field(default_factory=dict)
    memberships: dict[UUID, Membership] = field(default_factory=dict)
    invites: dict[UUID, Invite] = field(default_factory=dict)
    users: dict[UUID, User] = field(default_factory=dict)
    records: dict[UUID, BusinessRecord] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def snapshot(self) -> _Snapshot:
        # Values are frozen dataclasses, so shallow dict copies are enough.
        return _Snapshot(
            orgs=dict(self.orgs),
            memberships=dict(self.memberships),
            invites=dict(self.invites),
            users=dict(self.users),
            records=dict(self.records),
        )

    def restore(self, snap: _Snapshot) -> None:
        self.orgs = snap.orgs
        self.memberships = snap.memberships
        self.invites = snap.invites
        self.users = snap.users
        self.records = snap.records

    def clear(self) -> None:
        self.orgs.clear()
        self.memberships.clear()
        self.invites.clear()
        self.users.clear()
        self.records.clear()
