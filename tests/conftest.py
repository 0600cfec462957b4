from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from tenant_access.api.dependencies import lifecycle_service, memory_db
from tenant_access.main import app
from tenant_access.models.organization import (
    BusinessRecord,
    Membership,
    Organization,
    Role,
    utcnow,
)
from tenant_access.models.principal import Principal, TenantContext
from tenant_access.models.user import User
from tenant_access.repos.memory_db import InMemoryDatabase
from tenant_access.repos.unit_of_work import InMemoryUnitOfWork
from tenant_access.services import token_service
from tenant_access.services.membership_service import MembershipLifecycleService
from tenant_access.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import tenant_access` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_memory_db() -> None:
    """Fresh tables and a fresh lock for the app-wide in-memory database."""
    memory_db.clear()
    memory_db.lock = asyncio.Lock()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


def make_principal(email: str | None = None) -> Principal:
    user_id = uuid4()
    return Principal(user_id=user_id, email=email or f"user-{user_id.hex[:8]}@example.com")


def mint_token(principal: Principal) -> str:
    """Create a valid ES256 JWT for the principal."""
    return token_service.create_access_token(sub=str(principal.user_id), email=principal.email)


def auth(principal: Principal | None, org_id: UUID | None = None) -> dict[str, str]:
    headers: dict[str, str] = {}
    if principal is not None:
        headers["Authorization"] = f"Bearer {mint_token(principal)}"
    if org_id is not None:
        headers["X-Org-Id"] = str(org_id)
    return headers


# ---------------------------------------------------------------------------
# Service-level fixtures
# ---------------------------------------------------------------------------


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    async def send(self, email: str, template: str, data: dict[str, Any]) -> None:
        self.sent.append((email, template, data))


class FailingNotifier:
    async def send(self, email: str, template: str, data: dict[str, Any]) -> None:
        raise ConnectionError("mail relay unreachable")


class FrozenClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_service(
    db: InMemoryDatabase | None = None,
    *,
    notifier: Any = None,
    clock: FrozenClock | None = None,
) -> tuple[MembershipLifecycleService, InMemoryDatabase]:
    db = db if db is not None else InMemoryDatabase()
    service = MembershipLifecycleService(
        lambda: InMemoryUnitOfWork(db),
        notifier if notifier is not None else RecordingNotifier(),
        clock=clock or FrozenClock(),
    )
    return service, db


def seed_member(
    db: InMemoryDatabase, org_id: UUID, role: Role, principal: Principal | None = None
) -> tuple[Principal, Membership]:
    """Insert an ACTIVE member directly, keeping used_seats in step."""
    principal = principal or make_principal()
    db.users.setdefault(principal.user_id, User(id=principal.user_id, email=principal.email))
    membership = Membership.new_active(org_id=org_id, user_id=principal.user_id, role=role)
    db.memberships[membership.id] = membership
    org = db.orgs[org_id]
    db.orgs[org_id] = replace(org, used_seats=org.used_seats + 1)
    return principal, membership


def seed_records(db: InMemoryDatabase, org_id: UUID, *kinds: str) -> None:
    """Store one business record per kind through the record repo."""

    async def _seed() -> None:
        async with InMemoryUnitOfWork(db) as uow:
            for kind in kinds:
                await uow.records.add(
                    BusinessRecord(id=uuid4(), org_id=org_id, vertical="real_estate", kind=kind)
                )

    asyncio.run(_seed())


def assert_seat_invariants(db: InMemoryDatabase, org_id: UUID) -> None:
    org = db.orgs[org_id]
    active = [m for m in db.memberships.values() if m.org_id == org_id and m.is_active]
    owners = [m for m in active if m.role == Role.OWNER]
    assert org.used_seats == len(active)
    assert org.used_seats <= org.seat_limit
    assert len(owners) == 1


# ---------------------------------------------------------------------------
# App-level helpers (operate on the app-wide in-memory database)
# ---------------------------------------------------------------------------


def create_test_org(
    owner: Principal | None = None, *, name: str = "Test Org", seat_limit: int = 10
) -> tuple[Principal, Organization]:
    owner = owner or make_principal()
    org = asyncio.run(
        lifecycle_service.create_organization(owner, name, seat_limit=seat_limit)
    )
    return owner, org


def add_test_member(org_id: UUID, role: Role) -> tuple[Principal, Membership]:
    return seed_member(memory_db, org_id, role)


def tenant_context(role: Role | None) -> TenantContext:
    """A resolved context with ``role`` in a throwaway org, or an empty one for None."""
    principal = make_principal()
    if role is None:
        return TenantContext(principal=principal)
    org = Organization.new(name="Acme", slug="acme", owner_user_id=uuid4(), seat_limit=10)
    membership = Membership.new_active(org_id=org.id, user_id=principal.user_id, role=role)
    return TenantContext(principal=principal, organization=org, membership=membership)
