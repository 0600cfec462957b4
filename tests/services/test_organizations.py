from __future__ import annotations

import asyncio
from uuid import UUID, uuid4

import pytest

from tenant_access.core.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from tenant_access.models.organization import (
    Organization,
    PlanTier,
    Role,
    personal_org_id,
)
from tenant_access.repos.memory_db import InMemoryDatabase
from tenant_access.repos.org_repo import InMemoryOrgRepo
from tenant_access.repos.unit_of_work import InMemoryUnitOfWork
from tenant_access.services.membership_service import (
    MembershipLifecycleService,
    OrganizationPatch,
)
from tests.conftest import (
    FrozenClock,
    RecordingNotifier,
    assert_seat_invariants,
    make_principal,
    make_service,
    seed_member,
    seed_records,
)


# ---- create ----


def test_create_organization_seats_the_owner() -> None:
    service, db = make_service()
    owner = make_principal()

    org = asyncio.run(service.create_organization(owner, "  Acme Realty ", seat_limit=5))

    assert org.name == "Acme Realty"
    assert org.slug.startswith("acme-realty-")
    assert org.used_seats == 1
    assert org.owner_user_id == owner.user_id
    [membership] = db.memberships.values()
    assert membership.role == Role.OWNER
    assert membership.user_id == owner.user_id
    assert owner.user_id in db.users
    assert_seat_invariants(db, org.id)


def test_create_organization_uses_default_seat_limit() -> None:
    service, _db = make_service()
    org = asyncio.run(service.create_organization(make_principal(), "Acme"))
    assert org.seat_limit == 5
    assert org.plan_tier == PlanTier.STARTER


@pytest.mark.parametrize(("name", "seat_limit"), [("   ", 5), ("Acme", 0)])
def test_create_organization_rejects_bad_input(name: str, seat_limit: int) -> None:
    service, db = make_service()
    with pytest.raises(BadRequestError):
        asyncio.run(service.create_organization(make_principal(), name, seat_limit=seat_limit))
    assert db.orgs == {}


def test_create_organization_rejects_taken_slug() -> None:
    service, db = make_service()
    asyncio.run(service.create_organization(make_principal(), "Acme", slug="acme"))

    with pytest.raises(ConflictError, match="slug already exists"):
        asyncio.run(service.create_organization(make_principal(), "Other", slug="acme"))
    assert len(db.orgs) == 1
    assert len(db.memberships) == 1


class StaleReadOrgRepo(InMemoryOrgRepo):
    """Reads that miss a row a concurrent transaction committed meanwhile."""

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return None

    async def get_by_slug(self, slug: str) -> Organization | None:
        return None

    async def add(self, org: Organization) -> None:
        # Uniqueness is still enforced on the committed rows.
        await InMemoryOrgRepo(self._db).add(org)


def stale_first_service(db: InMemoryDatabase) -> MembershipLifecycleService:
    """A service whose first unit of work reads stale organization rows."""
    opened = []

    def factory() -> InMemoryUnitOfWork:
        uow = InMemoryUnitOfWork(db)
        if not opened:
            uow.orgs = StaleReadOrgRepo(db)
        opened.append(uow)
        return uow

    return MembershipLifecycleService(factory, RecordingNotifier(), clock=FrozenClock())


def test_create_organization_slug_taken_after_check_is_conflict() -> None:
    service, db = make_service()
    asyncio.run(service.create_organization(make_principal(), "Acme", slug="acme"))
    racing = stale_first_service(db)

    with pytest.raises(ConflictError, match="slug already exists"):
        asyncio.run(racing.create_organization(make_principal(), "Other", slug="acme"))
    assert len(db.orgs) == 1
    assert len(db.memberships) == 1


# ---- personal organization ----


def test_provision_personal_organization_is_idempotent() -> None:
    service, db = make_service()
    user = make_principal()

    first = asyncio.run(service.provision_personal_organization(user))
    second = asyncio.run(service.provision_personal_organization(user))

    assert first.id == second.id == personal_org_id(user.user_id)
    assert first.plan_tier == PlanTier.PERSONAL
    assert first.seat_limit == 1
    assert first.is_personal
    assert len(db.orgs) == 1


def test_provision_personal_organization_returns_concurrently_created_org() -> None:
    service, db = make_service()
    user = make_principal()
    first = asyncio.run(service.provision_personal_organization(user))
    racing = stale_first_service(db)

    second = asyncio.run(racing.provision_personal_organization(user))

    assert second == first
    assert list(db.orgs) == [first.id]
    assert len(db.memberships) == 1


# ---- update ----


def test_update_organization_applies_patch() -> None:
    service, _db = make_service()
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=5))

    updated = asyncio.run(
        service.update_organization(
            org.id,
            OrganizationPatch(name="Acme Homes", seat_limit=20, domain_allowlist=frozenset({" Acme.COM "})),
            owner.user_id,
        )
    )
    assert updated.name == "Acme Homes"
    assert updated.seat_limit == 20
    assert updated.domain_allowlist == frozenset({"acme.com"})


def test_update_organization_rejects_seat_limit_below_usage() -> None:
    service, db = make_service()
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=5))
    seed_member(db, org.id, Role.MEMBER)
    seed_member(db, org.id, Role.MEMBER)

    with pytest.raises(BadRequestError, match=r"below current usage \(3\)"):
        asyncio.run(service.update_organization(org.id, OrganizationPatch(seat_limit=2), owner.user_id))
    assert db.orgs[org.id].seat_limit == 5


def test_update_organization_rejects_slug_of_another_org() -> None:
    service, _db = make_service()
    owner = make_principal()
    asyncio.run(service.create_organization(make_principal(), "Taken", slug="taken"))
    org = asyncio.run(service.create_organization(owner, "Acme", slug="acme"))

    with pytest.raises(ConflictError):
        asyncio.run(service.update_organization(org.id, OrganizationPatch(slug="taken"), owner.user_id))


def test_update_organization_requires_admin() -> None:
    service, db = make_service()
    org = asyncio.run(service.create_organization(make_principal(), "Acme"))
    manager, _ = seed_member(db, org.id, Role.MANAGER)

    with pytest.raises(ForbiddenError, match="insufficient role"):
        asyncio.run(service.update_organization(org.id, OrganizationPatch(name="X"), manager.user_id))


# ---- delete ----


def test_delete_organization_purges_tenant_data() -> None:
    service, db = make_service()
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme"))
    other = asyncio.run(service.create_organization(make_principal(), "Other"))
    seed_member(db, org.id, Role.MEMBER)
    asyncio.run(service.invite_member(org.id, "new@example.com", Role.MEMBER, owner.user_id))
    for org_id in (org.id, other.id):
        seed_records(db, org_id, "real_estate_leads")

    asyncio.run(service.delete_organization(org.id, owner.user_id))

    assert org.id not in db.orgs
    assert all(m.org_id != org.id for m in db.memberships.values())
    assert all(i.org_id != org.id for i in db.invites.values())
    assert [r.org_id for r in db.records.values()] == [other.id]


def test_delete_personal_organization_is_forbidden() -> None:
    service, db = make_service()
    user = make_principal()
    org = asyncio.run(service.provision_personal_organization(user))

    with pytest.raises(ForbiddenError, match="cannot delete personal organization"):
        asyncio.run(service.delete_organization(org.id, user.user_id))
    assert org.id in db.orgs


def test_delete_organization_requires_owner() -> None:
    service, db = make_service()
    org = asyncio.run(service.create_organization(make_principal(), "Acme"))
    admin, _ = seed_member(db, org.id, Role.ADMIN)

    with pytest.raises(ForbiddenError):
        asyncio.run(service.delete_organization(org.id, admin.user_id))
    assert org.id in db.orgs


def test_get_unknown_organization_is_not_found() -> None:
    service, _db = make_service()
    with pytest.raises(NotFoundError):
        asyncio.run(service.get_organization(uuid4()))


# ---- listing and stats ----


def test_list_user_organizations_reports_role_and_ownership() -> None:
    service, db = make_service()
    user = make_principal()
    own = asyncio.run(service.create_organization(user, "Mine"))
    theirs = asyncio.run(service.create_organization(make_principal(), "Theirs"))
    seed_member(db, theirs.id, Role.VIEWER, principal=user)

    result = {uo.organization.id: uo for uo in asyncio.run(service.list_user_organizations(user.user_id))}

    assert result[own.id].role == Role.OWNER
    assert result[own.id].is_owner is True
    assert result[theirs.id].role == Role.VIEWER
    assert result[theirs.id].is_owner is False


def test_stats_of_new_organization() -> None:
    service, _db = make_service()
    org = asyncio.run(service.create_organization(make_principal(), "Acme", seat_limit=5))

    stats = asyncio.run(service.get_organization_stats(org.id))

    assert stats.total_members == 1
    assert stats.active_members == 1
    assert stats.pending_invitations == 0
    assert stats.seat_utilization == 20
    assert stats.plan_limits.max_seats == 5
    assert stats.plan_limits.current_seats == 1
    assert stats.plan_limits.remaining_seats == 4
    assert stats.business_data == {
        "properties": 0,
        "real_estate_leads": 0,
        "ecommerce_leads": 0,
        "campaigns": 0,
        "templates": 0,
    }


def test_stats_count_pending_invitations_and_records() -> None:
    clock = FrozenClock()
    service, db = make_service(clock=clock)
    owner = make_principal()
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=3))
    asyncio.run(service.invite_member(org.id, "old@example.com", Role.MEMBER, owner.user_id))
    clock.advance(days=8)
    asyncio.run(service.invite_member(org.id, "fresh@example.com", Role.MEMBER, owner.user_id))
    seed_records(db, org.id, "real_estate_leads", "real_estate_leads", "properties")

    stats = asyncio.run(service.get_organization_stats(org.id))

    # the first invite has expired and no longer counts as pending
    assert stats.pending_invitations == 1
    assert stats.seat_utilization == 33
    assert stats.business_data["real_estate_leads"] == 2
    assert stats.business_data["properties"] == 1
    assert stats.business_data["campaigns"] == 0


# ---- members listing ----


def test_list_members_orders_owner_first_and_paginates() -> None:
    service, db = make_service()
    owner = make_principal(email="owner@example.com")
    org = asyncio.run(service.create_organization(owner, "Acme", seat_limit=10))
    seed_member(db, org.id, Role.MEMBER)
    seed_member(db, org.id, Role.ADMIN)
    seed_member(db, org.id, Role.VIEWER)
    seed_member(db, org.id, Role.MANAGER)

    first = asyncio.run(service.list_members(org.id, page=1, limit=2))
    last = asyncio.run(service.list_members(org.id, page=3, limit=2))

    assert [m.membership.role for m in first.members] == [Role.OWNER, Role.ADMIN]
    assert first.members[0].email == "owner@example.com"
    assert first.total == 5
    assert first.total_pages == 3
    assert [m.membership.role for m in last.members] == [Role.VIEWER]


@pytest.mark.parametrize(("page", "limit"), [(0, 10), (1, 0), (1, 101)])
def test_list_members_rejects_bad_paging(page: int, limit: int) -> None:
    service, _db = make_service()
    org = asyncio.run(service.create_organization(make_principal(), "Acme"))
    with pytest.raises(BadRequestError):
        asyncio.run(service.list_members(org.id, page=page, limit=limit))
