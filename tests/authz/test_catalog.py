from __future__ import annotations

import pytest

from tenant_access.authz.catalog import PLATFORM_CATALOG, ROLE_RANKS, PermissionCatalog
from tenant_access.models.organization import Role


def test_role_hierarchy_is_strictly_ordered() -> None:
    ordered = sorted(Role, key=lambda r: ROLE_RANKS[r], reverse=True)
    assert ordered == [Role.OWNER, Role.ADMIN, Role.MANAGER, Role.MEMBER, Role.VIEWER]


@pytest.mark.parametrize(
    ("role", "minimum", "expected"),
    [
        (Role.OWNER, Role.ADMIN, True),
        (Role.ADMIN, Role.ADMIN, True),
        (Role.MANAGER, Role.ADMIN, False),
        (Role.VIEWER, Role.VIEWER, True),
        (Role.VIEWER, Role.MEMBER, False),
    ],
)
def test_at_least(role: Role, minimum: Role, expected: bool) -> None:
    assert PLATFORM_CATALOG.at_least(role, minimum) is expected


def test_owner_has_billing_admin_does_not() -> None:
    assert "org:billing" in PLATFORM_CATALOG.permissions(Role.OWNER)
    assert "org:billing" not in PLATFORM_CATALOG.permissions(Role.ADMIN)


def test_admin_can_delete_members() -> None:
    assert "org:members:delete" in PLATFORM_CATALOG.permissions(Role.ADMIN)


def test_viewer_is_read_only() -> None:
    assert PLATFORM_CATALOG.permissions(Role.VIEWER) == frozenset(
        {"leads:read", "properties:read", "campaigns:read", "reports:view_basic"}
    )


def test_higher_roles_never_lose_grants() -> None:
    chain = [Role.VIEWER, Role.MEMBER, Role.MANAGER, Role.ADMIN, Role.OWNER]
    for lower, higher in zip(chain, chain[1:]):
        assert PLATFORM_CATALOG.permissions(lower) <= PLATFORM_CATALOG.permissions(higher)


def test_catalog_tables_are_read_only() -> None:
    with pytest.raises(TypeError):
        PLATFORM_CATALOG.grants[Role.VIEWER] = frozenset()  # type: ignore[index]
    with pytest.raises(TypeError):
        PLATFORM_CATALOG.ranks[Role.VIEWER] = 99  # type: ignore[index]


def test_build_rejects_missing_roles() -> None:
    with pytest.raises(ValueError, match="missing roles"):
        PermissionCatalog.build("partial", {Role.OWNER: ("a",)})


def test_build_rejects_duplicate_ranks() -> None:
    grants = {role: () for role in Role}
    ranks = {role: 1 for role in Role}
    with pytest.raises(ValueError, match="ranks must be distinct"):
        PermissionCatalog.build("flat", grants, ranks)
