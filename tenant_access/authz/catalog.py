"""Permission catalogs: role rank plus granted permissions, frozen at import.

A catalog is built once per policy domain (the platform catalog below, and
one per business vertical under authz/verticals/) and shared by every
request without locking. Nothing mutates a catalog after construction.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from tenant_access.models.organization import Role

# Role hierarchy shared by every catalog: OWNER > ADMIN > MANAGER > MEMBER > VIEWER
ROLE_RANKS: Mapping[Role, int] = MappingProxyType(
    {
        Role.OWNER: 5,
        Role.ADMIN: 4,
        Role.MANAGER: 3,
        Role.MEMBER: 2,
        Role.VIEWER: 1,
    }
)


@dataclass(frozen=True, slots=True)
class PermissionCatalog:
    name: str
    ranks: Mapping[Role, int]
    grants: Mapping[Role, frozenset[str]]

    @staticmethod
    def build(
        name: str,
        grants: Mapping[Role, Iterable[str]],
        ranks: Mapping[Role, int] = ROLE_RANKS,
    ) -> PermissionCatalog:
        """Validate and freeze a role table.

        Every role needs a rank and a grant set, and ranks must form a
        strict total order.
        """
        missing = [r for r in Role if r not in ranks or r not in grants]
        if missing:
            raise ValueError(f"catalog {name!r} missing roles: {missing}")
        if len(set(ranks.values())) != len(ranks):
            raise ValueError(f"catalog {name!r} ranks must be distinct")

        return PermissionCatalog(
            name=name,
            ranks=MappingProxyType(dict(ranks)),
            grants=MappingProxyType({r: frozenset(grants[r]) for r in Role}),
        )

    def rank(self, role: Role) -> int:
        return self.ranks[role]

    def permissions(self, role: Role) -> frozenset[str]:
        return self.grants[role]

    def at_least(self, role: Role, minimum: Role) -> bool:
        return self.rank(role) >= self.rank(minimum)

    def all_permissions(self) -> frozenset[str]:
        return frozenset().union(*self.grants.values())


# ---------------------------------------------------------------------------
# Platform catalog
# ---------------------------------------------------------------------------

LEADS = (
    "leads:read",
    "leads:write",
    "leads:delete",
    "leads:export",
    "leads:bulk_actions",
    "leads:assign",
)
PROPERTIES = (
    "properties:read",
    "properties:write",
    "properties:delete",
    "properties:publish",
    "properties:assign_agent",
    "properties:import",
)
CAMPAIGNS = (
    "campaigns:read",
    "campaigns:write",
    "campaigns:delete",
    "campaigns:activate",
    "campaigns:view_analytics",
    "campaigns:manage_budget",
)
AUTOMATIONS = (
    "automations:read",
    "automations:write",
    "automations:delete",
    "automations:execute",
)
INTEGRATIONS = (
    "integrations:read",
    "integrations:write",
    "integrations:delete",
    "integrations:sync",
)
REPORTS = (
    "reports:view_basic",
    "reports:view_advanced",
    "reports:export",
    "reports:schedule",
    "reports:custom",
)
ORG_ADMIN = (
    "org:settings",
    "org:members:read",
    "org:members:write",
    "org:members:delete",
    "org:invite_members",
)
PLATFORM_FEATURES = (
    "api:access",
    "white_label",
    "custom_integrations",
    "bulk_operations",
    "advanced_analytics",
)

_ADMIN_GRANTS = (
    LEADS
    + PROPERTIES
    + CAMPAIGNS
    + AUTOMATIONS
    + INTEGRATIONS
    + REPORTS
    + ORG_ADMIN
    + PLATFORM_FEATURES
)

PLATFORM_CATALOG = PermissionCatalog.build(
    "platform",
    {
        Role.OWNER: _ADMIN_GRANTS + ("org:billing", "dedicated_support"),
        Role.ADMIN: _ADMIN_GRANTS,
        Role.MANAGER: (
            "leads:read",
            "leads:write",
            "leads:delete",
            "leads:export",
            "leads:assign",
            "properties:read",
            "properties:write",
            "properties:delete",
            "properties:publish",
            "properties:assign_agent",
            "campaigns:read",
            "campaigns:write",
            "campaigns:delete",
            "campaigns:activate",
            "campaigns:view_analytics",
            "automations:read",
            "automations:write",
            "automations:execute",
            "integrations:read",
            "integrations:write",
            "integrations:sync",
            "reports:view_basic",
            "reports:view_advanced",
            "reports:export",
            "org:members:read",
        ),
        Role.MEMBER: (
            "leads:read",
            "leads:write",
            "properties:read",
            "properties:write",
            "campaigns:read",
            "campaigns:view_analytics",
            "automations:read",
            "integrations:read",
            "reports:view_basic",
        ),
        Role.VIEWER: (
            "leads:read",
            "properties:read",
            "campaigns:read",
            "reports:view_basic",
        ),
    },
)
