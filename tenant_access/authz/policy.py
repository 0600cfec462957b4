"""Authorization filters driven by static per-operation requirement tables.

Each protected operation is declared once, by name, in a requirement table
(PLATFORM_REQUIREMENTS below, or a vertical's own table). An
AuthorizationFilter pairs one catalog with one table and decides
allow/deny for an operation given the resolved TenantContext:

  1. No requirement declared: allow.
  2. Requirement declared but no organization/membership: deny.
  3. Roles: the caller's rank must reach at least one listed role.
  4. Permissions: the caller's grants must cover every listed permission.

Roles and permissions are ANDed. Several filters can guard the same
operation; each one only knows its own catalog and table.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import NoReturn

from tenant_access.authz.catalog import PLATFORM_CATALOG, PermissionCatalog
from tenant_access.core.errors import ForbiddenError
from tenant_access.core.metrics import AUTHZ_DECISIONS
from tenant_access.models.organization import Role
from tenant_access.models.principal import TenantContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Requirement:
    roles: tuple[Role, ...] = ()
    permissions: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.roles and not self.permissions


NO_REQUIREMENT = Requirement()


class AuthorizationFilter:
    """Stateless allow/deny decision for one catalog and one requirement table."""

    def __init__(
        self,
        catalog: PermissionCatalog,
        requirements: Mapping[str, Requirement],
    ) -> None:
        self.catalog = catalog
        self._requirements = MappingProxyType(dict(requirements))
        unknown = {
            p
            for req in self._requirements.values()
            for p in req.permissions
            if p not in catalog.all_permissions()
        }
        if unknown:
            raise ValueError(
                f"requirements reference permissions unknown to catalog "
                f"{catalog.name!r}: {sorted(unknown)}"
            )

    @property
    def operations(self) -> frozenset[str]:
        return frozenset(self._requirements)

    def requirement_for(self, operation: str) -> Requirement:
        return self._requirements.get(operation, NO_REQUIREMENT)

    def allowed_operations(self, role: Role) -> list[str]:
        """Operations of this table a member with ``role`` may perform."""
        granted = self.catalog.permissions(role)
        return sorted(
            op
            for op, req in self._requirements.items()
            if (not req.roles or any(self.catalog.at_least(role, r) for r in req.roles))
            and granted.issuperset(req.permissions)
        )

    def check(self, operation: str, context: TenantContext) -> None:
        """Raise ForbiddenError unless the context satisfies the operation."""
        self.evaluate(self.requirement_for(operation), context, operation=operation)

    def evaluate(
        self,
        requirement: Requirement,
        context: TenantContext,
        *,
        operation: str = "-",
    ) -> None:
        if requirement.is_empty:
            self._record("allow")
            return

        role = context.role
        if not context.is_resolved or role is None:
            self._deny(
                "deny_context",
                operation,
                context,
                ForbiddenError("organization context required"),
            )

        if requirement.roles and not any(
            self.catalog.at_least(role, r) for r in requirement.roles
        ):
            required = [str(r) for r in requirement.roles]
            self._deny(
                "deny_role",
                operation,
                context,
                ForbiddenError(
                    f"insufficient role: requires one of {', '.join(required)}, "
                    f"has {role}",
                    required_roles=required,
                    actual_role=str(role),
                ),
            )

        if requirement.permissions:
            granted = self.catalog.permissions(role)
            missing = [p for p in requirement.permissions if p not in granted]
            if missing:
                self._deny(
                    "deny_permission",
                    operation,
                    context,
                    ForbiddenError(
                        f"missing permissions: {', '.join(missing)}",
                        missing_permissions=missing,
                        actual_role=str(role),
                    ),
                )

        self._record("allow")

    def _record(self, outcome: str) -> None:
        AUTHZ_DECISIONS.labels(catalog=self.catalog.name, outcome=outcome).inc()

    def _deny(
        self,
        outcome: str,
        operation: str,
        context: TenantContext,
        error: ForbiddenError,
    ) -> NoReturn:
        self._record(outcome)
        logger.warning(
            "Access denied: catalog=%s operation=%s user=%s org=%s reason=%s",
            self.catalog.name,
            operation,
            context.user_id,
            context.org_id,
            error.message,
            extra={
                "operation": operation,
                "user_id": context.user_id,
                "org_id": context.org_id,
            },
        )
        raise error


def authorize(
    operation: str,
    context: TenantContext,
    filters: Iterable[AuthorizationFilter],
) -> None:
    """Run every filter in order; the first denial propagates."""
    for f in filters:
        f.check(operation, context)


# ---------------------------------------------------------------------------
# Platform operations
# ---------------------------------------------------------------------------

PLATFORM_REQUIREMENTS: Mapping[str, Requirement] = MappingProxyType(
    {
        "organizations.get": Requirement(roles=(Role.VIEWER,)),
        "organizations.update": Requirement(
            roles=(Role.ADMIN,), permissions=("org:settings",)
        ),
        "organizations.delete": Requirement(roles=(Role.OWNER,)),
        "organizations.stats": Requirement(permissions=("org:members:read",)),
        "members.list": Requirement(permissions=("org:members:read",)),
        "members.update_role": Requirement(
            roles=(Role.ADMIN,), permissions=("org:members:write",)
        ),
        "members.remove": Requirement(
            roles=(Role.ADMIN,), permissions=("org:members:delete",)
        ),
        "invitations.list": Requirement(roles=(Role.ADMIN,)),
        "invitations.create": Requirement(
            roles=(Role.ADMIN,), permissions=("org:invite_members",)
        ),
        "invitations.resend": Requirement(
            roles=(Role.ADMIN,), permissions=("org:invite_members",)
        ),
        "invitations.cancel": Requirement(
            roles=(Role.ADMIN,), permissions=("org:invite_members",)
        ),
    }
)

PLATFORM_FILTER = AuthorizationFilter(PLATFORM_CATALOG, PLATFORM_REQUIREMENTS)
