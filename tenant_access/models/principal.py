from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from tenant_access.models.organization import Membership, Organization, Role


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated JWT.

    user_id: subject from the JWT
    email: email claim, compared against invite emails on acceptance
    """

    user_id: UUID
    email: str


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Output of the tenant resolver for one request.

    Threaded explicitly into every authorization check and tenant-scoped
    operation. ``organization`` and ``membership`` are None only for
    unauthenticated requests, which carry no context at all.
    """

    principal: Principal | None = None
    organization: Organization | None = None
    membership: Membership | None = None

    @property
    def is_resolved(self) -> bool:
        return self.organization is not None and self.membership is not None

    @property
    def org_id(self) -> UUID | None:
        return self.organization.id if self.organization else None

    @property
    def role(self) -> Role | None:
        return self.membership.role if self.membership else None

    @property
    def user_id(self) -> UUID | None:
        return self.principal.user_id if self.principal else None
