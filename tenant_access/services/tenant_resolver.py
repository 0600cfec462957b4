"""Per-request tenant resolution.

Turns an authenticated principal plus an optional requested org id into
the TenantContext that every authorization filter and tenant-scoped
operation receives as an explicit argument.

Resolution order:
  1. requested org id (X-Org-Id header, then ``org_id`` query param):
     used when the caller holds an ACTIVE membership there.
  2. otherwise the caller's personal organization.

When a requested org is not accessible, TENANT_FALLBACK decides:
``deny`` (default) fails closed with Forbidden; ``personal`` falls back to
the personal organization and logs a WARNING.
"""

from __future__ import annotations

import logging
from typing import Literal
from uuid import UUID

from tenant_access.core.errors import ForbiddenError
from tenant_access.core.metrics import TENANT_RESOLUTIONS
from tenant_access.models.organization import Role, personal_org_id
from tenant_access.models.principal import Principal, TenantContext
from tenant_access.repos.unit_of_work import UnitOfWork, UnitOfWorkFactory

logger = logging.getLogger(__name__)

FallbackPolicy = Literal["deny", "personal"]


class TenantResolver:
    def __init__(
        self, uow_factory: UnitOfWorkFactory, *, fallback: FallbackPolicy = "deny"
    ) -> None:
        self._uow_factory = uow_factory
        self._fallback = fallback

    async def resolve(
        self, principal: Principal | None, requested_org_id: UUID | None = None
    ) -> TenantContext:
        if principal is None:
            # Unauthenticated: no context; policy-free operations still run.
            return TenantContext()

        async with self._uow_factory() as uow:
            if requested_org_id is not None:
                ctx = await _membership_context(uow, principal, requested_org_id)
                if ctx is not None:
                    TENANT_RESOLUTIONS.labels(result="explicit").inc()
                    return ctx
                if self._fallback == "deny":
                    TENANT_RESOLUTIONS.labels(result="denied").inc()
                    logger.warning(
                        "Tenant denied: user=%s has no access to org=%s",
                        principal.user_id,
                        requested_org_id,
                        extra={
                            "user_id": str(principal.user_id),
                            "org_id": str(requested_org_id),
                        },
                    )
                    raise ForbiddenError(
                        "no organization access", org_id=str(requested_org_id)
                    )
                logger.warning(
                    "Tenant fallback: user=%s has no access to org=%s, "
                    "using personal organization",
                    principal.user_id,
                    requested_org_id,
                )

            ctx = await _personal_context(uow, principal)

        if ctx is None:
            TENANT_RESOLUTIONS.labels(result="denied").inc()
            logger.warning(
                "Tenant denied: user=%s has no personal organization",
                principal.user_id,
            )
            raise ForbiddenError("no organization access")

        result = "fallback" if requested_org_id is not None else "personal"
        TENANT_RESOLUTIONS.labels(result=result).inc()
        return ctx


async def _membership_context(
    uow: UnitOfWork, principal: Principal, org_id: UUID
) -> TenantContext | None:
    membership = await uow.memberships.find_active(org_id, principal.user_id)
    if membership is None:
        return None
    org = await uow.orgs.get_by_id(org_id)
    if org is None:
        return None
    return TenantContext(principal=principal, organization=org, membership=membership)


async def _personal_context(uow: UnitOfWork, principal: Principal) -> TenantContext | None:
    ctx = await _membership_context(uow, principal, personal_org_id(principal.user_id))
    if ctx is None or ctx.role != Role.OWNER:
        return None
    return ctx
