"""Production vertical endpoints.

The vertical's CRUD lives in its own service; here only the surface the
access-control core owns: what the caller may do in the production
vertical of the resolved organization.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tenant_access.api.dependencies import guard, org_id_of, role_of
from tenant_access.authz.verticals.production import PRODUCTION_CATALOG, PRODUCTION_FILTER
from tenant_access.models.organization import Role
from tenant_access.models.principal import TenantContext

router = APIRouter(prefix="/v1/production", tags=["production"])


class ProductionPermissionsOut(BaseModel):
    org_id: UUID
    role: Role
    permissions: list[str]
    allowed_operations: list[str]


@router.get("/permissions/me", response_model=ProductionPermissionsOut)
async def my_production_permissions(
    ctx: Annotated[
        TenantContext, Depends(guard("production.permissions.me", PRODUCTION_FILTER))
    ],
) -> ProductionPermissionsOut:
    role = role_of(ctx)
    return ProductionPermissionsOut(
        org_id=org_id_of(ctx),
        role=role,
        permissions=sorted(PRODUCTION_CATALOG.permissions(role)),
        allowed_operations=PRODUCTION_FILTER.allowed_operations(role),
    )
