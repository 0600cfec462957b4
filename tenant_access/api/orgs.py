"""Organization and member endpoints.

Routes under ``/v1/organization`` act on the tenant resolved for the
request (X-Org-Id header, then ``org_id`` query, then the caller's
personal organization). Each route names its operation; the guard looks
it up in the static requirement tables before the handler runs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from tenant_access.api.dependencies import (
    actor_id_of,
    guard,
    lifecycle_service,
    org_id_of,
    require_user,
)
from tenant_access.models.organization import Membership, Organization, PlanTier, Role
from tenant_access.models.principal import Principal, TenantContext
from tenant_access.services.membership_service import (
    MemberView,
    OrganizationPatch,
)

router = APIRouter(tags=["organizations"])


# --- Pydantic schemas ---


class OrgCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str | None = Field(default=None, pattern=r"^[a-z0-9]+(-[a-z0-9]+)*$")
    seat_limit: int | None = Field(default=None, ge=1)
    plan_tier: PlanTier = PlanTier.STARTER
    domain_allowlist: list[str] = Field(default_factory=list)


class OrgUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    slug: str | None = Field(default=None, pattern=r"^[a-z0-9]+(-[a-z0-9]+)*$")
    seat_limit: int | None = Field(default=None, ge=1)
    plan_tier: PlanTier | None = None
    domain_allowlist: list[str] | None = None


class OrgOut(BaseModel):
    id: UUID
    name: str
    slug: str
    plan_tier: PlanTier
    seat_limit: int
    used_seats: int
    domain_allowlist: list[str]
    owner_user_id: UUID
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def of(org: Organization) -> OrgOut:
        return OrgOut(
            id=org.id,
            name=org.name,
            slug=org.slug,
            plan_tier=org.plan_tier,
            seat_limit=org.seat_limit,
            used_seats=org.used_seats,
            domain_allowlist=sorted(org.domain_allowlist),
            owner_user_id=org.owner_user_id,
            created_at=org.created_at,
            updated_at=org.updated_at,
        )


class UserOrgOut(OrgOut):
    member_role: Role
    is_owner: bool


class MemberOut(BaseModel):
    id: UUID
    user_id: UUID
    role: Role
    status: str
    accepted_at: datetime | None
    email: str | None = None
    name: str | None = None

    @staticmethod
    def of(m: Membership, view: MemberView | None = None) -> MemberOut:
        return MemberOut(
            id=m.id,
            user_id=m.user_id,
            role=m.role,
            status=str(m.status),
            accepted_at=m.accepted_at,
            email=view.email if view else None,
            name=view.name if view else None,
        )


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class MemberPageOut(BaseModel):
    members: list[MemberOut]
    pagination: PaginationOut


class UpdateRoleIn(BaseModel):
    role: Role


class PlanLimitsOut(BaseModel):
    max_seats: int
    current_seats: int
    remaining_seats: int


class StatsOut(BaseModel):
    total_members: int
    active_members: int
    pending_invitations: int
    seat_utilization: int
    plan_limits: PlanLimitsOut
    business_data: dict[str, int]


# --- Organizations ---


@router.post("/v1/organizations", response_model=OrgOut, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrgCreateIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> OrgOut:
    """Create an organization. The caller becomes its OWNER."""
    org = await lifecycle_service.create_organization(
        principal,
        body.name,
        slug=body.slug,
        seat_limit=body.seat_limit,
        plan_tier=body.plan_tier,
        domain_allowlist=body.domain_allowlist,
    )
    return OrgOut.of(org)


@router.get("/v1/organizations", response_model=list[UserOrgOut])
async def list_my_organizations(
    principal: Annotated[Principal, Depends(require_user)],
) -> list[UserOrgOut]:
    entries = await lifecycle_service.list_user_organizations(principal.user_id)
    return [
        UserOrgOut(
            **OrgOut.of(e.organization).model_dump(),
            member_role=e.role,
            is_owner=e.is_owner,
        )
        for e in entries
    ]


@router.post("/v1/organizations/personal", response_model=OrgOut)
async def provision_personal_organization(
    principal: Annotated[Principal, Depends(require_user)],
) -> OrgOut:
    """Idempotent: returns the existing personal organization if present."""
    org = await lifecycle_service.provision_personal_organization(principal)
    return OrgOut.of(org)


@router.get("/v1/organization", response_model=OrgOut)
async def get_organization(
    ctx: Annotated[TenantContext, Depends(guard("organizations.get"))],
) -> OrgOut:
    org = await lifecycle_service.get_organization(org_id_of(ctx))
    return OrgOut.of(org)


@router.patch("/v1/organization", response_model=OrgOut)
async def update_organization(
    body: OrgUpdateIn,
    ctx: Annotated[TenantContext, Depends(guard("organizations.update"))],
) -> OrgOut:
    patch = OrganizationPatch(
        name=body.name,
        slug=body.slug,
        seat_limit=body.seat_limit,
        plan_tier=body.plan_tier,
        domain_allowlist=(
            frozenset(body.domain_allowlist) if body.domain_allowlist is not None else None
        ),
    )
    org = await lifecycle_service.update_organization(org_id_of(ctx), patch, actor_id_of(ctx))
    return OrgOut.of(org)


@router.delete("/v1/organization", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    ctx: Annotated[TenantContext, Depends(guard("organizations.delete"))],
) -> None:
    await lifecycle_service.delete_organization(org_id_of(ctx), actor_id_of(ctx))


@router.get("/v1/organization/stats", response_model=StatsOut)
async def organization_stats(
    ctx: Annotated[TenantContext, Depends(guard("organizations.stats"))],
) -> StatsOut:
    stats = await lifecycle_service.get_organization_stats(org_id_of(ctx))
    return StatsOut(
        total_members=stats.total_members,
        active_members=stats.active_members,
        pending_invitations=stats.pending_invitations,
        seat_utilization=stats.seat_utilization,
        plan_limits=PlanLimitsOut(
            max_seats=stats.plan_limits.max_seats,
            current_seats=stats.plan_limits.current_seats,
            remaining_seats=stats.plan_limits.remaining_seats,
        ),
        business_data=stats.business_data,
    )


# --- Members ---


@router.get("/v1/organization/members", response_model=MemberPageOut)
async def list_members(
    ctx: Annotated[TenantContext, Depends(guard("members.list"))],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> MemberPageOut:
    result = await lifecycle_service.list_members(org_id_of(ctx), page=page, limit=limit)
    return MemberPageOut(
        members=[MemberOut.of(v.membership, v) for v in result.members],
        pagination=PaginationOut(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
    )


@router.patch("/v1/organization/members/{membership_id}", response_model=MemberOut)
async def update_member_role(
    membership_id: UUID,
    body: UpdateRoleIn,
    ctx: Annotated[TenantContext, Depends(guard("members.update_role"))],
) -> MemberOut:
    m = await lifecycle_service.update_member_role(
        org_id_of(ctx), membership_id, body.role, actor_id_of(ctx)
    )
    return MemberOut.of(m)


@router.delete(
    "/v1/organization/members/{membership_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def remove_member(
    membership_id: UUID,
    ctx: Annotated[TenantContext, Depends(guard("members.remove"))],
) -> None:
    await lifecycle_service.remove_member(org_id_of(ctx), membership_id, actor_id_of(ctx))
