"""Invitation endpoints: issue, list, resend, cancel, accept.

Issue/list/resend/cancel act on the resolved tenant. Accept is not
tenant-scoped: the invitee is usually not a member of anything there
yet, so it is authorized by token plus email match alone.
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
from tenant_access.models.organization import Invite, InviteStatus, Role
from tenant_access.models.principal import Principal, TenantContext

router = APIRouter(tags=["invitations"])


class InviteIn(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    role: Role = Role.MEMBER
    message: str | None = Field(default=None, max_length=2000)


class InviteOut(BaseModel):
    id: UUID
    org_id: UUID
    email: str
    role: Role
    status: InviteStatus
    expires_at: datetime
    invited_by_user_id: UUID
    message: str | None
    created_at: datetime

    @staticmethod
    def of(invite: Invite, effective: InviteStatus | None = None) -> InviteOut:
        return InviteOut(
            id=invite.id,
            org_id=invite.org_id,
            email=invite.email,
            role=invite.role,
            status=effective or invite.status,
            expires_at=invite.expires_at,
            invited_by_user_id=invite.invited_by_user_id,
            message=invite.message,
            created_at=invite.created_at,
        )


class AcceptIn(BaseModel):
    token: str = Field(min_length=1)


class AcceptOut(BaseModel):
    membership_id: UUID
    org_id: UUID
    org_name: str
    role: Role


@router.get("/v1/organization/invitations", response_model=list[InviteOut])
async def list_invitations(
    ctx: Annotated[TenantContext, Depends(guard("invitations.list"))],
    status_filter: Annotated[InviteStatus | None, Query(alias="status")] = None,
) -> list[InviteOut]:
    views = await lifecycle_service.list_invitations(org_id_of(ctx), status_filter)
    return [InviteOut.of(v.invite, v.status) for v in views]


@router.post(
    "/v1/organization/invitations",
    response_model=InviteOut,
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    body: InviteIn,
    ctx: Annotated[TenantContext, Depends(guard("invitations.create"))],
) -> InviteOut:
    invite = await lifecycle_service.invite_member(
        org_id_of(ctx), body.email, body.role, actor_id_of(ctx), message=body.message
    )
    return InviteOut.of(invite)


@router.post("/v1/organization/invitations/{invite_id}/resend", response_model=InviteOut)
async def resend_invitation(
    invite_id: UUID,
    ctx: Annotated[TenantContext, Depends(guard("invitations.resend"))],
) -> InviteOut:
    invite = await lifecycle_service.resend_invitation(
        invite_id, actor_id_of(ctx), org_id=org_id_of(ctx)
    )
    return InviteOut.of(invite)


@router.delete("/v1/organization/invitations/{invite_id}", response_model=InviteOut)
async def cancel_invitation(
    invite_id: UUID,
    ctx: Annotated[TenantContext, Depends(guard("invitations.cancel"))],
) -> InviteOut:
    invite = await lifecycle_service.cancel_invitation(
        invite_id, actor_id_of(ctx), org_id=org_id_of(ctx)
    )
    return InviteOut.of(invite)


@router.post("/v1/invitations/accept", response_model=AcceptOut)
async def accept_invitation(
    body: AcceptIn,
    principal: Annotated[Principal, Depends(require_user)],
) -> AcceptOut:
    result = await lifecycle_service.accept_invitation(body.token, principal)
    return AcceptOut(
        membership_id=result.membership.id,
        org_id=result.organization.id,
        org_name=result.organization.name,
        role=result.membership.role,
    )
