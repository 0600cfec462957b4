"""Membership lifecycle: organizations, seats, members, invitations.

Every operation runs inside one unit of work. Operations that consume or
release a seat (invite, accept, remove) lock the organization row before
their capacity check, so two concurrent accepts near the limit serialize
and the second one sees the first one's seat. Cancel and resend take the
same lock, so an invite reaches exactly one terminal state.

Actor membership and rank are checked here as well as by the route-level
AuthorizationFilter. Rules about OWNER and ADMIN targets depend on the
target row, so they live only here.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from tenant_access.authz.catalog import ROLE_RANKS
from tenant_access.core.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from tenant_access.core.metrics import INVITATION_TRANSITIONS, SEAT_REJECTIONS
from tenant_access.models.organization import (
    BUSINESS_RECORD_KINDS,
    Invite,
    InviteStatus,
    Membership,
    MembershipStatus,
    Organization,
    PlanTier,
    Role,
    generate_invite_token,
    generate_slug,
    personal_org_id,
    utcnow,
)
from tenant_access.models.principal import Principal
from tenant_access.models.user import User, normalize_email
from tenant_access.repos.org_repo import DuplicateOrganizationError
from tenant_access.repos.unit_of_work import UnitOfWork, UnitOfWorkFactory
from tenant_access.services import audit
from tenant_access.services.notifications import (
    INVITATION_TEMPLATE,
    Notifier,
    notify_quietly,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SLUG_ATTEMPTS = 5


# ---------------------------------------------------------------------------
# Inputs and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OrganizationPatch:
    """Fields of an organization update; None means unchanged."""

    name: str | None = None
    slug: str | None = None
    seat_limit: int | None = None
    plan_tier: PlanTier | None = None
    domain_allowlist: frozenset[str] | None = None


@dataclass(frozen=True, slots=True)
class MemberView:
    membership: Membership
    email: str | None
    name: str | None


@dataclass(frozen=True, slots=True)
class MemberPage:
    members: list[MemberView]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


@dataclass(frozen=True, slots=True)
class InvitationView:
    invite: Invite
    status: InviteStatus  # effective: SENT past its deadline reads EXPIRED


@dataclass(frozen=True, slots=True)
class UserOrganization:
    organization: Organization
    role: Role
    is_owner: bool


@dataclass(frozen=True, slots=True)
class AcceptedInvitation:
    membership: Membership
    organization: Organization


@dataclass(frozen=True, slots=True)
class PlanLimits:
    max_seats: int
    current_seats: int
    remaining_seats: int


@dataclass(frozen=True, slots=True)
class OrganizationStats:
    total_members: int
    active_members: int
    pending_invitations: int
    seat_utilization: int  # percent, rounded half up
    plan_limits: PlanLimits
    business_data: dict[str, int]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class MembershipLifecycleService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        notifier: Notifier,
        *,
        invite_ttl: timedelta = timedelta(days=7),
        default_seat_limit: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._invite_ttl = invite_ttl
        self._default_seat_limit = default_seat_limit
        self._clock = clock

    # -- organizations ------------------------------------------------------

    async def create_organization(
        self,
        owner: Principal,
        name: str,
        *,
        slug: str | None = None,
        seat_limit: int | None = None,
        plan_tier: PlanTier = PlanTier.STARTER,
        domain_allowlist: Iterable[str] = (),
    ) -> Organization:
        """Create an organization and its OWNER membership atomically.

        Without an explicit slug one is derived from ``name`` with a random
        suffix, retrying a few times on collision. An explicit slug that is
        already taken is a Conflict.
        """
        name = name.strip()
        if not name:
            raise BadRequestError("name must be non-empty")
        limit = self._default_seat_limit if seat_limit is None else seat_limit
        if limit < 1:
            raise BadRequestError("seat limit must be at least 1", seat_limit=limit)

        async with self._uow_factory() as uow:
            final_slug = await _pick_slug(uow, name, slug)
            await _ensure_user(uow, owner)
            org = Organization.new(
                name=name,
                slug=final_slug,
                owner_user_id=owner.user_id,
                seat_limit=limit,
                plan_tier=plan_tier,
                domain_allowlist=frozenset(d.strip().lower() for d in domain_allowlist),
            )
            try:
                await uow.orgs.add(org)
            except DuplicateOrganizationError as exc:
                # Lost a race for the slug after the availability check.
                raise ConflictError("organization slug already exists", slug=final_slug) from exc
            await uow.memberships.add(
                Membership.new_active(org_id=org.id, user_id=owner.user_id, role=Role.OWNER)
            )

        logger.info(
            "Created organization id=%s slug=%s owner=%s seat_limit=%d",
            org.id,
            org.slug,
            owner.user_id,
            org.seat_limit,
        )
        audit.record("organization.created", actor_id=owner.user_id, org_id=org.id, slug=org.slug)
        return org

    async def provision_personal_organization(self, principal: Principal) -> Organization:
        """Return the caller's personal organization, creating it if needed."""
        org_id = personal_org_id(principal.user_id)
        try:
            async with self._uow_factory() as uow:
                existing = await uow.orgs.get_by_id(org_id)
                if existing is not None:
                    return existing

                await _ensure_user(uow, principal)
                org = Organization.new(
                    org_id=org_id,
                    name="Personal",
                    slug=f"personal-{principal.user_id}",
                    owner_user_id=principal.user_id,
                    seat_limit=1,
                    plan_tier=PlanTier.PERSONAL,
                )
                await uow.orgs.add(org)
                await uow.memberships.add(
                    Membership.new_active(org_id=org.id, user_id=principal.user_id, role=Role.OWNER)
                )
        except DuplicateOrganizationError:
            # A concurrent request provisioned it first.
            return await self.get_organization(org_id)

        logger.info("Provisioned personal organization for user=%s", principal.user_id)
        audit.record("organization.created", actor_id=principal.user_id, org_id=org.id, personal=True)
        return org

    async def get_organization(self, org_id: UUID) -> Organization:
        async with self._uow_factory() as uow:
            return await _get_org(uow, org_id)

    async def update_organization(
        self, org_id: UUID, patch: OrganizationPatch, actor_id: UUID
    ) -> Organization:
        async with self._uow_factory() as uow:
            await _require_actor(uow, org_id, actor_id, Role.ADMIN)
            org = await _lock_org(uow, org_id)
            changes: dict = {}

            if patch.name is not None:
                name = patch.name.strip()
                if not name:
                    raise BadRequestError("name must be non-empty")
                changes["name"] = name

            if patch.slug is not None and patch.slug != org.slug:
                other = await uow.orgs.get_by_slug(patch.slug)
                if other is not None and other.id != org.id:
                    raise ConflictError("organization slug already exists", slug=patch.slug)
                changes["slug"] = patch.slug

            if patch.seat_limit is not None:
                if patch.seat_limit < org.used_seats:
                    raise BadRequestError(
                        f"cannot reduce seat limit below current usage ({org.used_seats})",
                        seat_limit=patch.seat_limit,
                        used_seats=org.used_seats,
                    )
                changes["seat_limit"] = patch.seat_limit

            if patch.plan_tier is not None:
                changes["plan_tier"] = patch.plan_tier
            if patch.domain_allowlist is not None:
                changes["domain_allowlist"] = frozenset(
                    d.strip().lower() for d in patch.domain_allowlist
                )

            updated = await uow.orgs.update(replace(org, **changes)) if changes else org

        if changes:
            logger.info("Updated organization id=%s fields=%s", org_id, sorted(changes))
            audit.record(
                "organization.updated", actor_id=actor_id, org_id=org_id, fields=sorted(changes)
            )
        return updated

    async def delete_organization(self, org_id: UUID, actor_id: UUID) -> None:
        """Delete an organization with all of its tenant-owned data.

        Only the OWNER may delete, and never their own personal
        organization. Business records go first, then the organization row,
        whose memberships and invites cascade. One transaction.
        """
        async with self._uow_factory() as uow:
            await _require_actor(uow, org_id, actor_id, Role.OWNER)
            if org_id == personal_org_id(actor_id):
                raise ForbiddenError("cannot delete personal organization")

            await _lock_org(uow, org_id)
            purged = await uow.records.delete_by_org(org_id)
            await uow.orgs.delete(org_id)

        logger.info("Deleted organization id=%s records=%d", org_id, purged)
        audit.record("organization.deleted", actor_id=actor_id, org_id=org_id, records=purged)

    async def list_user_organizations(self, user_id: UUID) -> list[UserOrganization]:
        async with self._uow_factory() as uow:
            memberships = await uow.memberships.list_active_by_user(user_id)
            orgs = await uow.orgs.list_by_ids(m.org_id for m in memberships)

        by_id = {o.id: o for o in orgs}
        return [
            UserOrganization(
                organization=by_id[m.org_id],
                role=m.role,
                is_owner=by_id[m.org_id].owner_user_id == user_id,
            )
            for m in memberships
            if m.org_id in by_id
        ]

    async def get_organization_stats(self, org_id: UUID) -> OrganizationStats:
        now = self._clock()
        async with self._uow_factory() as uow:
            org = await _get_org(uow, org_id)
            by_status = await uow.memberships.count_by_status(org_id)
            invites = await uow.invites.list_by_org(org_id)
            business = await uow.records.count_by_kind(org_id)

        pending = sum(1 for i in invites if i.effective_status(now) == InviteStatus.SENT)
        return OrganizationStats(
            total_members=sum(by_status.values()),
            active_members=by_status.get(MembershipStatus.ACTIVE, 0),
            pending_invitations=pending,
            seat_utilization=_percent(org.used_seats, org.seat_limit),
            plan_limits=PlanLimits(
                max_seats=org.seat_limit,
                current_seats=org.used_seats,
                remaining_seats=org.remaining_seats,
            ),
            business_data={**dict.fromkeys(BUSINESS_RECORD_KINDS, 0), **business},
        )

    # -- members ------------------------------------------------------------

    async def list_members(
        self, org_id: UUID, *, page: int = 1, limit: int = 50
    ) -> MemberPage:
        """Active members, owners first, then by acceptance time."""
        if page < 1:
            raise BadRequestError("page must be >= 1", page=page)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise BadRequestError(f"limit must be between 1 and {MAX_PAGE_SIZE}", limit=limit)

        async with self._uow_factory() as uow:
            await _get_org(uow, org_id)
            memberships = await uow.memberships.list_active_by_org(
                org_id, offset=(page - 1) * limit, limit=limit
            )
            by_status = await uow.memberships.count_by_status(org_id)
            members = []
            for m in memberships:
                user = await uow.users.get_by_id(m.user_id)
                members.append(
                    MemberView(
                        membership=m,
                        email=user.email if user else None,
                        name=user.name if user else None,
                    )
                )

        return MemberPage(
            members=members,
            page=page,
            limit=limit,
            total=by_status.get(MembershipStatus.ACTIVE, 0),
        )

    async def update_member_role(
        self, org_id: UUID, membership_id: UUID, new_role: Role, actor_id: UUID
    ) -> Membership:
        async with self._uow_factory() as uow:
            actor = await _require_actor(uow, org_id, actor_id, Role.ADMIN)
            target = await _get_membership(uow, org_id, membership_id)

            if target.role == Role.OWNER or new_role == Role.OWNER:
                raise ForbiddenError("owner role cannot be changed")
            if target.role == Role.ADMIN and actor.role != Role.OWNER:
                raise ForbiddenError(
                    "only owners can change admin roles",
                    required_roles=[str(Role.OWNER)],
                    actual_role=str(actor.role),
                )

            updated = await uow.memberships.update_role(membership_id, new_role)
            if updated is None:
                raise NotFoundError("membership not found", membership_id=str(membership_id))

        logger.info(
            "Changed role membership=%s org=%s %s -> %s",
            membership_id,
            org_id,
            target.role,
            new_role,
        )
        audit.record(
            "member.role_changed",
            actor_id=actor_id,
            org_id=org_id,
            membership_id=membership_id,
            old_role=target.role,
            new_role=new_role,
        )
        return updated

    async def remove_member(
        self, org_id: UUID, membership_id: UUID, actor_id: UUID
    ) -> None:
        async with self._uow_factory() as uow:
            actor = await _require_actor(uow, org_id, actor_id, Role.ADMIN)
            await _lock_org(uow, org_id)
            target = await _get_membership(uow, org_id, membership_id)

            if target.role == Role.OWNER:
                raise ForbiddenError("cannot remove organization owner")
            if target.role == Role.ADMIN and actor.role != Role.OWNER:
                raise ForbiddenError(
                    "only owners can remove admins",
                    required_roles=[str(Role.OWNER)],
                    actual_role=str(actor.role),
                )

            await uow.memberships.remove(membership_id)
            # Only active memberships hold a seat.
            if target.is_active:
                await uow.orgs.adjust_used_seats(org_id, -1)

        logger.info("Removed membership=%s from org=%s", membership_id, org_id)
        audit.record(
            "member.removed",
            actor_id=actor_id,
            org_id=org_id,
            membership_id=membership_id,
            user=target.user_id,
        )

    # -- invitations --------------------------------------------------------

    async def invite_member(
        self,
        org_id: UUID,
        email: str,
        role: Role,
        actor_id: UUID,
        *,
        message: str | None = None,
    ) -> Invite:
        """Issue a SENT invite, then queue the invitation email.

        An earlier SENT invite for the same email blocks a new one until it
        expires; an expired one is revoked here and replaced.
        """
        email = normalize_email(email)
        if not email or "@" not in email:
            raise BadRequestError("a valid email is required")
        if role == Role.OWNER:
            raise ForbiddenError("owner role cannot be granted by invitation")

        now = self._clock()
        async with self._uow_factory() as uow:
            await _require_actor(uow, org_id, actor_id, Role.ADMIN)
            org = await _lock_org(uow, org_id)
            _check_seat_available(org, "invite_member")

            user = await uow.users.get_by_email(email)
            if user is not None and await uow.memberships.find_active(org_id, user.id):
                raise ConflictError("user is already a member of this organization", email=email)

            previous = await uow.invites.find_sent(org_id, email)
            if previous is not None:
                if not previous.is_expired(now):
                    raise ConflictError("invitation already sent to this email", email=email)
                await uow.invites.update(replace(previous, status=InviteStatus.REVOKED))
                INVITATION_TRANSITIONS.labels(transition="revoked").inc()

            invite = Invite(
                id=uuid4(),
                org_id=org_id,
                email=email,
                role=role,
                token=generate_invite_token(),
                status=InviteStatus.SENT,
                expires_at=now + self._invite_ttl,
                invited_by_user_id=actor_id,
                message=message,
                created_at=now,
            )
            await uow.invites.add(invite)

        INVITATION_TRANSITIONS.labels(transition="issued").inc()
        logger.info("Issued invite=%s org=%s role=%s", invite.id, org_id, role)
        audit.record(
            "invitation.issued",
            actor_id=actor_id,
            org_id=org_id,
            invite_id=invite.id,
            email=email,
            role=role,
        )
        await self._send_invitation(org, invite)
        return invite

    async def list_invitations(
        self, org_id: UUID, status: InviteStatus | None = None
    ) -> list[InvitationView]:
        now = self._clock()
        async with self._uow_factory() as uow:
            await _get_org(uow, org_id)
            invites = await uow.invites.list_by_org(org_id)

        views = [InvitationView(invite=i, status=i.effective_status(now)) for i in invites]
        if status is not None:
            views = [v for v in views if v.status == status]
        return views

    async def resend_invitation(
        self, invite_id: UUID, actor_id: UUID, *, org_id: UUID | None = None
    ) -> Invite:
        now = self._clock()
        async with self._uow_factory() as uow:
            invite, org = await _lock_invite(uow, invite_id, org_id)
            await _require_actor(uow, invite.org_id, actor_id, Role.ADMIN)
            _check_pending(invite)

            refreshed = replace(
                invite,
                token=generate_invite_token(),
                expires_at=now + self._invite_ttl,
            )
            await uow.invites.update(refreshed)

        INVITATION_TRANSITIONS.labels(transition="resent").inc()
        logger.info("Resent invite=%s org=%s", invite_id, invite.org_id)
        audit.record("invitation.resent", actor_id=actor_id, org_id=invite.org_id, invite_id=invite_id)
        await self._send_invitation(org, refreshed)
        return refreshed

    async def cancel_invitation(
        self, invite_id: UUID, actor_id: UUID, *, org_id: UUID | None = None
    ) -> Invite:
        async with self._uow_factory() as uow:
            invite, _ = await _lock_invite(uow, invite_id, org_id)
            await _require_actor(uow, invite.org_id, actor_id, Role.ADMIN)
            _check_pending(invite)
            revoked = replace(invite, status=InviteStatus.REVOKED)
            await uow.invites.update(revoked)

        INVITATION_TRANSITIONS.labels(transition="revoked").inc()
        logger.info("Cancelled invite=%s org=%s", invite_id, invite.org_id)
        audit.record(
            "invitation.cancelled", actor_id=actor_id, org_id=invite.org_id, invite_id=invite_id
        )
        return revoked

    async def accept_invitation(self, token: str, principal: Principal) -> AcceptedInvitation:
        """Turn a SENT invite into an ACTIVE membership.

        Validity, email match and seat capacity are all checked under the
        organization lock; membership creation, the ACCEPTED transition and
        the seat increment commit together. A second accept of the same
        token fails because the invite is no longer SENT.
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            invite = await uow.invites.get_by_token(token)
            if invite is None:
                raise NotFoundError("invalid invitation token")

            org = await _lock_org(uow, invite.org_id)
            # Re-read under the lock: a concurrent accept may have won.
            invite = await _get_invite(uow, invite.id)
            if invite.token != token:
                # Resent under a new token while this accept waited.
                raise NotFoundError("invalid invitation token")

            if invite.status != InviteStatus.SENT:
                raise BadRequestError(
                    "invitation is no longer valid", status=str(invite.status)
                )
            if invite.is_expired(now):
                raise BadRequestError(
                    "invitation has expired", expires_at=invite.expires_at.isoformat()
                )
            if normalize_email(principal.email) != invite.email:
                raise ForbiddenError("email does not match invitation")
            if await uow.memberships.find(org.id, principal.user_id) is not None:
                raise ConflictError("user is already a member of this organization")
            _check_seat_available(org, "accept_invitation")

            await _ensure_user(uow, principal)
            membership = Membership.new_active(
                org_id=org.id, user_id=principal.user_id, role=invite.role
            )
            await uow.memberships.add(membership)
            await uow.invites.update(replace(invite, status=InviteStatus.ACCEPTED))
            org = await uow.orgs.adjust_used_seats(org.id, 1)

        INVITATION_TRANSITIONS.labels(transition="accepted").inc()
        logger.info(
            "Accepted invite=%s user=%s org=%s role=%s",
            invite.id,
            principal.user_id,
            org.id,
            invite.role,
        )
        audit.record(
            "invitation.accepted",
            actor_id=principal.user_id,
            org_id=org.id,
            invite_id=invite.id,
            membership_id=membership.id,
        )
        return AcceptedInvitation(membership=membership, organization=org)

    async def _send_invitation(self, org: Organization, invite: Invite) -> None:
        await notify_quietly(
            self._notifier,
            invite.email,
            INVITATION_TEMPLATE,
            {
                "organization": org.name,
                "role": str(invite.role),
                "token": invite.token,
                "expires_at": invite.expires_at.isoformat(),
                "message": invite.message,
            },
        )


# ---------------------------------------------------------------------------
# Helpers (all run inside an open unit of work)
# ---------------------------------------------------------------------------


async def _get_org(uow: UnitOfWork, org_id: UUID) -> Organization:
    org = await uow.orgs.get_by_id(org_id)
    if org is None:
        raise NotFoundError("organization not found", org_id=str(org_id))
    return org


async def _lock_org(uow: UnitOfWork, org_id: UUID) -> Organization:
    org = await uow.lock_organization(org_id)
    if org is None:
        raise NotFoundError("organization not found", org_id=str(org_id))
    return org


async def _get_membership(uow: UnitOfWork, org_id: UUID, membership_id: UUID) -> Membership:
    membership = await uow.memberships.get_by_id(membership_id)
    # A membership of another organization is reported as absent.
    if membership is None or membership.org_id != org_id:
        raise NotFoundError("membership not found", membership_id=str(membership_id))
    return membership


async def _get_invite(
    uow: UnitOfWork, invite_id: UUID, org_id: UUID | None = None
) -> Invite:
    invite = await uow.invites.get_by_id(invite_id)
    if invite is None or (org_id is not None and invite.org_id != org_id):
        raise NotFoundError("invitation not found", invite_id=str(invite_id))
    return invite


async def _lock_invite(
    uow: UnitOfWork, invite_id: UUID, org_id: UUID | None
) -> tuple[Invite, Organization]:
    # Every invite transition serializes on the organization row, so a
    # cancel or resend cannot interleave with an accept of the same invite.
    invite = await _get_invite(uow, invite_id, org_id)
    org = await _lock_org(uow, invite.org_id)
    return await _get_invite(uow, invite_id, org_id), org


def _check_pending(invite: Invite) -> None:
    if invite.status != InviteStatus.SENT:
        raise BadRequestError("invitation is no longer pending", status=str(invite.status))


async def _require_actor(
    uow: UnitOfWork, org_id: UUID, actor_id: UUID, minimum: Role
) -> Membership:
    membership = await uow.memberships.find_active(org_id, actor_id)
    if membership is None:
        raise ForbiddenError("access denied to organization", org_id=str(org_id))
    if ROLE_RANKS[membership.role] < ROLE_RANKS[minimum]:
        raise ForbiddenError(
            f"insufficient role: requires {minimum}, has {membership.role}",
            required_roles=[str(minimum)],
            actual_role=str(membership.role),
        )
    return membership


async def _ensure_user(uow: UnitOfWork, principal: Principal) -> None:
    if await uow.users.get_by_id(principal.user_id) is None:
        await uow.users.add(User(id=principal.user_id, email=normalize_email(principal.email)))


async def _pick_slug(uow: UnitOfWork, name: str, requested: str | None) -> str:
    if requested is not None:
        if await uow.orgs.get_by_slug(requested) is not None:
            raise ConflictError("organization slug already exists", slug=requested)
        return requested

    for _ in range(SLUG_ATTEMPTS):
        candidate = generate_slug(name)
        if await uow.orgs.get_by_slug(candidate) is None:
            return candidate
    raise ConflictError("could not generate a unique slug", name=name)


def _check_seat_available(org: Organization, operation: str) -> None:
    if org.is_full:
        SEAT_REJECTIONS.labels(operation=operation).inc()
        raise BadRequestError(
            "organization has reached seat limit",
            seat_limit=org.seat_limit,
            used_seats=org.used_seats,
        )


def _percent(part: int, whole: int) -> int:
    # Round half up in integers: floor(100 * part / whole + 0.5).
    return (200 * part + whole) // (2 * whole)
