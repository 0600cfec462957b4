from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID, uuid4, uuid5

# Namespace for deterministic personal-organization ids (uuid5 of the user id).
PERSONAL_ORG_NAMESPACE = UUID("5b0c5a8e-8f0e-4d53-9d8f-2f1f4c9e7a31")

_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


class Role(StrEnum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class MembershipStatus(StrEnum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class InviteStatus(StrEnum):
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"  # virtual: never stored, derived from expires_at


class PlanTier(StrEnum):
    PERSONAL = "PERSONAL"
    STARTER = "STARTER"
    PRO = "PRO"
    AGENCY = "AGENCY"
    ENTERPRISE = "ENTERPRISE"


def utcnow() -> datetime:
    return datetime.now(UTC)


def personal_org_id(user_id: UUID) -> UUID:
    """The personal organization of a user is keyed by the user's id."""
    return uuid5(PERSONAL_ORG_NAMESPACE, str(user_id))


def slugify(name: str) -> str:
    return _SLUG_INVALID.sub("-", name.lower()).strip("-")


def generate_slug(name: str) -> str:
    """Slug derived from a display name plus a short random suffix."""
    base = slugify(name) or "org"
    return f"{base}-{secrets.token_hex(3)}"


def generate_invite_token() -> str:
    # 32 random bytes: 256 bits of entropy
    return secrets.token_hex(32)


@dataclass(frozen=True, slots=True)
class Organization:
    id: UUID
    name: str
    slug: str
    owner_user_id: UUID
    seat_limit: int
    used_seats: int = 0
    plan_tier: PlanTier = PlanTier.STARTER
    domain_allowlist: frozenset[str] = frozenset()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def new(
        *,
        name: str,
        slug: str,
        owner_user_id: UUID,
        seat_limit: int,
        plan_tier: PlanTier = PlanTier.STARTER,
        domain_allowlist: frozenset[str] = frozenset(),
        org_id: UUID | None = None,
    ) -> Organization:
        now = utcnow()
        return Organization(
            id=org_id or uuid4(),
            name=name,
            slug=slug,
            owner_user_id=owner_user_id,
            seat_limit=seat_limit,
            used_seats=1,  # the owner takes the first seat
            plan_tier=plan_tier,
            domain_allowlist=domain_allowlist,
            created_at=now,
            updated_at=now,
        )

    @property
    def remaining_seats(self) -> int:
        return self.seat_limit - self.used_seats

    @property
    def is_full(self) -> bool:
        return self.used_seats >= self.seat_limit

    @property
    def is_personal(self) -> bool:
        return self.id == personal_org_id(self.owner_user_id)


@dataclass(frozen=True, slots=True)
class Membership:
    id: UUID
    org_id: UUID
    user_id: UUID
    role: Role
    status: MembershipStatus = MembershipStatus.ACTIVE
    accepted_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def new_active(*, org_id: UUID, user_id: UUID, role: Role) -> Membership:
        now = utcnow()
        return Membership(
            id=uuid4(),
            org_id=org_id,
            user_id=user_id,
            role=role,
            status=MembershipStatus.ACTIVE,
            accepted_at=now,
            created_at=now,
        )

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE


@dataclass(frozen=True, slots=True)
class Invite:
    id: UUID
    org_id: UUID
    email: str
    role: Role
    token: str
    status: InviteStatus
    expires_at: datetime
    invited_by_user_id: UUID
    message: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def effective_status(self, now: datetime) -> InviteStatus:
        """Stored status, with SENT past its deadline reported as EXPIRED."""
        if self.status == InviteStatus.SENT and self.is_expired(now):
            return InviteStatus.EXPIRED
        return self.status


# Record kinds reported by organization stats, zero when absent.
BUSINESS_RECORD_KINDS = (
    "properties",
    "real_estate_leads",
    "ecommerce_leads",
    "campaigns",
    "templates",
)


@dataclass(frozen=True, slots=True)
class BusinessRecord:
    """A tenant-owned vertical record (property, lead, campaign, ...)."""

    id: UUID
    org_id: UUID
    vertical: str
    kind: str
    created_at: datetime = field(default_factory=utcnow)
