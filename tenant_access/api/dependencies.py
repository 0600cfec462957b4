"""FastAPI dependencies: authentication, tenant resolution, operation guards.

Module-level singletons wire the core to its storage: PostgreSQL when
DATABASE_URL is set, otherwise one process-wide in-memory database.

Request flow for a tenant-scoped route::

    require_user -> resolve_tenant -> guard(operation, filters...) -> handler

The handler receives the resolved TenantContext as an explicit argument
and passes it (or its ids) into the service.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from datetime import timedelta
from typing import Annotated, Any
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer

from tenant_access.authz.policy import PLATFORM_FILTER, AuthorizationFilter, authorize
from tenant_access.core.config import SETTINGS
from tenant_access.db.engine import async_session_factory
from tenant_access.models.organization import Role
from tenant_access.models.principal import Principal, TenantContext
from tenant_access.repos.memory_db import InMemoryDatabase
from tenant_access.repos.unit_of_work import (
    InMemoryUnitOfWork,
    PgUnitOfWork,
    UnitOfWork,
)
from tenant_access.services import token_service
from tenant_access.services.membership_service import MembershipLifecycleService
from tenant_access.services.notifications import TaskQueueNotifier
from tenant_access.services.task_queue import task_queue
from tenant_access.services.tenant_resolver import TenantResolver

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token", auto_error=False)

# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

memory_db = InMemoryDatabase()


def uow_factory() -> UnitOfWork:
    if async_session_factory is not None:
        return PgUnitOfWork(async_session_factory)
    return InMemoryUnitOfWork(memory_db)


tenant_resolver = TenantResolver(uow_factory, fallback=SETTINGS.tenant_fallback)

lifecycle_service = MembershipLifecycleService(
    uow_factory,
    TaskQueueNotifier(task_queue),
    invite_ttl=timedelta(days=SETTINGS.invite_ttl_days),
    default_seat_limit=SETTINGS.default_seat_limit,
)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    raw_token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Principal:
    """Validate the bearer token and return the caller's Principal."""
    if raw_token is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        user_id = UUID(claims["sub"])
    except ValueError:
        logger.warning("Token rejected: subject is not a user id")
        raise _unauthorized("Invalid token") from None

    return Principal(user_id=user_id, email=claims["email"])


# ---------------------------------------------------------------------------
# Tenant resolution
# ---------------------------------------------------------------------------


async def resolve_tenant(
    principal: Annotated[Principal, Depends(require_user)],
    x_org_id: Annotated[UUID | None, Header(alias="X-Org-Id")] = None,
    org_id: Annotated[UUID | None, Query()] = None,
) -> TenantContext:
    """Header wins over query parameter; neither means the personal org."""
    requested = x_org_id if x_org_id is not None else org_id
    return await tenant_resolver.resolve(principal, requested)


def guard(
    operation: str, *filters: AuthorizationFilter
) -> Callable[..., Coroutine[Any, Any, TenantContext]]:
    """Dependency factory: resolve the tenant, then run every filter.

    The platform filter always runs first; vertical filters follow in the
    order given.

    Usage::

        @router.get("/v1/organization")
        async def get_org(ctx: Annotated[TenantContext, Depends(guard("organizations.get"))]):
            ...
    """
    chain = (PLATFORM_FILTER, *filters)

    async def _guard(
        ctx: Annotated[TenantContext, Depends(resolve_tenant)],
    ) -> TenantContext:
        authorize(operation, ctx, chain)
        return ctx

    return _guard


def org_id_of(ctx: TenantContext) -> UUID:
    """The resolved org id; guards guarantee it is set."""
    if ctx.org_id is None:
        raise HTTPException(status_code=500, detail="org context not resolved")
    return ctx.org_id


def role_of(ctx: TenantContext) -> Role:
    if ctx.role is None:
        raise HTTPException(status_code=500, detail="org context not resolved")
    return ctx.role


def actor_id_of(ctx: TenantContext) -> UUID:
    if ctx.user_id is None:
        raise HTTPException(status_code=500, detail="principal not resolved")
    return ctx.user_id
