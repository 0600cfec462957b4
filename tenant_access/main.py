from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tenant_access.api.errors import register_error_handlers
from tenant_access.api.health import router as health_router
from tenant_access.api.invitations import router as invitations_router
from tenant_access.api.orgs import router as orgs_router
from tenant_access.api.production import router as production_router
from tenant_access.core.config import SETTINGS
from tenant_access.core.logging import setup_logging
from tenant_access.db.engine import lifespan_db
from tenant_access.db.redis import lifespan_redis
from tenant_access.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Teardown runs in reverse order of startup.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="tenant-access",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(RequestContextMiddleware)
register_error_handlers(app)

app.include_router(health_router)
app.include_router(orgs_router)
app.include_router(invitations_router)
app.include_router(production_router)

logger.info(
    "tenant-access started  env=%s log_level=%s port=%d tenant_fallback=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.tenant_fallback,
    "on" if SETTINGS.is_dev else "off",
)
