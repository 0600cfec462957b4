"""Map core error kinds to HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tenant_access.core.errors import TenantAccessError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "bad_request": status.HTTP_400_BAD_REQUEST,
    "forbidden": status.HTTP_403_FORBIDDEN,
}


async def tenant_access_error_handler(
    request: Request, exc: TenantAccessError
) -> JSONResponse:
    status_code = STATUS_BY_KIND[exc.kind]
    logger.info(
        "%s %s rejected: %s (%s)",
        request.method,
        request.url.path,
        exc.message,
        exc.kind,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TenantAccessError, tenant_access_error_handler)  # type: ignore[arg-type]
