"""Error taxonomy for tenant access and membership lifecycle.

Every validation outcome is one of four kinds. The HTTP adapter maps
kinds to status codes (api/errors.py); nothing in the core knows about
HTTP. Persistence failures are never wrapped in these classes.
"""

from __future__ import annotations

from typing import Any, Literal

ErrorKind = Literal["not_found", "conflict", "bad_request", "forbidden"]


class TenantAccessError(Exception):
    """Base class: a synchronous, non-retryable validation outcome."""

    kind: ErrorKind = "bad_request"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(TenantAccessError):
    kind: ErrorKind = "not_found"


class ConflictError(TenantAccessError):
    kind: ErrorKind = "conflict"


class BadRequestError(TenantAccessError):
    kind: ErrorKind = "bad_request"


class ForbiddenError(TenantAccessError):
    kind: ErrorKind = "forbidden"
