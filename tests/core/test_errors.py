from __future__ import annotations

import pytest

from tenant_access.core.errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    TenantAccessError,
)


@pytest.mark.parametrize(
    ("cls", "kind"),
    [
        (NotFoundError, "not_found"),
        (ConflictError, "conflict"),
        (BadRequestError, "bad_request"),
        (ForbiddenError, "forbidden"),
    ],
)
def test_error_kinds(cls: type[TenantAccessError], kind: str) -> None:
    err = cls("nope")
    assert isinstance(err, TenantAccessError)
    assert err.kind == kind
    assert str(err) == "nope"


def test_to_dict_carries_details() -> None:
    err = ForbiddenError("missing permissions: leads:read", missing_permissions=["leads:read"])
    assert err.to_dict() == {
        "error": "forbidden",
        "message": "missing permissions: leads:read",
        "details": {"missing_permissions": ["leads:read"]},
    }


def test_to_dict_without_details() -> None:
    assert NotFoundError("invitation not found").to_dict() == {
        "error": "not_found",
        "message": "invitation not found",
    }
