from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True, slots=True)
class User:
    """A user account. Owned by the identity provider; referenced by id."""

    id: UUID
    email: str
    name: str = ""
