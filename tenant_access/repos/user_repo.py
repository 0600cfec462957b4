from __future__ import annotations

from typing import Protocol
from uuid import UUID

from tenant_access.models.user import User, normalize_email
from tenant_access.repos.memory_db import InMemoryDatabase


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_by_email(self, email: str) -> User | None: ...
    async def add(self, user: User) -> None: ...


class InMemoryUserRepo:
    def __init__(self, db: InMemoryDatabase) -> None:
        self._db = db

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._db.users.get(user_id)

    async def get_by_email(self, email: str) -> User | None:
        email = normalize_email(email)
        return next((u for u in self._db.users.values() if u.email == email), None)

    async def add(self, user: User) -> None:
        if await self.get_by_email(user.email) is not None:
            raise ValueError("email already exists")
        self._db.users[user.id] = user
