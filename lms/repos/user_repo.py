from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from lms.models.user import STUDENT, User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]: ...
    async def add(self, user: User) -> None: ...
    async def list_students_in_batch(self, batch: str) -> list[User]: ...
    async def search_ids(self, text: str) -> set[UUID]: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}
        self._emails: set[str] = set()

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        return {uid: self._by_id[uid] for uid in set(user_ids) if uid in self._by_id}

    async def add(self, user: User) -> None:
        if user.email in self._emails:
            raise ValueError("email already exists")
        self._by_id[user.id] = user
        self._emails.add(user.email)

    async def list_students_in_batch(self, batch: str) -> list[User]:
        return [
            u for u in self._by_id.values() if u.role == STUDENT and u.batch == batch
        ]

    async def search_ids(self, text: str) -> set[UUID]:
        needle = text.strip().lower()
        return {
            u.id
            for u in self._by_id.values()
            if needle in u.name.lower() or needle in u.email.lower()
        }
