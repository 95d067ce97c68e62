"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import UserRow
from lms.models.user import STUDENT, User


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        row = await self._session.get(UserRow, user_id)
        if row is None:
            return None
        return _row_to_user(row)

    async def get_many(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        stmt = select(UserRow).where(UserRow.id.in_(ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return {row.id: _row_to_user(row) for row in rows}

    async def add(self, user: User) -> None:
        self._session.add(
            UserRow(
                id=user.id,
                name=user.name,
                email=user.email,
                role=user.role,
                batch=user.batch,
            )
        )
        await self._session.flush()

    async def list_students_in_batch(self, batch: str) -> list[User]:
        stmt = (
            select(UserRow)
            .where(UserRow.role == STUDENT, UserRow.batch == batch)
            .order_by(UserRow.name)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_user(r) for r in rows]

    async def search_ids(self, text: str) -> set[UUID]:
        needle = f"%{text.strip()}%"
        stmt = select(UserRow.id).where(
            or_(UserRow.name.ilike(needle), UserRow.email.ilike(needle))
        )
        return set((await self._session.execute(stmt)).scalars().all())


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=row.role,
        batch=row.batch,
    )
