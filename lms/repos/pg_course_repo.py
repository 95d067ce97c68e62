"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import CourseRow
from lms.models.course import Batch, Course, CourseModule, Lesson
from lms.services.cache_keys import FilterSpec, SortSpec

_ORDERING = {
    SortSpec.NEWEST: (CourseRow.created_at.desc(),),
    SortSpec.PRICE_ASC: (CourseRow.price.asc(), CourseRow.title.asc()),
    SortSpec.PRICE_DESC: (CourseRow.price.desc(), CourseRow.title.asc()),
    SortSpec.TITLE: (func.lower(CourseRow.title).asc(),),
}


class PgCourseRepo:
    """Satisfies the CourseRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, course_id: UUID) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        if row is None:
            return None
        return _row_to_course(row)

    async def get_many(self, course_ids: Iterable[UUID]) -> dict[UUID, Course]:
        ids = set(course_ids)
        if not ids:
            return {}
        stmt = select(CourseRow).where(CourseRow.id.in_(ids))
        rows = (await self._session.execute(stmt)).scalars().all()
        return {row.id: _row_to_course(row) for row in rows}

    async def add(self, course: Course) -> None:
        self._session.add(CourseRow(id=course.id, **_course_columns(course)))
        await self._session.flush()

    async def update(self, course_id: UUID, **values: object) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        if row is None:
            return None
        merged = dataclasses.replace(_row_to_course(row), **values)  # type: ignore[arg-type]
        for column, value in _course_columns(merged).items():
            setattr(row, column, value)
        await self._session.flush()
        return merged

    async def delete(self, course_id: UUID) -> bool:
        result = await self._session.execute(
            delete(CourseRow).where(CourseRow.id == course_id)
        )
        return result.rowcount > 0

    async def list(
        self, filters: FilterSpec, sort: SortSpec, offset: int, limit: int
    ) -> tuple[list[Course], int]:
        conditions = []
        if filters.published_only:
            conditions.append(CourseRow.is_published.is_(True))
        if filters.category is not None:
            conditions.append(CourseRow.category == filters.category)
        if filters.batch is not None:
            conditions.append(CourseRow.batch_name == filters.batch)
        if filters.tags:
            conditions.append(CourseRow.tags.overlap(list(filters.tags)))
        if filters.min_price is not None:
            conditions.append(CourseRow.price >= filters.min_price)
        if filters.max_price is not None:
            conditions.append(CourseRow.price <= filters.max_price)
        if filters.search and filters.search.strip():
            needle = f"%{filters.search.strip()}%"
            conditions.append(
                or_(
                    CourseRow.title.ilike(needle),
                    CourseRow.description.ilike(needle),
                    CourseRow.instructor.ilike(needle),
                )
            )

        stmt = (
            select(CourseRow)
            .where(*conditions)
            .order_by(*_ORDERING[sort])
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        total = (
            await self._session.execute(
                select(func.count()).select_from(CourseRow).where(*conditions)
            )
        ).scalar_one()
        return [_row_to_course(r) for r in rows], total

    async def categories(self) -> list[str]:
        stmt = (
            select(CourseRow.category)
            .where(CourseRow.is_published.is_(True))
            .distinct()
            .order_by(CourseRow.category)
        )
        return list((await self._session.execute(stmt)).scalars().all())


def _course_columns(course: Course) -> dict[str, object]:
    return {
        "title": course.title,
        "description": course.description,
        "instructor": course.instructor,
        "price": course.price,
        "category": course.category,
        "tags": list(course.tags),
        "thumbnail": course.thumbnail,
        "modules": [_module_to_json(m) for m in course.modules],
        "batch_name": course.batch.name,
        "batch_start_date": course.batch.start_date,
        "batch_end_date": course.batch.end_date,
        "is_published": course.is_published,
        "created_at": course.created_at,
        "updated_at": course.updated_at,
    }


def _module_to_json(module: CourseModule) -> dict:
    return {
        "title": module.title,
        "description": module.description,
        "order": module.order,
        "lessons": [
            {
                "title": lesson.title,
                "video_url": lesson.video_url,
                "duration_minutes": lesson.duration_minutes,
                "order": lesson.order,
            }
            for lesson in module.lessons
        ],
    }


def _module_from_json(data: dict) -> CourseModule:
    return CourseModule(
        title=data["title"],
        description=data.get("description", ""),
        order=data.get("order", 0),
        lessons=tuple(
            Lesson(
                title=lesson["title"],
                video_url=lesson.get("video_url", ""),
                duration_minutes=lesson.get("duration_minutes", 1),
                order=lesson.get("order", 0),
            )
            for lesson in data.get("lessons", [])
        ),
    )


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        description=row.description,
        instructor=row.instructor,
        price=row.price,
        category=row.category,
        tags=tuple(row.tags) if row.tags else (),
        thumbnail=row.thumbnail or "",
        modules=tuple(_module_from_json(m) for m in row.modules or []),
        batch=Batch(
            name=row.batch_name,
            start_date=row.batch_start_date,
            end_date=row.batch_end_date,
        ),
        is_published=row.is_published,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
