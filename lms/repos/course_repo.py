from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from lms.models.course import Course
from lms.services.cache_keys import FilterSpec, SortSpec


class CourseDependent(Protocol):
    """An in-memory repository holding rows that reference a course."""

    def on_course_deleted(self, course_id: UUID) -> None: ...


class CourseRepo(Protocol):
    async def get_by_id(self, course_id: UUID) -> Course | None: ...
    async def get_many(self, course_ids: Iterable[UUID]) -> dict[UUID, Course]: ...
    async def add(self, course: Course) -> None: ...
    async def update(self, course_id: UUID, **values: object) -> Course | None: ...
    async def delete(self, course_id: UUID) -> bool: ...
    async def list(
        self, filters: FilterSpec, sort: SortSpec, offset: int, limit: int
    ) -> tuple[list[Course], int]: ...
    async def categories(self) -> list[str]: ...


def _sort_key(sort: SortSpec):
    if sort is SortSpec.PRICE_ASC:
        return (lambda c: (c.price, c.title), False)
    if sort is SortSpec.PRICE_DESC:
        return (lambda c: (c.price, c.title), True)
    if sort is SortSpec.TITLE:
        return (lambda c: c.title.lower(), False)
    return (lambda c: c.created_at, True)


class InMemoryCourseRepo:
    """Courses keyed by id.

    ``dependents`` mirror the foreign keys of the courses table: a delete
    is passed on to each of them, as ON DELETE CASCADE / SET NULL would.
    """

    def __init__(self, dependents: Iterable[CourseDependent] = ()) -> None:
        self._by_id: dict[UUID, Course] = {}
        self._dependents = tuple(dependents)

    async def get_by_id(self, course_id: UUID) -> Course | None:
        return self._by_id.get(course_id)

    async def get_many(self, course_ids: Iterable[UUID]) -> dict[UUID, Course]:
        return {cid: self._by_id[cid] for cid in set(course_ids) if cid in self._by_id}

    async def add(self, course: Course) -> None:
        if course.id in self._by_id:
            raise ValueError("course already exists")
        self._by_id[course.id] = course

    async def update(self, course_id: UUID, **values: object) -> Course | None:
        c = self._by_id.get(course_id)
        if c is None:
            return None
        updated = dataclasses.replace(c, **values)  # type: ignore[arg-type]
        self._by_id[course_id] = updated
        return updated

    async def delete(self, course_id: UUID) -> bool:
        if self._by_id.pop(course_id, None) is None:
            return False
        for dependent in self._dependents:
            dependent.on_course_deleted(course_id)
        return True

    async def list(
        self, filters: FilterSpec, sort: SortSpec, offset: int, limit: int
    ) -> tuple[list[Course], int]:
        matched = [
            c
            for c in self._by_id.values()
            if (not filters.published_only or c.is_published)
            and (filters.category is None or c.category == filters.category)
            and (filters.batch is None or c.batch.name == filters.batch)
            and filters.matches_tags(c.tags)
            and filters.matches_price(c.price)
            and filters.matches_search(c.title, c.description, c.instructor)
        ]
        key, reverse = _sort_key(sort)
        matched.sort(key=key, reverse=reverse)
        return matched[offset : offset + limit], len(matched)

    async def categories(self) -> list[str]:
        return sorted({c.category for c in self._by_id.values() if c.is_published})
