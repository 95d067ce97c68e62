from __future__ import annotations

import dataclasses
import logging
from uuid import UUID

from lms.core.clock import Clock, utc_now
from lms.core.errors import NotFoundError, ValidationError
from lms.models.course import Batch, Course, CourseChanges, CourseModule
from lms.repos.unit_of_work import UnitOfWork
from lms.services import cache_keys, views
from lms.services.cache import CacheStore, read_through
from lms.services.cache_keys import FilterSpec, SortSpec
from lms.services.invalidation import InvalidationCoordinator

logger = logging.getLogger(__name__)


class CourseService:
    """Course catalog.  Listings change rarely, so they use the long TTL."""

    def __init__(
        self,
        uow: UnitOfWork,
        cache: CacheStore,
        invalidator: InvalidationCoordinator,
        *,
        ttl_seconds: int = 3600,
        clock: Clock = utc_now,
    ) -> None:
        self._uow = uow
        self._cache = cache
        self._invalidator = invalidator
        self._ttl = ttl_seconds
        self._clock = clock

    async def list(
        self,
        filters: FilterSpec,
        sort: SortSpec = SortSpec.NEWEST,
        page: int = 1,
        limit: int = 20,
        *,
        include_unpublished: bool = False,
    ) -> dict:
        filters = dataclasses.replace(filters, published_only=not include_unpublished)
        key = cache_keys.list_key(cache_keys.COURSES, filters, sort, page, limit)

        async def load() -> dict:
            rows, total = await self._uow.courses.list(
                filters, sort, (page - 1) * limit, limit
            )
            return {
                "items": [views.course_summary(c) for c in rows],
                "total": total,
                "page": page,
                "limit": limit,
            }

        return await read_through(self._cache, key, self._ttl, load)

    async def get(self, course_id: UUID) -> dict:
        key = cache_keys.entity_key(cache_keys.COURSES, course_id)

        async def load() -> dict:
            course = await self._uow.courses.get_by_id(course_id)
            if course is None:
                raise NotFoundError("course", course_id)
            return views.course_detail(course)

        return await read_through(self._cache, key, self._ttl, load)

    async def categories(self) -> list[str]:
        key = cache_keys.aggregate_key(cache_keys.COURSES, "categories")

        async def load() -> list[str]:
            return await self._uow.courses.categories()

        return await read_through(self._cache, key, self._ttl, load)

    async def create(
        self,
        *,
        title: str,
        description: str,
        instructor: str,
        price: float,
        category: str,
        batch: Batch,
        tags: tuple[str, ...] = (),
        modules: tuple[CourseModule, ...] = (),
        thumbnail: str = "",
        is_published: bool = False,
    ) -> Course:
        if not title.strip():
            raise ValidationError("title must not be empty")
        if price < 0:
            raise ValidationError("price must be >= 0")

        course = Course.new(
            title=title.strip(),
            description=description,
            instructor=instructor,
            price=price,
            category=category,
            batch=batch,
            tags=tags,
            modules=modules,
            thumbnail=thumbnail,
            is_published=is_published,
            created_at=self._clock(),
        )
        await self._uow.courses.add(course)
        await self._uow.commit()
        await self._invalidator.invalidate(cache_keys.COURSES, course.id)
        logger.info("Course created id=%s title=%r", course.id, course.title)
        return course

    async def update(self, course_id: UUID, changes: CourseChanges) -> Course:
        values = changes.as_dict()
        if "title" in values and not str(values["title"]).strip():
            raise ValidationError("title must not be empty")
        if "price" in values and float(values["price"]) < 0:  # type: ignore[arg-type]
            raise ValidationError("price must be >= 0")
        values["updated_at"] = self._clock()

        course = await self._uow.courses.update(course_id, **values)
        if course is None:
            raise NotFoundError("course", course_id)
        await self._uow.commit()
        await self._invalidator.invalidate(cache_keys.COURSES, course_id)
        return course

    async def delete(self, course_id: UUID) -> None:
        if not await self._uow.courses.delete(course_id):
            raise NotFoundError("course", course_id)
        await self._uow.commit()
        await self._invalidator.invalidate(cache_keys.COURSES, course_id)
        logger.info("Course deleted id=%s", course_id)
