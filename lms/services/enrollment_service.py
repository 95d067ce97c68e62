from __future__ import annotations

import logging
from uuid import UUID

from lms.core.clock import Clock, utc_now
from lms.core.errors import InvalidStateError, NotFoundError
from lms.models.enrollment import Enrollment
from lms.repos.unit_of_work import UnitOfWork
from lms.services import cache_keys, views
from lms.services.cache import CacheStore, read_through
from lms.services.cache_keys import FilterSpec
from lms.services.invalidation import InvalidationCoordinator

logger = logging.getLogger(__name__)


class EnrollmentService:
    def __init__(
        self,
        uow: UnitOfWork,
        cache: CacheStore,
        invalidator: InvalidationCoordinator,
        *,
        ttl_seconds: int = 300,
        clock: Clock = utc_now,
    ) -> None:
        self._uow = uow
        self._cache = cache
        self._invalidator = invalidator
        self._ttl = ttl_seconds
        self._clock = clock

    async def enroll(self, student_id: UUID, course_id: UUID) -> Enrollment:
        """Register a student.  total_lessons is fixed from the course as it is now."""
        course = await self._uow.courses.get_by_id(course_id)
        if course is None:
            raise NotFoundError("course", course_id)

        enrollment = Enrollment.new(
            student_id=student_id,
            course_id=course_id,
            total_lessons=course.total_lessons,
            enrolled_at=self._clock(),
        )
        # the unique (student, course) pair decides concurrent enrolls
        if not await self._uow.enrollments.add(enrollment):
            raise InvalidStateError("already enrolled in this course")
        await self._uow.commit()
        await self._invalidator.invalidate(cache_keys.ENROLLMENTS)
        logger.info(
            "Enrolled student=%s course=%s lessons=%d",
            student_id,
            course_id,
            enrollment.total_lessons,
        )
        return enrollment

    async def list(self, filters: FilterSpec, page: int = 1, limit: int = 20) -> dict:
        key = cache_keys.list_key(cache_keys.ENROLLMENTS, filters, page=page, limit=limit)

        async def load() -> dict:
            student_ids = None
            if filters.search and filters.search.strip():
                student_ids = await self._uow.users.search_ids(filters.search.strip())
            rows, total = await self._uow.enrollments.list(
                filters, (page - 1) * limit, limit, student_ids=student_ids
            )
            return {
                "items": await views.enrollments_with_refs(self._uow, rows),
                "total": total,
                "page": page,
                "limit": limit,
            }

        return await read_through(self._cache, key, self._ttl, load)

    async def for_student(self, student_id: UUID) -> list[dict]:
        """Dashboard view: every enrollment of one student with its course."""
        key = cache_keys.aggregate_key(
            cache_keys.ENROLLMENTS, "mine", user_id=student_id
        )

        async def load() -> list[dict]:
            rows = await self._uow.enrollments.list_for_student(student_id)
            return await views.enrollments_with_refs(self._uow, rows)

        return await read_through(self._cache, key, self._ttl, load)

    async def stats(self) -> dict:
        key = cache_keys.aggregate_key(cache_keys.ENROLLMENTS, "stats")

        async def load() -> dict:
            stats = await self._uow.enrollments.stats()
            courses = await self._uow.courses.get_many(c.course_id for c in stats.by_course)
            return {
                "total": stats.total,
                "active": stats.active,
                "completed": stats.completed,
                "by_course": [
                    {
                        "course": views.course_ref(courses.get(c.course_id)),
                        "course_id": str(c.course_id),
                        "count": c.count,
                        "avg_progress": c.avg_progress,
                    }
                    for c in stats.by_course
                ],
            }

        return await read_through(self._cache, key, self._ttl, load)
