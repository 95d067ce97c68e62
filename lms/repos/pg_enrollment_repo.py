"""PostgreSQL implementation of EnrollmentRepo.

Duplicate enrollments and duplicate lesson completions are resolved by
the unique constraints with ON CONFLICT DO NOTHING, so two concurrent
requests for the same tuple both succeed and exactly one row exists.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import EnrollmentRow, LessonCompletionRow
from lms.models.enrollment import (
    CourseEnrollmentCount,
    Enrollment,
    EnrollmentStats,
    LessonCompletion,
)
from lms.repos.enrollment_repo import COMPLETED
from lms.services.cache_keys import FilterSpec


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        row = await self._session.get(EnrollmentRow, enrollment_id)
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.student_id == student_id,
            EnrollmentRow.course_id == course_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def add(self, enrollment: Enrollment) -> bool:
        stmt = (
            insert(EnrollmentRow)
            .values(
                id=enrollment.id,
                student_id=enrollment.student_id,
                course_id=enrollment.course_id,
                enrolled_at=enrollment.enrolled_at,
                total_lessons=enrollment.total_lessons,
                completed_lessons=enrollment.completed_lessons,
                progress=enrollment.progress,
                is_completed=enrollment.is_completed,
                completed_at=enrollment.completed_at,
            )
            .on_conflict_do_nothing(index_elements=["student_id", "course_id"])
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def update_progress(
        self,
        enrollment_id: UUID,
        *,
        completed_lessons: int,
        progress: int,
        is_completed: bool,
        completed_at: int | None,
    ) -> Enrollment | None:
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(
                completed_lessons=completed_lessons,
                progress=progress,
                is_completed=is_completed,
                # COALESCE keeps the first completion time under concurrent writers.
                completed_at=func.coalesce(EnrollmentRow.completed_at, completed_at),
            )
            .returning(EnrollmentRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def list(
        self,
        filters: FilterSpec,
        offset: int,
        limit: int,
        student_ids: set[UUID] | None = None,
    ) -> tuple[list[Enrollment], int]:
        conditions = []
        if filters.course is not None:
            conditions.append(EnrollmentRow.course_id == filters.course)
        if filters.student is not None:
            conditions.append(EnrollmentRow.student_id == filters.student)
        if filters.status is not None:
            conditions.append(EnrollmentRow.is_completed.is_(filters.status == COMPLETED))
        if student_ids is not None:
            conditions.append(EnrollmentRow.student_id.in_(student_ids))

        stmt = (
            select(EnrollmentRow)
            .where(*conditions)
            .order_by(EnrollmentRow.enrolled_at.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        total = (
            await self._session.execute(
                select(func.count()).select_from(EnrollmentRow).where(*conditions)
            )
        ).scalar_one()
        return [_row_to_enrollment(r) for r in rows], total

    async def list_for_student(self, student_id: UUID) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.student_id == student_id)
            .order_by(EnrollmentRow.enrolled_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def stats(self, top: int = 10) -> EnrollmentStats:
        total = (
            await self._session.execute(select(func.count()).select_from(EnrollmentRow))
        ).scalar_one()
        completed = (
            await self._session.execute(
                select(func.count())
                .select_from(EnrollmentRow)
                .where(EnrollmentRow.is_completed.is_(True))
            )
        ).scalar_one()
        count = func.count().label("count")
        by_course_stmt = (
            select(
                EnrollmentRow.course_id,
                count,
                func.round(func.avg(EnrollmentRow.progress), 2).label("avg_progress"),
            )
            .group_by(EnrollmentRow.course_id)
            .order_by(count.desc())
            .limit(top)
        )
        by_course = tuple(
            CourseEnrollmentCount(
                course_id=row.course_id,
                count=row.count,
                avg_progress=float(row.avg_progress),
            )
            for row in (await self._session.execute(by_course_stmt)).all()
        )
        return EnrollmentStats(
            total=total,
            active=total - completed,
            completed=completed,
            by_course=by_course,
        )

    async def add_completion(self, record: LessonCompletion) -> bool:
        stmt = (
            insert(LessonCompletionRow)
            .values(
                student_id=record.student_id,
                course_id=record.course_id,
                module_index=record.module_index,
                lesson_index=record.lesson_index,
                completed_at=record.completed_at,
            )
            .on_conflict_do_nothing()
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def count_completions(self, student_id: UUID, course_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(LessonCompletionRow)
            .where(
                LessonCompletionRow.student_id == student_id,
                LessonCompletionRow.course_id == course_id,
            )
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def list_completions(
        self, student_id: UUID, course_id: UUID
    ) -> list[LessonCompletion]:
        stmt = (
            select(LessonCompletionRow)
            .where(
                LessonCompletionRow.student_id == student_id,
                LessonCompletionRow.course_id == course_id,
            )
            .order_by(LessonCompletionRow.module_index, LessonCompletionRow.lesson_index)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            LessonCompletion(
                student_id=r.student_id,
                course_id=r.course_id,
                module_index=r.module_index,
                lesson_index=r.lesson_index,
                completed_at=r.completed_at,
            )
            for r in rows
        ]


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        student_id=row.student_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        total_lessons=row.total_lessons,
        completed_lessons=row.completed_lessons,
        progress=row.progress,
        is_completed=row.is_completed,
        completed_at=row.completed_at,
    )
