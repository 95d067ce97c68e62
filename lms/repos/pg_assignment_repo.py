"""PostgreSQL implementation of AssignmentRepo.

Transitions are single conditional UPDATE statements: the WHERE clause
carries the legal source state, so a review lands with its status flip
in one row write or not at all.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import AssignmentRow
from lms.models.assignment import (
    PENDING,
    REVIEWED,
    SUBMITTED,
    Assignment,
    AssignmentStats,
    Review,
    Submission,
)
from lms.repos.assignment_repo import StudentScope
from lms.services.cache_keys import FilterSpec

_NEWEST_SUBMISSION_FIRST = (
    AssignmentRow.submitted_at.desc().nulls_last(),
    AssignmentRow.created_at.desc(),
)


class PgAssignmentRepo:
    """Satisfies the AssignmentRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, assignment_id: UUID) -> Assignment | None:
        row = await self._session.get(AssignmentRow, assignment_id)
        if row is None:
            return None
        return _row_to_assignment(row)

    async def add(self, assignment: Assignment) -> None:
        self._session.add(
            AssignmentRow(
                id=assignment.id,
                student_id=assignment.student_id,
                course_id=assignment.course_id,
                batch=assignment.batch,
                module_index=assignment.module_index,
                title=assignment.title,
                description=assignment.description,
                due_date=assignment.due_date,
                created_by=assignment.created_by,
                created_at=assignment.created_at,
                status=assignment.status,
                submission_answer=(
                    assignment.submission.answer if assignment.submission else None
                ),
                submitted_at=(
                    assignment.submission.submitted_at if assignment.submission else None
                ),
            )
        )
        await self._session.flush()

    async def find_open(
        self, course_id: UUID, title: str, student_id: UUID
    ) -> Assignment | None:
        stmt = (
            select(AssignmentRow)
            .where(
                AssignmentRow.course_id == course_id,
                AssignmentRow.title == title,
                AssignmentRow.status != REVIEWED,
                or_(
                    AssignmentRow.student_id == student_id,
                    AssignmentRow.student_id.is_(None),
                ),
            )
            .order_by(AssignmentRow.student_id.is_(None), AssignmentRow.created_at)
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_assignment(row)

    async def submit(
        self, assignment_id: UUID, student_id: UUID, submission: Submission
    ) -> Assignment | None:
        stmt = (
            update(AssignmentRow)
            .where(AssignmentRow.id == assignment_id, AssignmentRow.status != REVIEWED)
            .values(
                student_id=student_id,
                submission_answer=submission.answer,
                submitted_at=submission.submitted_at,
                status=SUBMITTED,
            )
            .returning(AssignmentRow)
        )
        return await self._one_or_none(stmt)

    async def review(self, assignment_id: UUID, review: Review) -> Assignment | None:
        stmt = (
            update(AssignmentRow)
            .where(AssignmentRow.id == assignment_id, AssignmentRow.status == SUBMITTED)
            .values(
                review_feedback=review.feedback,
                reviewed_by=review.reviewed_by,
                reviewed_at=review.reviewed_at,
                status=REVIEWED,
            )
            .returning(AssignmentRow)
        )
        return await self._one_or_none(stmt)

    async def update(self, assignment_id: UUID, **values: object) -> Assignment | None:
        if not values:
            return await self.get_by_id(assignment_id)
        stmt = (
            update(AssignmentRow)
            .where(AssignmentRow.id == assignment_id)
            .values(**values)
            .returning(AssignmentRow)
        )
        return await self._one_or_none(stmt)

    async def delete(self, assignment_id: UUID) -> bool:
        result = await self._session.execute(
            delete(AssignmentRow).where(AssignmentRow.id == assignment_id)
        )
        return result.rowcount > 0

    async def list(
        self,
        filters: FilterSpec,
        offset: int,
        limit: int,
        scope: StudentScope | None = None,
        student_ids: set[UUID] | None = None,
    ) -> tuple[list[Assignment], int]:
        conditions = []
        if scope is not None:
            conditions.append(
                or_(
                    AssignmentRow.student_id == scope.student_id,
                    and_(
                        AssignmentRow.student_id.is_(None),
                        AssignmentRow.course_id.in_(scope.enrolled_course_ids),
                    ),
                )
            )
        if filters.course is not None:
            conditions.append(AssignmentRow.course_id == filters.course)
        if filters.student is not None:
            conditions.append(AssignmentRow.student_id == filters.student)
        if filters.status is not None:
            conditions.append(AssignmentRow.status == filters.status)
        if filters.batch is not None:
            conditions.append(AssignmentRow.batch == filters.batch)
        if filters.search and filters.search.strip():
            matches = [AssignmentRow.title.ilike(f"%{filters.search.strip()}%")]
            if student_ids:
                matches.append(AssignmentRow.student_id.in_(student_ids))
            conditions.append(or_(*matches))

        stmt = (
            select(AssignmentRow)
            .where(*conditions)
            .order_by(*_NEWEST_SUBMISSION_FIRST)
            .offset(offset)
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        total = (
            await self._session.execute(
                select(func.count()).select_from(AssignmentRow).where(*conditions)
            )
        ).scalar_one()
        return [_row_to_assignment(r) for r in rows], total

    async def list_open(self) -> list[Assignment]:
        stmt = (
            select(AssignmentRow)
            .where(AssignmentRow.status.in_((PENDING, SUBMITTED)))
            .order_by(*_NEWEST_SUBMISSION_FIRST)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_assignment(r) for r in rows]

    async def stats(self, course_id: UUID | None = None) -> AssignmentStats:
        stmt = select(AssignmentRow.status, func.count()).group_by(AssignmentRow.status)
        if course_id is not None:
            stmt = stmt.where(AssignmentRow.course_id == course_id)
        counts = {status: n for status, n in (await self._session.execute(stmt)).all()}
        return AssignmentStats(
            total=sum(counts.values()),
            pending=counts.get(PENDING, 0),
            submitted=counts.get(SUBMITTED, 0),
            reviewed=counts.get(REVIEWED, 0),
        )

    async def _one_or_none(self, stmt) -> Assignment | None:
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_assignment(row)


def _row_to_assignment(row: AssignmentRow) -> Assignment:
    submission = None
    if row.submitted_at is not None:
        submission = Submission(
            answer=row.submission_answer or "", submitted_at=row.submitted_at
        )
    review = None
    if row.reviewed_at is not None and row.reviewed_by is not None:
        review = Review(
            feedback=row.review_feedback or "",
            reviewed_by=row.reviewed_by,
            reviewed_at=row.reviewed_at,
        )
    return Assignment(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        description=row.description,
        created_by=row.created_by,
        created_at=row.created_at,
        status=row.status,
        student_id=row.student_id,
        batch=row.batch,
        module_index=row.module_index,
        due_date=row.due_date,
        submission=submission,
        review=review,
    )
