"""PostgreSQL implementation of QuizRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import QuizResultRow, QuizRow
from lms.models.quiz import Quiz, QuizQuestion, QuizResult


class PgQuizRepo:
    """Satisfies the QuizRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, quiz_id: UUID) -> Quiz | None:
        row = await self._session.get(QuizRow, quiz_id)
        if row is None:
            return None
        return _row_to_quiz(row)

    async def add(self, quiz: Quiz) -> None:
        self._session.add(
            QuizRow(
                id=quiz.id,
                course_id=quiz.course_id,
                module_index=quiz.module_index,
                title=quiz.title,
                passing_score=quiz.passing_score,
                questions=[
                    {
                        "question": q.question,
                        "options": list(q.options),
                        "correct_answer": q.correct_answer,
                        "points": q.points,
                    }
                    for q in quiz.questions
                ],
            )
        )
        await self._session.flush()

    async def list_for_course(self, course_id: UUID) -> list[Quiz]:
        stmt = (
            select(QuizRow)
            .where(QuizRow.course_id == course_id)
            .order_by(QuizRow.module_index.asc().nulls_last(), QuizRow.title)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_quiz(r) for r in rows]

    async def add_result(self, result: QuizResult) -> None:
        self._session.add(
            QuizResultRow(
                id=result.id,
                student_id=result.student_id,
                quiz_id=result.quiz_id,
                course_id=result.course_id,
                answers=list(result.answers),
                score=result.score,
                total_points=result.total_points,
                percentage=result.percentage,
                passed=result.passed,
                time_spent=result.time_spent,
                submitted_at=result.submitted_at,
            )
        )
        await self._session.flush()

    async def get_result(self, result_id: UUID) -> QuizResult | None:
        row = await self._session.get(QuizResultRow, result_id)
        if row is None:
            return None
        return _row_to_result(row)

    async def list_results(
        self, student_id: UUID, course_id: UUID | None = None
    ) -> list[QuizResult]:
        stmt = select(QuizResultRow).where(QuizResultRow.student_id == student_id)
        if course_id is not None:
            stmt = stmt.where(QuizResultRow.course_id == course_id)
        stmt = stmt.order_by(QuizResultRow.submitted_at.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_result(r) for r in rows]


def _row_to_quiz(row: QuizRow) -> Quiz:
    return Quiz(
        id=row.id,
        title=row.title,
        course_id=row.course_id,
        module_index=row.module_index,
        passing_score=row.passing_score,
        questions=tuple(
            QuizQuestion(
                question=q["question"],
                options=tuple(q["options"]),
                correct_answer=q["correct_answer"],
                points=q.get("points", 1),
            )
            for q in row.questions or []
        ),
    )


def _row_to_result(row: QuizResultRow) -> QuizResult:
    return QuizResult(
        id=row.id,
        student_id=row.student_id,
        quiz_id=row.quiz_id,
        course_id=row.course_id,
        answers=tuple(row.answers),
        score=row.score,
        total_points=row.total_points,
        percentage=row.percentage,
        passed=row.passed,
        time_spent=row.time_spent,
        submitted_at=row.submitted_at,
    )
