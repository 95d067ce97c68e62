from __future__ import annotations

import logging
from uuid import UUID

from lms.core.clock import Clock, utc_now
from lms.core.errors import NotFoundError, ValidationError
from lms.core.metrics import QUIZ_SUBMISSIONS
from lms.models.quiz import (
    DEFAULT_PASSING_SCORE,
    Quiz,
    QuizQuestion,
    QuizResult,
    QuizScore,
)
from lms.repos.unit_of_work import UnitOfWork
from lms.services import cache_keys, views
from lms.services.cache import CacheStore, read_through
from lms.services.invalidation import InvalidationCoordinator
from lms.services.quiz_scorer import score_quiz

logger = logging.getLogger(__name__)


class QuizService:
    """Quiz delivery and scoring.

    Quiz definitions are read-only here; only results are written, and
    results are append-only, so every retake is kept.
    """

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

    async def list_for_course(self, course_id: UUID) -> list[dict]:
        key = cache_keys.aggregate_key(
            cache_keys.QUIZZES, "by_course", {"course": str(course_id)}
        )

        async def load() -> list[dict]:
            quizzes = await self._uow.quizzes.list_for_course(course_id)
            return [views.quiz_public(q) for q in quizzes]

        return await read_through(self._cache, key, self._ttl, load)

    async def get_for_taking(self, quiz_id: UUID) -> dict:
        key = cache_keys.entity_key(cache_keys.QUIZZES, quiz_id)

        async def load() -> dict:
            quiz = await self._uow.quizzes.get_by_id(quiz_id)
            if quiz is None:
                raise NotFoundError("quiz", quiz_id)
            return views.quiz_public(quiz)

        return await read_through(self._cache, key, self._ttl, load)

    async def create(
        self,
        *,
        title: str,
        questions: tuple[QuizQuestion, ...],
        passing_score: int = DEFAULT_PASSING_SCORE,
        course_id: UUID | None = None,
        module_index: int | None = None,
    ) -> Quiz:
        if not questions:
            raise ValidationError("a quiz needs at least one question")
        if not 0 <= passing_score <= 100:
            raise ValidationError("passing_score must be between 0 and 100")
        for i, q in enumerate(questions):
            if not 0 <= q.correct_answer < len(q.options):
                raise ValidationError(f"question {i}: correct_answer is not an option")
        if course_id is not None and await self._uow.courses.get_by_id(course_id) is None:
            raise NotFoundError("course", course_id)

        quiz = Quiz.new(
            title=title,
            questions=questions,
            passing_score=passing_score,
            course_id=course_id,
            module_index=module_index,
        )
        await self._uow.quizzes.add(quiz)
        await self._uow.commit()
        await self._invalidator.invalidate(cache_keys.QUIZZES, quiz.id)
        logger.info("Quiz created id=%s course=%s", quiz.id, course_id)
        return quiz

    async def submit(
        self,
        student_id: UUID,
        quiz_id: UUID,
        answers: list[int],
        time_spent: int = 0,
    ) -> tuple[QuizResult, QuizScore]:
        if time_spent < 0:
            raise ValidationError("time_spent must be >= 0")
        quiz = await self._uow.quizzes.get_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("quiz", quiz_id)

        scored = score_quiz(quiz, answers)
        result = QuizResult.from_score(
            student_id=student_id,
            quiz=quiz,
            answers=tuple(answers),
            result=scored,
            time_spent=time_spent,
            submitted_at=self._clock(),
        )
        await self._uow.quizzes.add_result(result)
        await self._uow.commit()
        await self._invalidator.invalidate(cache_keys.QUIZ_RESULTS)

        QUIZ_SUBMISSIONS.labels(passed=str(scored.passed).lower()).inc()
        logger.info(
            "Quiz submitted quiz=%s student=%s score=%d/%d passed=%s",
            quiz_id,
            student_id,
            scored.score,
            scored.total_points,
            scored.passed,
        )
        return result, scored

    async def history(
        self, student_id: UUID, course_id: UUID | None = None
    ) -> list[dict]:
        params = {"course": str(course_id) if course_id else None}
        key = cache_keys.aggregate_key(
            cache_keys.QUIZ_RESULTS, "history", params, user_id=student_id
        )

        async def load() -> list[dict]:
            results = await self._uow.quizzes.list_results(student_id, course_id)
            return [views.quiz_result(r) for r in results]

        return await read_through(self._cache, key, self._ttl, load)

    async def get_result(self, student_id: UUID, result_id: UUID) -> dict:
        result = await self._uow.quizzes.get_result(result_id)
        # another student's result is reported as absent, not forbidden
        if result is None or result.student_id != student_id:
            raise NotFoundError("quiz_result", result_id)
        return views.quiz_result(result)
