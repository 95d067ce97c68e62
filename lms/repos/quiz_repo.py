from __future__ import annotations

import dataclasses
from typing import Protocol
from uuid import UUID

from lms.models.quiz import Quiz, QuizResult


class QuizRepo(Protocol):
    async def get_by_id(self, quiz_id: UUID) -> Quiz | None: ...
    async def add(self, quiz: Quiz) -> None: ...
    async def list_for_course(self, course_id: UUID) -> list[Quiz]: ...
    async def add_result(self, result: QuizResult) -> None: ...
    async def get_result(self, result_id: UUID) -> QuizResult | None: ...
    async def list_results(
        self, student_id: UUID, course_id: UUID | None = None
    ) -> list[QuizResult]: ...


class InMemoryQuizRepo:
    def __init__(self) -> None:
        self._quizzes: dict[UUID, Quiz] = {}
        # Append-only; results are never replaced or removed.
        self._results: list[QuizResult] = []

    async def get_by_id(self, quiz_id: UUID) -> Quiz | None:
        return self._quizzes.get(quiz_id)

    async def add(self, quiz: Quiz) -> None:
        if quiz.id in self._quizzes:
            raise ValueError("quiz already exists")
        self._quizzes[quiz.id] = quiz

    async def list_for_course(self, course_id: UUID) -> list[Quiz]:
        rows = [q for q in self._quizzes.values() if q.course_id == course_id]
        return sorted(
            rows, key=lambda q: (q.module_index is None, q.module_index or 0, q.title)
        )

    async def add_result(self, result: QuizResult) -> None:
        self._results.append(result)

    async def get_result(self, result_id: UUID) -> QuizResult | None:
        return next((r for r in self._results if r.id == result_id), None)

    async def list_results(
        self, student_id: UUID, course_id: UUID | None = None
    ) -> list[QuizResult]:
        rows = [
            r
            for r in self._results
            if r.student_id == student_id
            and (course_id is None or r.course_id == course_id)
        ]
        return sorted(rows, key=lambda r: r.submitted_at, reverse=True)

    def on_course_deleted(self, course_id: UUID) -> None:
        """Detach quizzes and results from the course (SET NULL)."""
        for qid, q in list(self._quizzes.items()):
            if q.course_id == course_id:
                self._quizzes[qid] = dataclasses.replace(q, course_id=None)
        self._results = [
            dataclasses.replace(r, course_id=None) if r.course_id == course_id else r
            for r in self._results
        ]
