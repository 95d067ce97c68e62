from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

DEFAULT_PASSING_SCORE = 70


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    question: str
    options: tuple[str, ...]
    correct_answer: int  # index into options
    points: int = 1


@dataclass(frozen=True, slots=True)
class Quiz:
    id: UUID
    title: str
    questions: tuple[QuizQuestion, ...]
    passing_score: int = DEFAULT_PASSING_SCORE  # percentage
    course_id: UUID | None = None  # None for standalone quizzes
    module_index: int | None = None

    @staticmethod
    def new(
        *,
        title: str,
        questions: tuple[QuizQuestion, ...],
        passing_score: int = DEFAULT_PASSING_SCORE,
        course_id: UUID | None = None,
        module_index: int | None = None,
    ) -> Quiz:
        return Quiz(
            id=uuid4(),
            title=title,
            questions=questions,
            passing_score=passing_score,
            course_id=course_id,
            module_index=module_index,
        )


@dataclass(frozen=True, slots=True)
class QuestionOutcome:
    question_index: int
    selected_answer: int | None
    correct_answer: int
    is_correct: bool
    points: int


@dataclass(frozen=True, slots=True)
class QuizScore:
    score: int
    total_points: int
    percentage: int
    passed: bool
    per_question: tuple[QuestionOutcome, ...] = ()


@dataclass(frozen=True, slots=True)
class QuizResult:
    """Append-only record of one submission; never updated after creation."""

    id: UUID
    student_id: UUID
    quiz_id: UUID
    course_id: UUID | None
    answers: tuple[int, ...]
    score: int
    total_points: int
    percentage: int
    passed: bool
    time_spent: int  # seconds
    submitted_at: int

    @staticmethod
    def from_score(
        *,
        student_id: UUID,
        quiz: Quiz,
        answers: tuple[int, ...],
        result: QuizScore,
        time_spent: int,
        submitted_at: int,
    ) -> QuizResult:
        return QuizResult(
            id=uuid4(),
            student_id=student_id,
            quiz_id=quiz.id,
            course_id=quiz.course_id,
            answers=answers,
            score=result.score,
            total_points=result.total_points,
            percentage=result.percentage,
            passed=result.passed,
            time_spent=time_spent,
            submitted_at=submitted_at,
        )
