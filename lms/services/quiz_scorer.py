"""Quiz scoring — a pure function of the quiz definition and the answers.

Persisting the resulting QuizResult is the caller's job (see
quiz_service).  Nothing here touches storage, the cache or the clock.
"""

from __future__ import annotations

from collections.abc import Sequence

from lms.models.quiz import (
    DEFAULT_PASSING_SCORE,
    QuestionOutcome,
    Quiz,
    QuizQuestion,
    QuizScore,
)
from lms.services.rounding import percent


def score(
    questions: Sequence[QuizQuestion],
    answers: Sequence[int | None],
    passing_score: int = DEFAULT_PASSING_SCORE,
) -> QuizScore:
    """Score ``answers`` against ``questions``.

    answers[i] is the selected option index for question i.  Missing
    entries count as wrong; entries past the last question are ignored.
    """
    earned = 0
    total_points = 0
    outcomes: list[QuestionOutcome] = []

    for i, question in enumerate(questions):
        weight = question.points
        total_points += weight
        selected = answers[i] if i < len(answers) else None
        is_correct = selected is not None and selected == question.correct_answer
        if is_correct:
            earned += weight
        outcomes.append(
            QuestionOutcome(
                question_index=i,
                selected_answer=selected,
                correct_answer=question.correct_answer,
                is_correct=is_correct,
                points=weight if is_correct else 0,
            )
        )

    percentage = percent(earned, total_points)
    # A quiz with nothing to score cannot be passed.
    passed = total_points > 0 and percentage >= passing_score

    return QuizScore(
        score=earned,
        total_points=total_points,
        percentage=percentage,
        passed=passed,
        per_question=tuple(outcomes),
    )


def score_quiz(quiz: Quiz, answers: Sequence[int | None]) -> QuizScore:
    return score(quiz.questions, answers, quiz.passing_score)
