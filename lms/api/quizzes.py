"""Quiz endpoints.

Quizzes are served without their correct answers; the answers only
come back, per question, in the response to a submission.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from lms.api.dependencies import (
    get_quiz_service,
    require_staff,
    require_student,
    require_user,
    service_errors,
)
from lms.models.principal import Principal
from lms.models.quiz import DEFAULT_PASSING_SCORE, QuizQuestion
from lms.services import views
from lms.services.quiz_service import QuizService

router = APIRouter(prefix="/v1/quizzes", tags=["quizzes"])

QuizServiceDep = Annotated[QuizService, Depends(get_quiz_service)]


class QuestionIn(BaseModel):
    question: str
    options: list[str] = Field(min_length=2)
    correct_answer: int = Field(ge=0)
    points: int = Field(default=1, ge=0)


class QuizCreateIn(BaseModel):
    title: str = Field(min_length=1)
    questions: list[QuestionIn] = Field(min_length=1)
    passing_score: int = Field(default=DEFAULT_PASSING_SCORE, ge=0, le=100)
    course_id: UUID | None = None
    module_index: int | None = Field(default=None, ge=0)


class QuizSubmitIn(BaseModel):
    answers: list[int]
    time_spent: int = Field(default=0, ge=0)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_quiz(
    body: QuizCreateIn,
    quizzes: QuizServiceDep,
    _principal: Annotated[Principal, Depends(require_staff)],
) -> dict:
    with service_errors():
        quiz = await quizzes.create(
            title=body.title,
            questions=tuple(
                QuizQuestion(
                    question=q.question,
                    options=tuple(q.options),
                    correct_answer=q.correct_answer,
                    points=q.points,
                )
                for q in body.questions
            ),
            passing_score=body.passing_score,
            course_id=body.course_id,
            module_index=body.module_index,
        )
    return views.quiz_public(quiz)


@router.get("/course/{course_id}")
async def quizzes_for_course(
    course_id: UUID,
    quizzes: QuizServiceDep,
    _principal: Annotated[Principal, Depends(require_user)],
) -> list[dict]:
    return await quizzes.list_for_course(course_id)


@router.get("/results")
async def quiz_history(
    quizzes: QuizServiceDep,
    principal: Annotated[Principal, Depends(require_student)],
    course: UUID | None = None,
) -> list[dict]:
    return await quizzes.history(principal.user_id, course)


@router.get("/results/{result_id}")
async def quiz_result(
    result_id: UUID,
    quizzes: QuizServiceDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> dict:
    with service_errors():
        return await quizzes.get_result(principal.user_id, result_id)


@router.get("/{quiz_id}")
async def get_quiz(
    quiz_id: UUID,
    quizzes: QuizServiceDep,
    _principal: Annotated[Principal, Depends(require_user)],
) -> dict:
    with service_errors():
        return await quizzes.get_for_taking(quiz_id)


@router.post("/{quiz_id}/submit", status_code=status.HTTP_201_CREATED)
async def submit_quiz(
    quiz_id: UUID,
    body: QuizSubmitIn,
    quizzes: QuizServiceDep,
    principal: Annotated[Principal, Depends(require_student)],
) -> dict:
    with service_errors():
        result, scored = await quizzes.submit(
            principal.user_id, quiz_id, body.answers, body.time_spent
        )
    return {"result_id": str(result.id), **views.quiz_score(scored)}
