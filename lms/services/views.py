"""Response payloads assembled from domain objects.

Related entities are fetched by id with explicit repository calls and
joined here, instead of relying on ORM relationship loading.  Every
function returns plain JSON-ready dicts, which is also the form the
read layer stores in the cache.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from lms.models.assignment import Assignment
from lms.models.course import Course, CourseModule
from lms.models.enrollment import Enrollment
from lms.models.quiz import Quiz, QuizResult, QuizScore
from lms.models.user import User
from lms.repos.unit_of_work import UnitOfWork


def user_ref(user: User | None, *, with_email: bool = True) -> dict | None:
    if user is None:
        return None
    ref = {"id": str(user.id), "name": user.name}
    if with_email:
        ref["email"] = user.email
    return ref


def course_ref(course: Course | None) -> dict | None:
    if course is None:
        return None
    return {"id": str(course.id), "title": course.title, "category": course.category}


def _module(module: CourseModule) -> dict:
    return {
        "title": module.title,
        "description": module.description,
        "order": module.order,
        "lessons": [
            {
                "title": lesson.title,
                "video_url": lesson.video_url,
                "duration_minutes": lesson.duration_minutes,
                "order": lesson.order,
            }
            for lesson in module.lessons
        ],
    }


def course_summary(course: Course) -> dict:
    """List view: everything except the module tree."""
    return {
        "id": str(course.id),
        "title": course.title,
        "description": course.description,
        "instructor": course.instructor,
        "price": course.price,
        "category": course.category,
        "tags": list(course.tags),
        "thumbnail": course.thumbnail,
        "batch": {
            "name": course.batch.name,
            "start_date": course.batch.start_date,
            "end_date": course.batch.end_date,
        },
        "is_published": course.is_published,
        "total_lessons": course.total_lessons,
        "created_at": course.created_at,
        "updated_at": course.updated_at,
    }


def course_detail(course: Course) -> dict:
    return {**course_summary(course), "modules": [_module(m) for m in course.modules]}


def enrollment(e: Enrollment) -> dict:
    return {
        "id": str(e.id),
        "student_id": str(e.student_id),
        "course_id": str(e.course_id),
        "enrolled_at": e.enrolled_at,
        "total_lessons": e.total_lessons,
        "completed_lessons": e.completed_lessons,
        "progress": e.progress,
        "is_completed": e.is_completed,
        "completed_at": e.completed_at,
    }


async def enrollments_with_refs(
    uow: UnitOfWork, rows: Iterable[Enrollment]
) -> list[dict]:
    rows = list(rows)
    students = await uow.users.get_many(e.student_id for e in rows)
    courses = await uow.courses.get_many(e.course_id for e in rows)
    return [
        {
            **enrollment(e),
            "student": user_ref(students.get(e.student_id)),
            "course": course_ref(courses.get(e.course_id)),
        }
        for e in rows
    ]


def assignment(a: Assignment) -> dict:
    return {
        "id": str(a.id),
        "course_id": str(a.course_id),
        "student_id": str(a.student_id) if a.student_id else None,
        "batch": a.batch,
        "module_index": a.module_index,
        "title": a.title,
        "description": a.description,
        "due_date": a.due_date,
        "created_by": str(a.created_by),
        "created_at": a.created_at,
        "status": a.status,
        "submission": (
            {"answer": a.submission.answer, "submitted_at": a.submission.submitted_at}
            if a.submission
            else None
        ),
        "review": (
            {
                "feedback": a.review.feedback,
                "reviewed_by": str(a.review.reviewed_by),
                "reviewed_at": a.review.reviewed_at,
            }
            if a.review
            else None
        ),
    }


async def assignments_with_refs(
    uow: UnitOfWork, rows: Iterable[Assignment]
) -> list[dict]:
    rows = list(rows)
    user_ids: set[UUID] = set()
    for a in rows:
        if a.student_id:
            user_ids.add(a.student_id)
        if a.review:
            user_ids.add(a.review.reviewed_by)
    users = await uow.users.get_many(user_ids)
    courses = await uow.courses.get_many(a.course_id for a in rows)
    out = []
    for a in rows:
        reviewer = users.get(a.review.reviewed_by) if a.review else None
        out.append(
            {
                **assignment(a),
                "student": user_ref(users.get(a.student_id)) if a.student_id else None,
                "course": course_ref(courses.get(a.course_id)),
                "reviewer": user_ref(reviewer, with_email=False),
            }
        )
    return out


def quiz_public(quiz: Quiz) -> dict:
    """Quiz as shown to a student taking it: no correct answers."""
    return {
        "id": str(quiz.id),
        "title": quiz.title,
        "course_id": str(quiz.course_id) if quiz.course_id else None,
        "module_index": quiz.module_index,
        "passing_score": quiz.passing_score,
        "questions": [
            {"question": q.question, "options": list(q.options), "points": q.points}
            for q in quiz.questions
        ],
    }


def quiz_result(r: QuizResult) -> dict:
    return {
        "id": str(r.id),
        "student_id": str(r.student_id),
        "quiz_id": str(r.quiz_id),
        "course_id": str(r.course_id) if r.course_id else None,
        "answers": list(r.answers),
        "score": r.score,
        "total_points": r.total_points,
        "percentage": r.percentage,
        "passed": r.passed,
        "time_spent": r.time_spent,
        "submitted_at": r.submitted_at,
    }


def quiz_score(s: QuizScore) -> dict:
    return {
        "score": s.score,
        "total_points": s.total_points,
        "percentage": s.percentage,
        "passed": s.passed,
        "per_question": [
            {
                "question_index": o.question_index,
                "selected_answer": o.selected_answer,
                "correct_answer": o.correct_answer,
                "is_correct": o.is_correct,
                "points": o.points,
            }
            for o in s.per_question
        ],
    }
