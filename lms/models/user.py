from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

STUDENT = "student"
TEACHER = "teacher"
MODERATOR = "moderator"
ADMIN = "admin"

STAFF_ROLES = frozenset({TEACHER, MODERATOR, ADMIN})


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    name: str
    email: str
    role: str = STUDENT  # student|teacher|moderator|admin
    batch: str | None = None  # cohort name, students only

    @property
    def is_student(self) -> bool:
        return self.role == STUDENT

    @staticmethod
    def new(
        *, name: str, email: str, role: str = STUDENT, batch: str | None = None
    ) -> User:
        return User(
            id=uuid4(),
            name=name,
            email=email.strip().lower(),
            role=role,
            batch=batch,
        )
