from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from lms.models.user import STAFF_ROLES, STUDENT


@dataclass(frozen=True, slots=True)
class Principal:
    """Acting identity for one request.

    Authentication happens upstream; the gateway forwards the verified
    user id and role, and the API layer turns them into a Principal.
    """

    user_id: UUID
    role: str

    @property
    def is_student(self) -> bool:
        return self.role == STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def has_any_role(self, roles: set[str] | frozenset[str]) -> bool:
        return self.role in roles
