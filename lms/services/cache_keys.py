"""Canonical cache key construction.

Key layout (one namespace per resource, never containing user input
outside the final JSON segment):

    {resource}:list:{canonical-json}        paginated / filtered listings
    {resource}:agg:{name}:{canonical-json}  counts, stats, distinct values
    {resource}:entity:{id}                  single-entity views

The JSON segment is produced with sorted keys and compact separators,
so two logically identical requests always share a key and two
different ones never do.  Per-user views put the acting user id inside
the JSON, which keeps one user's page out of another user's cache hit.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any
from uuid import UUID

COURSES = "courses"
ENROLLMENTS = "enrollments"
PROGRESS = "progress"
QUIZZES = "quizzes"
QUIZ_RESULTS = "quiz_results"
ASSIGNMENTS = "assignments"

RESOURCES = frozenset(
    {COURSES, ENROLLMENTS, PROGRESS, QUIZZES, QUIZ_RESULTS, ASSIGNMENTS}
)


class SortSpec(str, Enum):
    NEWEST = "newest"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    TITLE = "title"

    @classmethod
    def parse(cls, raw: str | None) -> SortSpec:
        if not raw:
            return cls.NEWEST
        try:
            return cls(raw)
        except ValueError:
            return cls.NEWEST


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """Every filter a listing understands.  Unset fields are omitted from keys."""

    course: UUID | None = None
    student: UUID | None = None
    status: str | None = None
    search: str | None = None
    category: str | None = None
    tags: tuple[str, ...] | None = None
    min_price: float | None = None
    max_price: float | None = None
    batch: str | None = None
    published_only: bool | None = None

    def canonical(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name, value in asdict(self).items():
            if value is None:
                continue
            if name == "tags":
                value = sorted(set(value))
            elif name == "search":
                value = value.strip().lower()
                if not value:
                    continue
            elif isinstance(value, UUID):
                value = str(value)
            out[name] = value
        return out

    # --- predicates used by the in-memory repositories ---

    def matches_search(self, *haystacks: str | None) -> bool:
        if not self.search or not self.search.strip():
            return True
        needle = self.search.strip().lower()
        return any(h is not None and needle in h.lower() for h in haystacks)

    def matches_price(self, price: float) -> bool:
        if self.min_price is not None and price < self.min_price:
            return False
        if self.max_price is not None and price > self.max_price:
            return False
        return True

    def matches_tags(self, tags: tuple[str, ...]) -> bool:
        if not self.tags:
            return True
        return bool(set(self.tags) & set(tags))


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _check(resource: str) -> str:
    if resource not in RESOURCES:
        raise ValueError(f"unknown cache resource {resource!r}")
    return resource


def list_key(
    resource: str,
    filters: FilterSpec | None = None,
    sort: SortSpec | None = None,
    page: int = 1,
    limit: int = 20,
    user_id: UUID | str | None = None,
) -> str:
    doc: dict[str, Any] = {
        "filters": (filters or FilterSpec()).canonical(),
        "page": page,
        "limit": limit,
    }
    if sort is not None:
        doc["sort"] = sort.value
    if user_id is not None:
        doc["user"] = str(user_id)
    return f"{_check(resource)}:list:{canonical_json(doc)}"


def aggregate_key(
    resource: str,
    name: str,
    params: dict[str, Any] | None = None,
    user_id: UUID | str | None = None,
) -> str:
    doc = {k: v for k, v in (params or {}).items() if v is not None}
    if user_id is not None:
        doc["user"] = str(user_id)
    return f"{_check(resource)}:agg:{name}:{canonical_json(doc)}"


def entity_key(resource: str, entity_id: UUID | str) -> str:
    return f"{_check(resource)}:entity:{entity_id}"


def list_pattern(resource: str) -> str:
    return f"{_check(resource)}:list:*"


def aggregate_pattern(resource: str) -> str:
    return f"{_check(resource)}:agg:*"


def entity_pattern(resource: str) -> str:
    return f"{_check(resource)}:entity:*"
