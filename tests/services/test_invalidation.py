from __future__ import annotations

import asyncio

import pytest

from lms.services import cache_keys
from lms.services.cache import InMemoryCacheStore, RedisCacheStore
from lms.services.cache_keys import FilterSpec
from lms.services.invalidation import FAN_OUT, InvalidationCoordinator

# resource -> resources its cached views embed, are scoped by, or are
# cascaded from on delete
VIEW_SOURCES = {
    cache_keys.COURSES: set(),
    # enrollment views carry course refs and progress fields
    cache_keys.ENROLLMENTS: {cache_keys.COURSES, cache_keys.PROGRESS},
    # course progress is the enrollment plus completions, cascaded from courses
    cache_keys.PROGRESS: {cache_keys.COURSES, cache_keys.ENROLLMENTS},
    # course refs in every view; student listings scoped by enrollments
    cache_keys.ASSIGNMENTS: {cache_keys.COURSES, cache_keys.ENROLLMENTS},
    # by-course listings keyed on course_id, nulled on course delete
    cache_keys.QUIZZES: {cache_keys.COURSES},
    cache_keys.QUIZ_RESULTS: {cache_keys.COURSES},
}


def _seed(cache: InMemoryCacheStore, *keys: str) -> None:
    async def scenario():
        for key in keys:
            await cache.set(key, "1", 60)

    asyncio.run(scenario())


def _present(cache: InMemoryCacheStore, *keys: str) -> set[str]:
    async def scenario():
        return {k for k in keys if await cache.get(k) is not None}

    return asyncio.run(scenario())


def test_every_resource_is_in_the_fan_out_of_its_sources() -> None:
    assert set(VIEW_SOURCES) == set(FAN_OUT) == cache_keys.RESOURCES
    for resource, sources in VIEW_SOURCES.items():
        for source in sources:
            assert resource in FAN_OUT[source], f"{source} change leaves {resource} stale"


def test_patterns_for_dependents_include_entity_keys() -> None:
    patterns = InvalidationCoordinator(InMemoryCacheStore()).patterns_for("enrollments")
    assert patterns[:2] == ["enrollments:list:*", "enrollments:agg:*"]
    assert "enrollments:entity:*" not in patterns
    assert "assignments:entity:*" in patterns
    assert "progress:agg:*" in patterns


def test_leaf_resource_purges_only_itself() -> None:
    coordinator = InvalidationCoordinator(InMemoryCacheStore())
    assert coordinator.patterns_for("quizzes") == ["quizzes:list:*", "quizzes:agg:*"]


def test_unknown_resource_rejected() -> None:
    with pytest.raises(ValueError):
        InvalidationCoordinator(InMemoryCacheStore()).patterns_for("widgets")


def test_course_change_purges_every_dependent_view() -> None:
    cache = InMemoryCacheStore()
    course_list = cache_keys.list_key("courses", FilterSpec())
    course_entity = cache_keys.entity_key("courses", "c1")
    other_course = cache_keys.entity_key("courses", "c2")
    dependents = [
        cache_keys.list_key("enrollments", FilterSpec()),
        cache_keys.aggregate_key("progress", "course", {"course": "c1"}, user_id="u1"),
        cache_keys.entity_key("assignments", "a1"),
        cache_keys.list_key("assignments", FilterSpec(), user_id="u1"),
        cache_keys.aggregate_key("quizzes", "by_course", {"course": "c1"}),
        cache_keys.entity_key("quizzes", "q1"),
        cache_keys.aggregate_key("quiz_results", "history", user_id="u1"),
    ]
    _seed(cache, course_list, course_entity, other_course, *dependents)

    asyncio.run(InvalidationCoordinator(cache).invalidate("courses", "c1"))

    assert _present(cache, course_list, course_entity, other_course, *dependents) == {
        other_course
    }


def test_enrollment_change_purges_assignment_listings() -> None:
    cache = InMemoryCacheStore()
    listing = cache_keys.list_key("assignments", FilterSpec(), user_id="u1")
    quiz = cache_keys.entity_key("quizzes", "q1")
    _seed(cache, listing, quiz)

    asyncio.run(InvalidationCoordinator(cache).invalidate("enrollments"))

    assert _present(cache, listing, quiz) == {quiz}


def test_progress_change_purges_enrollment_views() -> None:
    cache = InMemoryCacheStore()
    mine = cache_keys.aggregate_key("enrollments", "mine", user_id="u1")
    detail = cache_keys.aggregate_key("progress", "course", {"course": "c1"}, user_id="u1")
    _seed(cache, mine, detail)

    asyncio.run(InvalidationCoordinator(cache).invalidate("progress"))

    assert _present(cache, mine, detail) == set()


def test_invalidate_on_disabled_cache_is_noop() -> None:
    asyncio.run(InvalidationCoordinator(RedisCacheStore(None)).invalidate("courses", "c1"))
