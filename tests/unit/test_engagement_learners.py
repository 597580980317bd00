"""
Tests for the per-learner engagement drill-down.
"""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.db.helpers import DatabaseError
from app.features.engagement.domain import EngagementFilters, LearnerEnrollmentRow, ProgressRow
from app.features.engagement.filters import (
    INVALID_DATE_RANGE,
    LEARNER_SCOPE_REQUIRED,
    RANGE_CEILING,
    parse_learner_filters,
)
from app.features.engagement.repository import EngagementRepository
from app.features.engagement.service import build_learner_progress, load_learner_progress

PARISH_ID = "0d4b0a0e-2a62-4b0e-8d2c-7b1c9f0f5a10"
COURSE_ID = "5a1e6d0c-9c3b-4e44-8f7e-2f0c6b7a9d21"

ENROLLED_AT = datetime(2024, 1, 2, tzinfo=UTC)


def _progress(user_id, lesson_id, completed=True):
    return ProgressRow(PARISH_ID, user_id, lesson_id, completed=completed, updated_at=ENROLLED_AT)


class FakeLearnerRepository:
    def __init__(self, *, lesson_ids=None, enrollments=None, progress=None, fail=()):
        self.lesson_ids = lesson_ids or []
        self.enrollments = enrollments or []
        self.progress = progress or []
        self.fail = set(fail)
        self.progress_calls: list[tuple] = []
        self.enrollment_bounds = "unset"

    def _maybe_fail(self, name):
        if name in self.fail:
            raise DatabaseError(f"{name} unavailable", operation=name)

    async def fetch_course_lesson_ids(self, course_id):
        self._maybe_fail("fetch_course_lesson_ids")
        return self.lesson_ids

    async def fetch_learner_enrollments(self, parish_id, course_id, bounds=None):
        self._maybe_fail("fetch_learner_enrollments")
        self.enrollment_bounds = bounds
        return self.enrollments

    async def fetch_learner_progress(self, parish_id, lesson_ids, user_ids, bounds=None):
        self._maybe_fail("fetch_learner_progress")
        self.progress_calls.append((parish_id, list(lesson_ids), list(user_ids), bounds))
        return self.progress


def _filters(**overrides) -> EngagementFilters:
    return EngagementFilters(parish_id=PARISH_ID, course_id=COURSE_ID, **overrides)


def test_learner_filters_require_both_ids():
    for params in ({}, {"parishId": PARISH_ID}, {"courseId": COURSE_ID}):
        result = parse_learner_filters(params)

        assert result.ok is False
        assert result.error == LEARNER_SCOPE_REQUIRED


def test_learner_filters_require_uuid_ids():
    result = parse_learner_filters({"parishId": "st-marys", "courseId": COURSE_ID})

    assert result.ok is False
    assert result.error == "parishId and courseId are required"


@pytest.mark.parametrize(
    "dates",
    [
        {"startDate": "2024-02-30"},
        {"endDate": "01/02/2024"},
        {"startDate": "2024-03-02", "endDate": "2024-03-01"},
    ],
)
def test_learner_filters_collapse_date_problems_into_one_message(dates):
    result = parse_learner_filters({"parishId": PARISH_ID, "courseId": COURSE_ID, **dates})

    assert result.ok is False
    assert result.error == INVALID_DATE_RANGE


def test_learner_filters_parse_scope_and_dates():
    result = parse_learner_filters(
        {"parishId": PARISH_ID.upper(), "courseId": COURSE_ID, "startDate": "2024-01-01"}
    )

    assert result.ok is True
    assert result.filters == _filters(start_date=date(2024, 1, 1))


def test_builder_counts_distinct_completed_lessons_per_enrollment():
    learners = build_learner_progress(
        ["l1", "l2", "l3"],
        [LearnerEnrollmentRow("u1", ENROLLED_AT), LearnerEnrollmentRow("u2", None)],
        [
            _progress("u1", "l1"),
            _progress("u1", "l1"),
            _progress("u1", "l2", completed=False),
            _progress("u1", "l3"),
            _progress("u3", "l1"),
        ],
    )

    assert [learner.clerk_user_id for learner in learners] == ["u1", "u2"]
    first, second = learners
    assert (first.completed_lessons, first.total_lessons, first.progress_percent) == (2, 3, 67)
    assert first.enrolled_at == ENROLLED_AT
    assert (second.completed_lessons, second.progress_percent) == (0, 0)


def test_builder_ignores_progress_on_other_courses_lessons():
    [learner] = build_learner_progress(
        ["l1", "l2"],
        [LearnerEnrollmentRow("u1", ENROLLED_AT)],
        [_progress("u1", "l1"), _progress("u1", "other-course-lesson")],
    )

    assert learner.completed_lessons == 1
    assert learner.progress_percent == 50


@pytest.mark.asyncio
async def test_course_without_lessons_has_no_learners():
    repository = FakeLearnerRepository(enrollments=[LearnerEnrollmentRow("u1", ENROLLED_AT)])

    result = await load_learner_progress(repository, _filters())

    assert result.error is None
    assert result.learners == []
    assert repository.progress_calls == []


@pytest.mark.asyncio
async def test_all_time_drill_down_passes_no_bounds():
    repository = FakeLearnerRepository(
        lesson_ids=["l1", "l2"],
        enrollments=[LearnerEnrollmentRow("u1", ENROLLED_AT), LearnerEnrollmentRow("u2", ENROLLED_AT)],
        progress=[_progress("u2", "l1"), _progress("u2", "l2")],
    )

    result = await load_learner_progress(repository, _filters())

    assert [learner.progress_percent for learner in result.learners] == [0, 100]
    assert repository.enrollment_bounds is None
    assert repository.progress_calls == [(PARISH_ID, ["l1", "l2"], ["u1", "u2"], None)]


@pytest.mark.asyncio
async def test_date_filtered_drill_down_scopes_reads_to_the_range():
    repository = FakeLearnerRepository(
        lesson_ids=["l1"], enrollments=[LearnerEnrollmentRow("u1", ENROLLED_AT)]
    )

    await load_learner_progress(repository, _filters(start_date=date(2024, 1, 1)))

    expected = (datetime(2024, 1, 1, tzinfo=UTC), RANGE_CEILING)
    assert repository.enrollment_bounds == expected
    assert repository.progress_calls[0][3] == expected


@pytest.mark.asyncio
async def test_fetch_failure_is_returned_as_error():
    repository = FakeLearnerRepository(lesson_ids=["l1"], fail={"fetch_learner_progress"})

    result = await load_learner_progress(repository, _filters())

    assert result.learners is None
    assert result.error == "fetch_learner_progress unavailable"


@pytest.mark.asyncio
async def test_first_failure_in_fetch_order_wins():
    repository = FakeLearnerRepository(
        fail={"fetch_course_lesson_ids", "fetch_learner_enrollments"}
    )

    result = await load_learner_progress(repository, _filters())

    assert result.error == "fetch_course_lesson_ids unavailable"


@pytest.mark.asyncio
async def test_enrollment_read_adds_range_only_when_bounded(monkeypatch):
    fetch = AsyncMock(return_value=[{"clerk_user_id": "u1", "created_at": ENROLLED_AT}])
    monkeypatch.setattr("app.features.engagement.repository.fetch_all", fetch)
    repository = EngagementRepository(MagicMock())

    [row] = await repository.fetch_learner_enrollments(PARISH_ID, COURSE_ID)
    query, params = fetch.await_args.args[1:]
    assert "created_at" not in query.split("WHERE")[1]
    assert params == (PARISH_ID, COURSE_ID)
    assert row == LearnerEnrollmentRow("u1", ENROLLED_AT)

    bounds = (datetime(2024, 1, 1, tzinfo=UTC), RANGE_CEILING)
    await repository.fetch_learner_enrollments(PARISH_ID, COURSE_ID, bounds)
    assert fetch.await_args.args[2] == (PARISH_ID, COURSE_ID, *bounds)


@pytest.mark.asyncio
async def test_progress_read_skips_query_without_learners(monkeypatch):
    fetch = AsyncMock()
    monkeypatch.setattr("app.features.engagement.repository.fetch_all", fetch)

    rows = await EngagementRepository(MagicMock()).fetch_learner_progress(PARISH_ID, ["l1"], [])

    assert rows == []
    fetch.assert_not_awaited()
