"""
Engagement report aggregation.

Two explicit paths, picked by `has_date_filters`:

* all-time: merge the precomputed diocese_course_metrics() rows with
  lookups and enrollment counts; no trend series.
* date-filtered: derive started/completed learners from video progress
  inside the range and bucket them by month for the trend series.

Every path fetches its independent inputs concurrently and fails as a
whole: the first failing fetch (in fetch order) becomes the result error
and nothing is merged.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Iterable
from datetime import UTC
from typing import Any

from app.db.helpers import DatabaseError
from app.features.engagement.domain import (
    CourseMetricRow,
    EngagementFilters,
    EngagementReport,
    EngagementReportResult,
    EngagementRow,
    EngagementSummaryResult,
    EngagementSummaryRow,
    EngagementTrendPoint,
    EnrollmentRow,
    LearnerEnrollmentRow,
    LearnerProgressResult,
    LearnerProgressRow,
    LookupRow,
    ProgressRow,
)
from app.features.engagement.filters import get_date_range_bounds, has_date_filters
from app.features.engagement.repository import EngagementRepository
from app.infrastructure.observability.logging import get_logger
from app.utils.percentages import rounded_percentage

logger = get_logger(__name__)


class _FetchFailed(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


async def _gather_all_or_fail(*fetches: Awaitable[Any]) -> list[Any]:
    """Await fetches concurrently; raise _FetchFailed with the first error in argument order."""
    results = await asyncio.gather(*fetches, return_exceptions=True)
    for result in results:
        if isinstance(result, DatabaseError):
            raise _FetchFailed(str(result))
        if isinstance(result, BaseException):
            raise result
    return list(results)


def _label_map(rows: Iterable[LookupRow]) -> dict[str, str]:
    return {row.id: row.label or row.id for row in rows}


def _count_by_scope(enrollments: Iterable[EnrollmentRow]) -> dict[tuple[str, str], int]:
    counts: dict[tuple[str, str], int] = defaultdict(int)
    for row in enrollments:
        counts[(row.parish_id, row.course_id)] += 1
    return counts


def build_engagement_summary(
    metrics: Iterable[CourseMetricRow],
    parishes: Iterable[LookupRow],
    courses: Iterable[LookupRow],
) -> list[EngagementSummaryRow]:
    """Enrich metric rows with display names; unknown ids display as themselves."""
    parish_names = _label_map(parishes)
    course_titles = _label_map(courses)

    return [
        EngagementSummaryRow(
            parish_id=row.parish_id,
            course_id=row.course_id,
            learners_started=row.learners_started,
            learners_completed=row.learners_completed,
            parish_name=parish_names.get(row.parish_id, row.parish_id),
            course_title=course_titles.get(row.course_id, row.course_id),
        )
        for row in metrics
    ]


def build_rows_from_metrics(
    metrics: Iterable[CourseMetricRow],
    enrollments: Iterable[EnrollmentRow],
    parishes: Iterable[LookupRow],
    courses: Iterable[LookupRow],
    filters: EngagementFilters,
) -> list[EngagementRow]:
    enrollment_counts = _count_by_scope(enrollments)
    parish_names = _label_map(parishes)
    course_titles = _label_map(courses)

    rows = [
        EngagementRow(
            parish_id=row.parish_id,
            course_id=row.course_id,
            parish_name=parish_names.get(row.parish_id, row.parish_id),
            course_title=course_titles.get(row.course_id, row.course_id),
            enrollment_count=enrollment_counts.get((row.parish_id, row.course_id), 0),
            learners_started=row.learners_started,
            learners_completed=row.learners_completed,
            completion_rate=rounded_percentage(row.learners_completed, row.learners_started),
        )
        for row in metrics
        if (not filters.parish_id or row.parish_id == filters.parish_id)
        and (not filters.course_id or row.course_id == filters.course_id)
    ]
    rows.sort(key=lambda row: row.learners_started, reverse=True)
    return rows


def _period_of(progress: ProgressRow) -> str | None:
    if progress.updated_at is None:
        return None
    updated_at = progress.updated_at
    if updated_at.tzinfo is not None:
        updated_at = updated_at.astimezone(UTC)
    return updated_at.strftime("%Y-%m")


def build_date_filtered_report(
    course_by_lesson: dict[str, str],
    enrollments: Iterable[EnrollmentRow],
    progress_rows: Iterable[ProgressRow],
    parishes: Iterable[LookupRow],
    courses: Iterable[LookupRow],
    filters: EngagementFilters,
) -> EngagementReport:
    parish_names = _label_map(parishes)
    course_titles = _label_map(courses)
    enrollment_counts = _count_by_scope(enrollments)

    started_by_scope: dict[tuple[str, str], set[str]] = defaultdict(set)
    completed_by_scope: dict[tuple[str, str], set[str]] = defaultdict(set)
    started_by_period: dict[str, set[tuple[str, str, str]]] = defaultdict(set)
    completed_by_period: dict[str, set[tuple[str, str, str]]] = defaultdict(set)

    for progress in progress_rows:
        course_id = course_by_lesson.get(progress.lesson_id)
        if not course_id:
            continue
        if filters.course_id and course_id != filters.course_id:
            continue

        scope = (progress.parish_id, course_id)
        started_by_scope[scope].add(progress.clerk_user_id)
        if progress.completed:
            completed_by_scope[scope].add(progress.clerk_user_id)

        period = _period_of(progress)
        if period:
            learner_key = (progress.parish_id, course_id, progress.clerk_user_id)
            started_by_period[period].add(learner_key)
            if progress.completed:
                completed_by_period[period].add(learner_key)

    scopes = set(enrollment_counts) | set(started_by_scope) | set(completed_by_scope)
    rows = []
    for parish_id, course_id in scopes:
        started = len(started_by_scope.get((parish_id, course_id), ()))
        completed = len(completed_by_scope.get((parish_id, course_id), ()))
        rows.append(
            EngagementRow(
                parish_id=parish_id,
                course_id=course_id,
                parish_name=parish_names.get(parish_id, parish_id),
                course_title=course_titles.get(course_id, course_id),
                enrollment_count=enrollment_counts.get((parish_id, course_id), 0),
                learners_started=started,
                learners_completed=completed,
                completion_rate=rounded_percentage(completed, started),
            )
        )
    rows.sort(key=lambda row: (-row.learners_started, row.parish_name))

    trends = []
    for period in sorted(set(started_by_period) | set(completed_by_period)):
        started = len(started_by_period.get(period, ()))
        completed = len(completed_by_period.get(period, ()))
        trends.append(
            EngagementTrendPoint(
                period=period,
                learners_started=started,
                learners_completed=completed,
                completion_rate=rounded_percentage(completed, started),
            )
        )

    return EngagementReport(rows=rows, trends=trends)


def build_learner_progress(
    lesson_ids: Iterable[str],
    enrollments: Iterable[LearnerEnrollmentRow],
    progress_rows: Iterable[ProgressRow],
) -> list[LearnerProgressRow]:
    """One row per enrollment, in enrollment order, counting distinct completed lessons."""
    course_lessons = set(lesson_ids)
    total_lessons = len(course_lessons)

    completed_by_user: dict[str, set[str]] = defaultdict(set)
    for progress in progress_rows:
        if progress.completed and progress.lesson_id in course_lessons:
            completed_by_user[progress.clerk_user_id].add(progress.lesson_id)

    learners = []
    for enrollment in enrollments:
        completed = len(completed_by_user.get(enrollment.clerk_user_id, ()))
        learners.append(
            LearnerProgressRow(
                clerk_user_id=enrollment.clerk_user_id,
                enrolled_at=enrollment.enrolled_at,
                completed_lessons=completed,
                total_lessons=total_lessons,
                progress_percent=rounded_percentage(completed, total_lessons),
            )
        )
    return learners


async def _load_all_time_report(
    repository: EngagementRepository, filters: EngagementFilters
) -> EngagementReport:
    metrics, parishes, courses, enrollments = await _gather_all_or_fail(
        repository.fetch_course_metrics(),
        repository.fetch_parishes(),
        repository.fetch_courses(),
        repository.fetch_enrollments(),
    )
    rows = build_rows_from_metrics(metrics, enrollments, parishes, courses, filters)
    return EngagementReport(rows=rows, trends=None)


async def _load_date_filtered_report(
    repository: EngagementRepository, filters: EngagementFilters
) -> EngagementReport:
    start_at, end_at = get_date_range_bounds(filters)

    course_by_lesson, parishes, courses = await _gather_all_or_fail(
        repository.fetch_lesson_courses(),
        repository.fetch_parishes(),
        repository.fetch_courses(),
    )

    lesson_ids = [
        lesson_id
        for lesson_id, course_id in course_by_lesson.items()
        if not filters.course_id or course_id == filters.course_id
    ]

    enrollments, progress_rows = await _gather_all_or_fail(
        repository.fetch_enrollments_in_range(filters, start_at, end_at),
        repository.fetch_progress_in_range(lesson_ids, filters.parish_id, start_at, end_at),
    )

    return build_date_filtered_report(
        course_by_lesson, enrollments, progress_rows, parishes, courses, filters
    )


async def load_engagement_report_data(
    repository: EngagementRepository, filters: EngagementFilters
) -> EngagementReportResult:
    """
    Build the engagement report for the given filters.

    Returns an EngagementReportResult carrying either `data` or `error`,
    never both. Trends are present only when a date filter is active.
    """
    with_trends = has_date_filters(filters)
    try:
        if with_trends:
            report = await _load_date_filtered_report(repository, filters)
        else:
            report = await _load_all_time_report(repository, filters)
    except _FetchFailed as e:
        logger.warning(
            "Engagement report fetch failed",
            error=e.message,
            with_trends=with_trends,
        )
        return EngagementReportResult(error=e.message)

    logger.info(
        "Engagement report built",
        row_count=len(report.rows),
        trend_points=len(report.trends or []),
        with_trends=with_trends,
    )
    return EngagementReportResult(data=report)


async def load_engagement_summary(repository: EngagementRepository) -> EngagementSummaryResult:
    """Metric counts per parish x course enriched with parish names and course titles."""
    try:
        metrics, parishes, courses = await _gather_all_or_fail(
            repository.fetch_course_metrics(),
            repository.fetch_parishes(),
            repository.fetch_courses(),
        )
    except _FetchFailed as e:
        logger.warning("Engagement summary fetch failed", error=e.message)
        return EngagementSummaryResult(error=e.message)

    return EngagementSummaryResult(rows=build_engagement_summary(metrics, parishes, courses))


async def load_learner_progress(
    repository: EngagementRepository, filters: EngagementFilters
) -> LearnerProgressResult:
    """
    Per-learner lesson completion for one parish x course.

    A course without lessons yields no learners. With a date filter only
    enrollments created and progress updated inside the range count.
    """
    bounds = get_date_range_bounds(filters)
    try:
        lesson_ids, enrollments = await _gather_all_or_fail(
            repository.fetch_course_lesson_ids(filters.course_id),
            repository.fetch_learner_enrollments(filters.parish_id, filters.course_id, bounds),
        )
        if not lesson_ids:
            return LearnerProgressResult(learners=[])

        (progress_rows,) = await _gather_all_or_fail(
            repository.fetch_learner_progress(
                filters.parish_id,
                lesson_ids,
                [enrollment.clerk_user_id for enrollment in enrollments],
                bounds,
            )
        )
    except _FetchFailed as e:
        logger.warning(
            "Learner progress fetch failed",
            parish_id=filters.parish_id,
            course_id=filters.course_id,
            error=e.message,
        )
        return LearnerProgressResult(error=e.message)

    learners = build_learner_progress(lesson_ids, enrollments, progress_rows)
    logger.info(
        "Learner progress built",
        parish_id=filters.parish_id,
        course_id=filters.course_id,
        learner_count=len(learners),
    )
    return LearnerProgressResult(learners=learners)
