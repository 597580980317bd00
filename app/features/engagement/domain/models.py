"""
Domain models for engagement reporting.

Raw rows mirror what the repository reads; report rows are the
denormalized shapes returned to administrators.
"""

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True, slots=True)
class EngagementFilters:
    parish_id: str | None = None
    course_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None


@dataclass(frozen=True, slots=True)
class FilterParseResult:
    ok: bool
    filters: EngagementFilters | None = None
    error: str | None = None


@dataclass(slots=True)
class CourseMetricRow:
    """One row of the diocese_course_metrics() function."""

    parish_id: str
    course_id: str
    learners_started: int
    learners_completed: int


@dataclass(slots=True)
class LookupRow:
    id: str
    label: str | None  # parish name or course title


@dataclass(slots=True)
class EnrollmentRow:
    parish_id: str
    course_id: str


@dataclass(slots=True)
class ProgressRow:
    parish_id: str
    clerk_user_id: str
    lesson_id: str
    completed: bool
    updated_at: datetime | None


@dataclass(slots=True)
class EngagementSummaryRow:
    parish_id: str
    course_id: str
    learners_started: int
    learners_completed: int
    parish_name: str
    course_title: str


@dataclass(slots=True)
class EngagementRow:
    parish_id: str
    course_id: str
    parish_name: str
    course_title: str
    enrollment_count: int
    learners_started: int
    learners_completed: int
    completion_rate: int


@dataclass(slots=True)
class EngagementTrendPoint:
    period: str  # YYYY-MM
    learners_started: int
    learners_completed: int
    completion_rate: int


@dataclass(slots=True)
class EngagementReport:
    rows: list[EngagementRow] = field(default_factory=list)
    # None on the all-time path, where trends are never computed
    trends: list[EngagementTrendPoint] | None = None


@dataclass(slots=True)
class EngagementReportResult:
    data: EngagementReport | None = None
    error: str | None = None


@dataclass(slots=True)
class EngagementSummaryResult:
    rows: list[EngagementSummaryRow] | None = None
    error: str | None = None


@dataclass(slots=True)
class LearnerEnrollmentRow:
    clerk_user_id: str
    enrolled_at: datetime | None


@dataclass(slots=True)
class LearnerProgressRow:
    """Per-learner lesson completion within one parish x course."""

    clerk_user_id: str
    enrolled_at: datetime | None
    completed_lessons: int
    total_lessons: int
    progress_percent: int


@dataclass(slots=True)
class LearnerProgressResult:
    learners: list[LearnerProgressRow] | None = None
    error: str | None = None
