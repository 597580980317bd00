"""
Domain subpackage for engagement reporting.
"""

from .models import (
    CourseMetricRow,
    EngagementFilters,
    EngagementReport,
    EngagementReportResult,
    EngagementRow,
    EngagementSummaryResult,
    EngagementSummaryRow,
    EngagementTrendPoint,
    EnrollmentRow,
    FilterParseResult,
    LearnerEnrollmentRow,
    LearnerProgressResult,
    LearnerProgressRow,
    LookupRow,
    ProgressRow,
)

__all__ = [
    "CourseMetricRow",
    "EngagementFilters",
    "EngagementReport",
    "EngagementReportResult",
    "EngagementRow",
    "EngagementSummaryResult",
    "EngagementSummaryRow",
    "EngagementTrendPoint",
    "EnrollmentRow",
    "FilterParseResult",
    "LearnerEnrollmentRow",
    "LearnerProgressResult",
    "LearnerProgressRow",
    "LookupRow",
    "ProgressRow",
]
