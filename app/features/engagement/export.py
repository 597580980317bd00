"""CSV rendering for the engagement report download."""

import csv
import io
from collections.abc import Iterable

from app.features.engagement.domain import EngagementRow

CSV_HEADERS = [
    "parish",
    "course",
    "enrollment_count",
    "learners_started",
    "learners_completed",
    "completion_rate",
]


def render_engagement_csv(rows: Iterable[EngagementRow]) -> str:
    """Header line unquoted, every data value double-quoted with quotes doubled."""
    buffer = io.StringIO()
    buffer.write(",".join(CSV_HEADERS) + "\n")

    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(
        [
            row.parish_name,
            row.course_title,
            row.enrollment_count,
            row.learners_started,
            row.learners_completed,
            row.completion_rate,
        ]
        for row in rows
    )

    # no trailing newline after the last record
    return buffer.getvalue().rstrip("\n")
