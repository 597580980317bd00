"""
Repository helpers for engagement reporting.

Each method is one independent read so the service can issue them
concurrently; none of them join across lookups.
"""

from datetime import datetime

from app.db.helpers import fetch_all
from app.db.pool import DatabasePoolManager
from app.features.engagement.domain import (
    CourseMetricRow,
    EngagementFilters,
    EnrollmentRow,
    LearnerEnrollmentRow,
    LookupRow,
    ProgressRow,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EngagementRepository:
    """Raw SQL reads backing the engagement endpoints."""

    def __init__(self, db: DatabasePoolManager):
        self.db = db

    async def fetch_course_metrics(self) -> list[CourseMetricRow]:
        query = """
            SELECT parish_id, course_id, learners_started, learners_completed
            FROM diocese_course_metrics()
        """

        rows = await fetch_all(self.db, query)
        return [
            CourseMetricRow(
                parish_id=str(row["parish_id"]),
                course_id=str(row["course_id"]),
                learners_started=row["learners_started"] or 0,
                learners_completed=row["learners_completed"] or 0,
            )
            for row in rows
        ]

    async def fetch_parishes(self) -> list[LookupRow]:
        rows = await fetch_all(self.db, "SELECT id, name FROM parishes")
        return [LookupRow(id=str(row["id"]), label=row.get("name")) for row in rows]

    async def fetch_courses(self) -> list[LookupRow]:
        rows = await fetch_all(self.db, "SELECT id, title FROM courses")
        return [LookupRow(id=str(row["id"]), label=row.get("title")) for row in rows]

    async def fetch_enrollments(self) -> list[EnrollmentRow]:
        rows = await fetch_all(self.db, "SELECT parish_id, course_id FROM enrollments")
        return [
            EnrollmentRow(parish_id=str(row["parish_id"]), course_id=str(row["course_id"]))
            for row in rows
        ]

    async def fetch_lesson_courses(self) -> dict[str, str]:
        """Map lesson id -> course id through the modules table."""
        query = """
            SELECT l.id AS lesson_id, m.course_id
            FROM modules m
            JOIN lessons l ON l.module_id = m.id
        """

        rows = await fetch_all(self.db, query)
        return {str(row["lesson_id"]): str(row["course_id"]) for row in rows}

    async def fetch_enrollments_in_range(
        self, filters: EngagementFilters, start_at: datetime, end_at: datetime
    ) -> list[EnrollmentRow]:
        conditions = ["created_at >= %s", "created_at <= %s"]
        params: list = [start_at, end_at]

        if filters.parish_id:
            conditions.append("parish_id = %s")
            params.append(filters.parish_id)
        if filters.course_id:
            conditions.append("course_id = %s")
            params.append(filters.course_id)

        query = f"""
            SELECT parish_id, course_id
            FROM enrollments
            WHERE {" AND ".join(conditions)}
        """

        rows = await fetch_all(self.db, query, tuple(params))
        return [
            EnrollmentRow(parish_id=str(row["parish_id"]), course_id=str(row["course_id"]))
            for row in rows
        ]

    async def fetch_progress_in_range(
        self,
        lesson_ids: list[str],
        parish_id: str | None,
        start_at: datetime,
        end_at: datetime,
    ) -> list[ProgressRow]:
        if not lesson_ids:
            return []

        conditions = ["lesson_id = ANY(%s)", "updated_at >= %s", "updated_at <= %s"]
        params: list = [lesson_ids, start_at, end_at]
        if parish_id:
            conditions.append("parish_id = %s")
            params.append(parish_id)

        query = f"""
            SELECT parish_id, clerk_user_id, lesson_id, completed, updated_at
            FROM video_progress
            WHERE {" AND ".join(conditions)}
        """

        rows = await fetch_all(self.db, query, tuple(params))
        logger.debug("Loaded progress rows for engagement report", row_count=len(rows))
        return [
            ProgressRow(
                parish_id=str(row["parish_id"]),
                clerk_user_id=row["clerk_user_id"],
                lesson_id=str(row["lesson_id"]),
                completed=bool(row["completed"]),
                updated_at=row.get("updated_at"),
            )
            for row in rows
        ]

    async def fetch_course_lesson_ids(self, course_id: str) -> list[str]:
        query = """
            SELECT l.id AS lesson_id
            FROM modules m
            JOIN lessons l ON l.module_id = m.id
            WHERE m.course_id = %s
        """

        rows = await fetch_all(self.db, query, (course_id,))
        return [str(row["lesson_id"]) for row in rows]

    async def fetch_learner_enrollments(
        self,
        parish_id: str,
        course_id: str,
        bounds: tuple[datetime, datetime] | None = None,
    ) -> list[LearnerEnrollmentRow]:
        conditions = ["parish_id = %s", "course_id = %s"]
        params: list = [parish_id, course_id]
        if bounds:
            conditions.extend(["created_at >= %s", "created_at <= %s"])
            params.extend(bounds)

        query = f"""
            SELECT clerk_user_id, created_at
            FROM enrollments
            WHERE {" AND ".join(conditions)}
        """

        rows = await fetch_all(self.db, query, tuple(params))
        return [
            LearnerEnrollmentRow(
                clerk_user_id=row["clerk_user_id"], enrolled_at=row.get("created_at")
            )
            for row in rows
        ]

    async def fetch_learner_progress(
        self,
        parish_id: str,
        lesson_ids: list[str],
        user_ids: list[str],
        bounds: tuple[datetime, datetime] | None = None,
    ) -> list[ProgressRow]:
        if not lesson_ids or not user_ids:
            return []

        conditions = ["parish_id = %s", "lesson_id = ANY(%s)", "clerk_user_id = ANY(%s)"]
        params: list = [parish_id, lesson_ids, user_ids]
        if bounds:
            conditions.extend(["updated_at >= %s", "updated_at <= %s"])
            params.extend(bounds)

        query = f"""
            SELECT parish_id, clerk_user_id, lesson_id, completed, updated_at
            FROM video_progress
            WHERE {" AND ".join(conditions)}
        """

        rows = await fetch_all(self.db, query, tuple(params))
        return [
            ProgressRow(
                parish_id=str(row["parish_id"]),
                clerk_user_id=row["clerk_user_id"],
                lesson_id=str(row["lesson_id"]),
                completed=bool(row["completed"]),
                updated_at=row.get("updated_at"),
            )
            for row in rows
        ]
