from datetime import UTC, datetime

from fastapi.testclient import TestClient

from app.auth.roles import require_diocese_admin
from app.db.helpers import DatabaseError
from app.features.engagement.api.router import get_engagement_repository
from app.features.engagement.domain import (
    CourseMetricRow,
    LearnerEnrollmentRow,
    LookupRow,
    ProgressRow,
)
from app.main import app

PARISH_ID = "0d4b0a0e-2a62-4b0e-8d2c-7b1c9f0f5a10"
COURSE_ID = "5a1e6d0c-9c3b-4e44-8f7e-2f0c6b7a9d21"


class StubRepository:
    def __init__(self, fail: bool = False):
        self.fail = fail

    async def fetch_course_metrics(self):
        if self.fail:
            raise DatabaseError("metrics view missing")
        return [CourseMetricRow("p1", "c1", learners_started=10, learners_completed=7)]

    async def fetch_parishes(self):
        return [LookupRow("p1", "St Mary")]

    async def fetch_courses(self):
        return [LookupRow("c1", "Alpha")]

    async def fetch_enrollments(self):
        return []

    async def fetch_lesson_courses(self):
        return {}

    async def fetch_enrollments_in_range(self, filters, start_at, end_at):
        return []

    async def fetch_progress_in_range(self, lesson_ids, parish_id, start_at, end_at):
        return []

    async def fetch_course_lesson_ids(self, course_id):
        return ["l1", "l2"]

    async def fetch_learner_enrollments(self, parish_id, course_id, bounds=None):
        return [LearnerEnrollmentRow("u1", datetime(2024, 1, 2, tzinfo=UTC))]

    async def fetch_learner_progress(self, parish_id, lesson_ids, user_ids, bounds=None):
        if self.fail:
            raise DatabaseError("video_progress unavailable")
        return [ProgressRow(parish_id, "u1", "l1", completed=True, updated_at=None)]


def _client(repository) -> TestClient:
    app.dependency_overrides[require_diocese_admin] = lambda: "admin-1"
    app.dependency_overrides[get_engagement_repository] = lambda: repository
    return TestClient(app)


def teardown_function():
    app.dependency_overrides.clear()


def test_engagement_summary_is_enriched():
    response = _client(StubRepository()).get("/admin/engagement")

    assert response.status_code == 200
    [row] = response.json()["engagement"]
    assert row["parish_name"] == "St Mary"
    assert row["course_title"] == "Alpha"
    assert row["learners_started"] == 10


def test_report_without_dates_omits_trends():
    response = _client(StubRepository()).get("/admin/reports/engagement")

    assert response.status_code == 200
    body = response.json()
    assert "trends" not in body
    assert body["rows"][0]["completion_rate"] == 70


def test_report_with_a_date_includes_trends():
    response = _client(StubRepository()).get(
        "/admin/reports/engagement", params={"startDate": "2024-01-01"}
    )

    assert response.status_code == 200
    assert response.json() == {"rows": [], "trends": []}


def test_invalid_filter_is_bad_request():
    response = _client(StubRepository()).get(
        "/admin/reports/engagement", params={"endDate": "2024-02-31"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "endDate must be a valid YYYY-MM-DD date"


def test_fetch_failure_is_bad_request():
    response = _client(StubRepository(fail=True)).get("/admin/reports/engagement")

    assert response.status_code == 400
    assert response.json()["detail"] == "metrics view missing"


def test_csv_export_download():
    response = _client(StubRepository()).get("/admin/reports/engagement/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="engagement-report.csv"'
    assert response.text.split("\n")[1] == '"St Mary","Alpha","0","10","7","70"'


def test_learner_drill_down_lists_enrolled_learners():
    response = _client(StubRepository()).get(
        "/admin/reports/engagement/learners",
        params={"parishId": PARISH_ID, "courseId": COURSE_ID},
    )

    assert response.status_code == 200
    assert response.json() == {
        "learners": [
            {
                "clerk_user_id": "u1",
                "enrolled_at": "2024-01-02T00:00:00+00:00",
                "completed_lessons": 1,
                "total_lessons": 2,
                "progress_percent": 50,
            }
        ]
    }


def test_learner_drill_down_requires_scope():
    response = _client(StubRepository()).get(
        "/admin/reports/engagement/learners", params={"parishId": PARISH_ID}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "parishId and courseId are required"


def test_learner_drill_down_rejects_bad_range():
    response = _client(StubRepository()).get(
        "/admin/reports/engagement/learners",
        params={
            "parishId": PARISH_ID,
            "courseId": COURSE_ID,
            "startDate": "2024-05-02",
            "endDate": "2024-05-01",
        },
    )

    assert response.status_code == 400
    assert response.json()["detail"] == (
        "Invalid date range. Use YYYY-MM-DD and ensure startDate <= endDate."
    )


def test_learner_drill_down_fetch_failure_is_bad_request():
    response = _client(StubRepository(fail=True)).get(
        "/admin/reports/engagement/learners",
        params={"parishId": PARISH_ID, "courseId": COURSE_ID},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "video_progress unavailable"
