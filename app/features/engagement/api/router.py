"""
Diocese-admin engagement routes.

Result errors from the aggregation layer map to 400; the service never
raises for dependency failures.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.auth.roles import require_diocese_admin
from app.db.pool import DatabasePoolManager, get_db
from app.features.engagement.export import render_engagement_csv
from app.features.engagement.filters import (
    has_date_filters,
    parse_engagement_filters,
    parse_learner_filters,
)
from app.features.engagement.repository import EngagementRepository
from app.features.engagement.service import (
    load_engagement_report_data,
    load_engagement_summary,
    load_learner_progress,
)

router = APIRouter(prefix="/admin", tags=["engagement"])


def get_engagement_repository(db: DatabasePoolManager = Depends(get_db)) -> EngagementRepository:
    return EngagementRepository(db)


def _parse_filters_or_400(request: Request):
    parsed = parse_engagement_filters(request.query_params)
    if not parsed.ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=parsed.error)
    return parsed.filters


@router.get("/engagement")
async def get_engagement_summary(
    _admin: str = Depends(require_diocese_admin),
    repository: EngagementRepository = Depends(get_engagement_repository),
):
    result = await load_engagement_summary(repository)
    if result.error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return {"engagement": [asdict(row) for row in result.rows]}


@router.get("/reports/engagement")
async def get_engagement_report(
    request: Request,
    _admin: str = Depends(require_diocese_admin),
    repository: EngagementRepository = Depends(get_engagement_repository),
):
    """Rows always; trends only when startDate or endDate is supplied."""
    filters = _parse_filters_or_400(request)

    result = await load_engagement_report_data(repository, filters)
    if result.error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    rows = [asdict(row) for row in result.data.rows]
    if has_date_filters(filters):
        return {"rows": rows, "trends": [asdict(point) for point in result.data.trends or []]}

    return {"rows": rows}


@router.get("/reports/engagement/export")
async def export_engagement_report(
    request: Request,
    _admin: str = Depends(require_diocese_admin),
    repository: EngagementRepository = Depends(get_engagement_repository),
):
    filters = _parse_filters_or_400(request)

    result = await load_engagement_report_data(repository, filters)
    if result.error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return Response(
        content=render_engagement_csv(result.data.rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="engagement-report.csv"'},
    )


@router.get("/reports/engagement/learners")
async def get_learner_progress(
    request: Request,
    _admin: str = Depends(require_diocese_admin),
    repository: EngagementRepository = Depends(get_engagement_repository),
):
    """Drill-down for one parish x course: lesson completion per enrolled learner."""
    parsed = parse_learner_filters(request.query_params)
    if not parsed.ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=parsed.error)

    result = await load_learner_progress(repository, parsed.filters)
    if result.error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return {"learners": [asdict(row) for row in result.learners]}
