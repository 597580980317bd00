"""
Engagement report filter parsing.

Query parameters arrive as camelCase strings (parishId, courseId,
startDate, endDate). Parsing never raises; callers get a FilterParseResult
and surface `error` as a client error.
"""

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from app.features.engagement.domain import EngagementFilters, FilterParseResult

DATE_PATTERN = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")

LEARNER_SCOPE_REQUIRED = "parishId and courseId are required"
INVALID_DATE_RANGE = "Invalid date range. Use YYYY-MM-DD and ensure startDate <= endDate."

RANGE_FLOOR = datetime(1970, 1, 1, tzinfo=UTC)
RANGE_CEILING = datetime.combine(date(9999, 12, 31), time.max, tzinfo=UTC)

_PARAM_NAMES = {
    "parish_id": "parishId",
    "course_id": "courseId",
    "start_date": "startDate",
    "end_date": "endDate",
}


class _FilterParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    parish_id: str | None = Field(None, min_length=1, alias="parishId")
    course_id: str | None = Field(None, min_length=1, alias="courseId")
    start_date: date | None = Field(None, alias="startDate")
    end_date: date | None = Field(None, alias="endDate")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _strict_calendar_date(cls, value, info: ValidationInfo):
        if value in (None, ""):
            return None
        param = _PARAM_NAMES[info.field_name]
        if not isinstance(value, str) or not DATE_PATTERN.match(value):
            raise ValueError(f"{param} must be a valid YYYY-MM-DD date")
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ValueError(f"{param} must be a valid YYYY-MM-DD date") from None

    @model_validator(mode="after")
    def _ordered_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must be before or equal to endDate")
        return self


class _LearnerScope(BaseModel):
    parish_id: UUID = Field(..., alias="parishId")
    course_id: UUID = Field(..., alias="courseId")


def _first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid filters"

    first = errors[0]
    ctx_error = (first.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)

    loc = first.get("loc") or ()
    if loc:
        param = _PARAM_NAMES.get(str(loc[0]), str(loc[0]))
        return f"{param}: {first['msg']}"
    return first["msg"]


def parse_engagement_filters(params: Mapping[str, str]) -> FilterParseResult:
    raw = {name: params.get(name) for name in _PARAM_NAMES.values() if params.get(name) is not None}

    try:
        parsed = _FilterParams.model_validate(raw)
    except ValidationError as e:
        return FilterParseResult(ok=False, error=_first_error_message(e))

    return FilterParseResult(
        ok=True,
        filters=EngagementFilters(
            parish_id=parsed.parish_id,
            course_id=parsed.course_id,
            start_date=parsed.start_date,
            end_date=parsed.end_date,
        ),
    )


def parse_learner_filters(params: Mapping[str, str]) -> FilterParseResult:
    """
    Filters for the per-learner drill-down.

    Both ids are required UUIDs. Date problems collapse into one generic
    range message rather than the per-field ones.
    """
    try:
        scope = _LearnerScope.model_validate(
            {"parishId": params.get("parishId"), "courseId": params.get("courseId")}
        )
    except ValidationError:
        return FilterParseResult(ok=False, error=LEARNER_SCOPE_REQUIRED)

    dates = parse_engagement_filters(
        {name: params[name] for name in ("startDate", "endDate") if params.get(name) is not None}
    )
    if not dates.ok:
        return FilterParseResult(ok=False, error=INVALID_DATE_RANGE)

    return FilterParseResult(
        ok=True,
        filters=EngagementFilters(
            parish_id=str(scope.parish_id),
            course_id=str(scope.course_id),
            start_date=dates.filters.start_date,
            end_date=dates.filters.end_date,
        ),
    )


def has_date_filters(filters: EngagementFilters) -> bool:
    """True when either date bound is set; only then are trends computed."""
    return bool(filters.start_date or filters.end_date)


def get_date_range_bounds(filters: EngagementFilters) -> tuple[datetime, datetime] | None:
    """Inclusive UTC instants covering the filtered days; open ends are unbounded."""
    if not has_date_filters(filters):
        return None

    start_at = (
        datetime.combine(filters.start_date, time.min, tzinfo=UTC) if filters.start_date else RANGE_FLOOR
    )
    end_at = (
        datetime.combine(filters.end_date, time.max, tzinfo=UTC) if filters.end_date else RANGE_CEILING
    )
    return start_at, end_at
