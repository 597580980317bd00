"""
Engagement reporting feature package.

Filter parsing, the in-memory merge of metrics with parish/course lookups,
and the opt-in monthly trend series for date-filtered reports.
"""

from .api.router import router as engagement_router  # noqa: F401
from .filters import has_date_filters, parse_engagement_filters  # noqa: F401
from .service import load_engagement_report_data, load_engagement_summary  # noqa: F401
