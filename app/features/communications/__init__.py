"""
Parish communications feature package: outbound message delivery jobs.
"""

from .api.router import router as communications_router  # noqa: F401
from .processor import DeliveryJobProcessor, process_pending_delivery_jobs  # noqa: F401
