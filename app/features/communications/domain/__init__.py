"""
Domain subpackage for parish communications delivery.
"""

from .models import (
    MISSING_SEND_RECORD,
    NO_EMAIL_ON_FILE,
    DeliveryBatchSummary,
    DeliveryConfig,
    DeliveryJob,
    DeliveryJobStatus,
    DeliveryRecipient,
    DeliveryResult,
    JobOutcome,
    MessageSend,
    RecipientFailure,
)

__all__ = [
    "MISSING_SEND_RECORD",
    "NO_EMAIL_ON_FILE",
    "DeliveryBatchSummary",
    "DeliveryConfig",
    "DeliveryJob",
    "DeliveryJobStatus",
    "DeliveryRecipient",
    "DeliveryResult",
    "JobOutcome",
    "MessageSend",
    "RecipientFailure",
]
