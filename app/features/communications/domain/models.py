"""
Domain models for parish message delivery.

A delivery job moves pending -> processing -> sent | failed. Only the
processor mutates jobs; composition happens upstream.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

NO_EMAIL_ON_FILE = "Recipient has no email on file."
MISSING_SEND_RECORD = "Message send record is missing."


class DeliveryJobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class JobOutcome(StrEnum):
    """What one processing attempt did with a claimed job."""

    SENT = "sent"
    FAILED = "failed"
    REQUEUED = "requeued"


@dataclass(slots=True)
class DeliveryJob:
    """Represents a parish_message_delivery_jobs row."""

    id: str
    send_id: str
    parish_id: str
    provider: str
    status: DeliveryJobStatus
    attempts: int
    max_attempts: int
    created_at: datetime | None = None
    locked_at: datetime | None = None
    locked_by: str | None = None
    last_error: str | None = None


@dataclass(slots=True)
class MessageSend:
    id: str
    subject: str
    body: str


@dataclass(frozen=True, slots=True)
class DeliveryRecipient:
    clerk_user_id: str
    email: str | None


@dataclass(frozen=True, slots=True)
class RecipientFailure:
    clerk_user_id: str
    error: str


@dataclass(slots=True)
class DeliveryResult:
    """Per-recipient partition returned by a provider for one job."""

    sent: list[str] = field(default_factory=list)
    failed: list[RecipientFailure] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DeliveryConfig:
    enabled: bool
    provider: str | None


@dataclass(slots=True)
class DeliveryBatchSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    requeued: int = 0

    def record(self, outcome: JobOutcome) -> None:
        self.processed += 1
        if outcome is JobOutcome.SENT:
            self.sent += 1
        elif outcome is JobOutcome.FAILED:
            self.failed += 1
        else:
            self.requeued += 1

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "requeued": self.requeued,
        }
