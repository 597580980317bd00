import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from app.auth.verify import current_user_id
from app.config import Settings
from app.features.communications.domain import (
    DeliveryJob,
    DeliveryJobStatus,
    MessageSend,
    RecipientFailure,
)


@pytest.fixture
def auth_override():
    def _override():
        return "user-123"

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[current_user_id] = auth_override

    return _apply


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


class InMemoryDeliveryStore:
    """
    Job store fake with the DeliveryJobRepository surface.

    Each coroutine yields once before touching state so concurrent
    processors interleave the way they would against a real database.
    """

    def __init__(self):
        self.jobs: dict[str, DeliveryJob] = {}
        self.next_attempt_at: dict[str, datetime] = {}
        self.sends: dict[str, MessageSend] = {}
        self.send_status: dict[str, str] = {}
        self.recipients: dict[str, dict[str, dict]] = {}
        self.emails: dict[str, str | None] = {}
        self.claims: list[tuple[str, str]] = []
        self._claim_lock = asyncio.Lock()
        self._created = 0

    def add_job(
        self,
        job_id: str,
        recipients: dict[str, str | None],
        *,
        provider: str = "mock",
        attempts: int = 0,
        max_attempts: int = 1,
        with_send: bool = True,
        status: DeliveryJobStatus = DeliveryJobStatus.PENDING,
        locked_at: datetime | None = None,
    ) -> DeliveryJob:
        send_id = f"send-{job_id}"
        self._created += 1
        job = DeliveryJob(
            id=job_id,
            send_id=send_id,
            parish_id="parish-1",
            provider=provider,
            status=status,
            attempts=attempts,
            max_attempts=max_attempts,
            created_at=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(seconds=self._created),
            locked_at=locked_at,
            locked_by="old-worker" if locked_at else None,
        )
        self.jobs[job_id] = job
        self.next_attempt_at[job_id] = datetime.now(UTC) - timedelta(seconds=1)
        if with_send:
            self.sends[send_id] = MessageSend(id=send_id, subject="Parish news", body="Mass at 9.")
            self.send_status[send_id] = "queued"
        self.recipients[send_id] = {
            clerk_user_id: {"status": "pending", "error": None} for clerk_user_id in recipients
        }
        self.emails.update(recipients)
        return job

    async def requeue_stale_jobs(self, lease_seconds: int) -> int:
        await asyncio.sleep(0)
        cutoff = datetime.now(UTC) - timedelta(seconds=lease_seconds)
        requeued = 0
        for job_id, job in self.jobs.items():
            if job.status is DeliveryJobStatus.PROCESSING and job.locked_at and job.locked_at < cutoff:
                self.jobs[job_id] = replace(
                    job, status=DeliveryJobStatus.PENDING, locked_at=None, locked_by=None
                )
                requeued += 1
        return requeued

    async def find_pending_jobs(self, limit: int) -> list[DeliveryJob]:
        await asyncio.sleep(0)
        now = datetime.now(UTC)
        due = [
            job
            for job in self.jobs.values()
            if job.status is DeliveryJobStatus.PENDING and self.next_attempt_at[job.id] <= now
        ]
        due.sort(key=lambda job: job.created_at)
        return [replace(job) for job in due[:limit]]

    async def claim_job(self, job_id: str, worker_id: str) -> DeliveryJob | None:
        await asyncio.sleep(0)
        async with self._claim_lock:
            job = self.jobs.get(job_id)
            if job is None or job.status is not DeliveryJobStatus.PENDING:
                return None
            claimed = replace(
                job,
                status=DeliveryJobStatus.PROCESSING,
                locked_at=datetime.now(UTC),
                locked_by=worker_id,
            )
            self.jobs[job_id] = claimed
            self.claims.append((job_id, worker_id))
            return replace(claimed)

    async def load_send(self, send_id: str) -> MessageSend | None:
        await asyncio.sleep(0)
        return self.sends.get(send_id)

    async def load_undelivered_recipient_ids(self, send_id: str) -> list[str]:
        await asyncio.sleep(0)
        return sorted(
            clerk_user_id
            for clerk_user_id, row in self.recipients.get(send_id, {}).items()
            if row["status"] != "sent"
        )

    async def load_recipient_emails(self, clerk_user_ids: list[str]) -> dict[str, str | None]:
        await asyncio.sleep(0)
        return {
            clerk_user_id: self.emails[clerk_user_id]
            for clerk_user_id in clerk_user_ids
            if clerk_user_id in self.emails
        }

    async def record_recipient_outcomes(
        self, send_id: str, sent_ids: list[str], failures: list[RecipientFailure]
    ) -> None:
        await asyncio.sleep(0)
        for clerk_user_id in sent_ids:
            self.recipients[send_id][clerk_user_id] = {"status": "sent", "error": None}
        for failure in failures:
            self.recipients[send_id][failure.clerk_user_id] = {
                "status": "failed",
                "error": failure.error,
            }

    async def mark_job_sent(self, job: DeliveryJob) -> None:
        await asyncio.sleep(0)
        self.send_status[job.send_id] = "sent"
        self.jobs[job.id] = replace(
            self.jobs[job.id],
            status=DeliveryJobStatus.SENT,
            attempts=job.attempts + 1,
            last_error=None,
            locked_at=None,
            locked_by=None,
        )

    async def mark_job_failed(
        self, job: DeliveryJob, error_message: str, retry_at: datetime | None = None
    ) -> None:
        await asyncio.sleep(0)
        self.send_status[job.send_id] = "queued" if retry_at else "failed"
        self.next_attempt_at[job.id] = retry_at or datetime.now(UTC)
        self.jobs[job.id] = replace(
            self.jobs[job.id],
            status=DeliveryJobStatus.PENDING if retry_at else DeliveryJobStatus.FAILED,
            attempts=job.attempts + 1,
            last_error=(error_message or "")[:500],
            locked_at=None,
            locked_by=None,
        )

    def recipient_status(self, job_id: str) -> dict[str, dict]:
        return self.recipients[self.jobs[job_id].send_id]


@pytest.fixture
def delivery_store():
    return InMemoryDeliveryStore()
