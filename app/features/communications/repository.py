"""
Persistence layer for parish message delivery.

Job lifecycle updates and recipient outcome writes live here so the
processor can stay focused on orchestration. The claim is a conditional
UPDATE guarded by `status = 'pending'`, which makes it a compare-and-swap:
of any number of concurrent claimers, exactly one gets the row back.
"""

from collections.abc import Iterable
from datetime import datetime

from app.db.helpers import DatabaseError, execute_query, execute_transaction, fetch_all, fetch_one
from app.db.pool import DatabasePoolManager
from app.features.communications.domain import (
    DeliveryJob,
    DeliveryJobStatus,
    MessageSend,
    RecipientFailure,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DeliveryJobRepositoryError(DatabaseError):
    """More specific exception for delivery job persistence failures."""


class DeliveryJobRepository:
    """Persistence helpers backing the delivery job processor."""

    JOB_SELECT_COLUMNS = """
        id, send_id, parish_id, provider, status, attempts, max_attempts,
        created_at, locked_at, locked_by, last_error
    """

    def __init__(self, db: DatabasePoolManager):
        self.db = db

    @classmethod
    def _row_to_job(cls, row: dict | None) -> DeliveryJob | None:
        if not row:
            return None

        return DeliveryJob(
            id=str(row["id"]),
            send_id=str(row["send_id"]),
            parish_id=str(row["parish_id"]),
            provider=row["provider"],
            status=DeliveryJobStatus(row["status"]),
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            created_at=row.get("created_at"),
            locked_at=row.get("locked_at"),
            locked_by=row.get("locked_by"),
            last_error=row.get("last_error"),
        )

    async def enqueue_job(
        self, parish_id: str, send_id: str, provider: str, max_attempts: int
    ) -> DeliveryJob:
        """Insert a pending job that is due immediately."""
        query = f"""
            INSERT INTO parish_message_delivery_jobs (
                parish_id, send_id, provider, status, attempts, max_attempts, next_attempt_at
            )
            VALUES (%s, %s, %s, 'pending', 0, %s, NOW())
            RETURNING {self.JOB_SELECT_COLUMNS}
        """

        row = await fetch_one(self.db, query, (parish_id, send_id, provider, max_attempts))
        if not row:
            raise DeliveryJobRepositoryError("Failed to enqueue delivery job", operation="enqueue_job")

        logger.info("Delivery job enqueued", parish_id=parish_id, send_id=send_id, provider=provider)
        return self._row_to_job(row)

    async def requeue_stale_jobs(self, lease_seconds: int) -> int:
        """Return jobs whose processing lease expired to the pending pool."""
        query = """
            UPDATE parish_message_delivery_jobs
            SET status = 'pending',
                locked_at = NULL,
                locked_by = NULL,
                updated_at = NOW()
            WHERE status = 'processing'
              AND locked_at < NOW() - make_interval(secs => %s)
        """

        requeued = await execute_query(self.db, query, (lease_seconds,))
        if requeued:
            logger.warning("Requeued delivery jobs with expired leases", count=requeued)
        return requeued

    async def find_pending_jobs(self, limit: int) -> list[DeliveryJob]:
        """Due pending jobs, oldest first."""
        query = f"""
            SELECT {self.JOB_SELECT_COLUMNS}
            FROM parish_message_delivery_jobs
            WHERE status = 'pending'
              AND next_attempt_at <= NOW()
            ORDER BY created_at ASC
            LIMIT %s
        """

        rows = await fetch_all(self.db, query, (limit,))
        return [self._row_to_job(row) for row in rows]

    async def claim_job(self, job_id: str, worker_id: str) -> DeliveryJob | None:
        """Move a job from pending to processing; None if another worker got there first."""
        query = f"""
            UPDATE parish_message_delivery_jobs
            SET status = 'processing',
                locked_at = NOW(),
                locked_by = %s,
                updated_at = NOW()
            WHERE id = %s
              AND status = 'pending'
            RETURNING {self.JOB_SELECT_COLUMNS}
        """

        row = await fetch_one(self.db, query, (worker_id, job_id))
        return self._row_to_job(row)

    async def load_send(self, send_id: str) -> MessageSend | None:
        row = await fetch_one(
            self.db,
            "SELECT id, subject, body FROM parish_message_sends WHERE id = %s",
            (send_id,),
        )
        if not row:
            return None
        return MessageSend(id=str(row["id"]), subject=row["subject"], body=row["body"])

    async def load_undelivered_recipient_ids(self, send_id: str) -> list[str]:
        """Recipients still owed this message; already-sent ones are never resent."""
        query = """
            SELECT clerk_user_id
            FROM parish_message_recipients
            WHERE send_id = %s
              AND delivery_status IS DISTINCT FROM 'sent'
            ORDER BY clerk_user_id
        """

        rows = await fetch_all(self.db, query, (send_id,))
        return [row["clerk_user_id"] for row in rows]

    async def load_recipient_emails(self, clerk_user_ids: list[str]) -> dict[str, str | None]:
        if not clerk_user_ids:
            return {}

        rows = await fetch_all(
            self.db,
            "SELECT clerk_user_id, email FROM user_profiles WHERE clerk_user_id = ANY(%s)",
            (clerk_user_ids,),
        )
        return {row["clerk_user_id"]: row.get("email") for row in rows}

    async def record_recipient_outcomes(
        self, send_id: str, sent_ids: list[str], failures: Iterable[RecipientFailure]
    ) -> None:
        queries: list[tuple] = []
        if sent_ids:
            queries.append(
                (
                    """
                    UPDATE parish_message_recipients
                    SET delivery_status = 'sent',
                        delivery_attempted_at = NOW(),
                        delivery_error = NULL
                    WHERE send_id = %s AND clerk_user_id = ANY(%s)
                    """,
                    (send_id, sent_ids),
                )
            )

        for failure in failures:
            queries.append(
                (
                    """
                    UPDATE parish_message_recipients
                    SET delivery_status = 'failed',
                        delivery_attempted_at = NOW(),
                        delivery_error = %s
                    WHERE send_id = %s AND clerk_user_id = %s
                    """,
                    (failure.error, send_id, failure.clerk_user_id),
                )
            )

        if queries:
            await execute_transaction(self.db, queries)

    async def mark_job_sent(self, job: DeliveryJob) -> None:
        await execute_transaction(
            self.db,
            [
                (
                    "UPDATE parish_message_sends SET delivery_status = 'sent' WHERE id = %s",
                    (job.send_id,),
                ),
                (
                    """
                    UPDATE parish_message_delivery_jobs
                    SET status = 'sent',
                        attempts = %s,
                        last_error = NULL,
                        locked_at = NULL,
                        locked_by = NULL,
                        updated_at = NOW()
                    WHERE id = %s
                    """,
                    (job.attempts + 1, job.id),
                ),
            ],
        )
        logger.info("Delivery job sent", job_id=job.id, send_id=job.send_id)

    async def mark_job_failed(
        self, job: DeliveryJob, error_message: str, retry_at: datetime | None = None
    ) -> None:
        """Fail the job, or put it back to pending for `retry_at` when given."""
        truncated_error = (error_message or "")[:500]
        job_status = DeliveryJobStatus.PENDING if retry_at else DeliveryJobStatus.FAILED
        send_status = "queued" if retry_at else "failed"

        await execute_transaction(
            self.db,
            [
                (
                    "UPDATE parish_message_sends SET delivery_status = %s WHERE id = %s",
                    (send_status, job.send_id),
                ),
                (
                    """
                    UPDATE parish_message_delivery_jobs
                    SET status = %s,
                        attempts = %s,
                        last_error = %s,
                        next_attempt_at = COALESCE(%s::timestamptz, NOW()),
                        locked_at = NULL,
                        locked_by = NULL,
                        updated_at = NOW()
                    WHERE id = %s
                    """,
                    (job_status.value, job.attempts + 1, truncated_error, retry_at, job.id),
                ),
            ],
        )
        logger.warning(
            "Delivery job failed",
            job_id=job.id,
            error=truncated_error,
            requeued=retry_at is not None,
        )
