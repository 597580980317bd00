"""
Parish message delivery job processor.

Runs from the worker loop or the internal trigger endpoint. One call
processes a single batch:

1. bail out untouched when delivery is disabled,
2. return expired `processing` leases to `pending`,
3. list due pending jobs oldest first and claim each one (compare-and-swap),
4. deliver each claimed job once and record per-recipient outcomes.

Business failures (missing emails, provider errors, missing send rows) end
up in the job and recipient rows and in the summary. Only job-store faults
while listing or claiming escape as exceptions.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from app.config import Settings
from app.db.pool import DatabasePoolManager
from app.features.communications.domain import (
    MISSING_SEND_RECORD,
    DeliveryBatchSummary,
    DeliveryJob,
    DeliveryRecipient,
    JobOutcome,
    RecipientFailure,
)
from app.features.communications.providers import (
    DeliveryProviderRegistry,
    build_provider_registry,
    deliver_parish_message,
    get_delivery_config,
)
from app.features.communications.repository import DeliveryJobRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_BACKOFF_SECONDS = 3600
BASE_BACKOFF_SECONDS = 30
MAX_ERROR_SUMMARY_CHARS = 500


def retry_delay(attempts: int) -> timedelta:
    """Exponential backoff: 60s, 120s, 240s ... capped at one hour."""
    seconds = min(MAX_BACKOFF_SECONDS, (2 ** max(1, attempts)) * BASE_BACKOFF_SECONDS)
    return timedelta(seconds=seconds)


def summarize_failure_errors(failed: Iterable[RecipientFailure]) -> str:
    unique = list(dict.fromkeys(failure.error for failure in failed))
    return "; ".join(unique)[:MAX_ERROR_SUMMARY_CHARS]


def default_worker_id() -> str:
    return f"worker:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class DeliveryJobProcessor:
    """Claims and delivers pending parish message jobs."""

    def __init__(
        self,
        repository: DeliveryJobRepository,
        registry: DeliveryProviderRegistry,
        settings: Settings,
        *,
        worker_id: str | None = None,
    ):
        self.repository = repository
        self.registry = registry
        self.settings = settings
        self.worker_id = worker_id or default_worker_id()

    async def process_pending_jobs(self, limit: int | None = None) -> DeliveryBatchSummary:
        """
        Process one batch of pending jobs.

        Args:
            limit: Maximum jobs to claim; defaults to DELIVERY_JOB_DEFAULT_LIMIT
                and is clamped to 1-50.

        Returns:
            DeliveryBatchSummary with processed/sent/failed/requeued counts.

        Raises:
            DatabaseError: the job store failed while listing or claiming jobs.
        """
        summary = DeliveryBatchSummary()

        config = get_delivery_config(self.settings)
        if not config.enabled:
            logger.info("Parish message delivery disabled; skipping batch")
            return summary

        capped_limit = self.settings.delivery_job_limit(limit)

        await self.repository.requeue_stale_jobs(self.settings.DELIVERY_JOB_LEASE_SECONDS)
        jobs = await self.repository.find_pending_jobs(capped_limit)

        if not jobs:
            logger.debug("No pending delivery jobs")
            return summary

        for job in jobs:
            claimed = await self.repository.claim_job(job.id, self.worker_id)
            if claimed is None:
                logger.debug("Delivery job claimed elsewhere", job_id=job.id)
                continue

            try:
                outcome = await self._process_claimed_job(claimed)
            except Exception as e:
                logger.error(
                    "Delivery job crashed after claim",
                    job_id=claimed.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcome = await self._fail_job(claimed, str(e) or type(e).__name__)
            summary.record(outcome)

        logger.info("Delivery batch completed", worker_id=self.worker_id, **summary.to_dict())
        return summary

    async def _process_claimed_job(self, job: DeliveryJob) -> JobOutcome:
        log = logger.bind(job_id=job.id, send_id=job.send_id, provider=job.provider)

        send = await self.repository.load_send(job.send_id)
        if send is None:
            return await self._fail_job(job, MISSING_SEND_RECORD)

        recipient_ids = await self.repository.load_undelivered_recipient_ids(job.send_id)
        if not recipient_ids:
            await self.repository.mark_job_sent(job)
            return JobOutcome.SENT

        emails = await self.repository.load_recipient_emails(recipient_ids)

        recipients = [
            DeliveryRecipient(clerk_user_id=clerk_user_id, email=emails.get(clerk_user_id))
            for clerk_user_id in recipient_ids
        ]

        try:
            result = await deliver_parish_message(
                self.registry, job.provider, send.subject, send.body, recipients
            )
        except Exception as e:
            # whole-job failure: no recipient is recorded as sent
            log.error("Delivery provider failed", error=str(e), error_type=type(e).__name__)
            message = str(e) or type(e).__name__
            failures = [
                RecipientFailure(clerk_user_id=recipient.clerk_user_id, error=message)
                for recipient in recipients
            ]
            await self.repository.record_recipient_outcomes(job.send_id, [], failures)
            return await self._fail_job(job, message)

        await self.repository.record_recipient_outcomes(job.send_id, result.sent, result.failed)

        if not result.failed:
            await self.repository.mark_job_sent(job)
            log.info("Delivery job delivered", recipients=len(result.sent))
            return JobOutcome.SENT

        log.info(
            "Delivery job had recipient failures",
            sent=len(result.sent),
            failed=len(result.failed),
        )
        return await self._fail_job(job, summarize_failure_errors(result.failed))

    async def _fail_job(self, job: DeliveryJob, error_message: str) -> JobOutcome:
        # the configured ceiling caps whatever the row was enqueued with
        max_attempts = min(job.max_attempts, self.settings.DELIVERY_JOB_MAX_ATTEMPTS)
        attempts = job.attempts + 1
        if attempts < max_attempts:
            retry_at = datetime.now(UTC) + retry_delay(attempts)
            await self.repository.mark_job_failed(job, error_message, retry_at=retry_at)
            return JobOutcome.REQUEUED

        await self.repository.mark_job_failed(job, error_message)
        return JobOutcome.FAILED


async def process_pending_delivery_jobs(
    db: DatabasePoolManager,
    settings: Settings,
    *,
    limit: int | None = None,
    registry: DeliveryProviderRegistry | None = None,
    worker_id: str | None = None,
) -> DeliveryBatchSummary:
    """Process one batch against the given pool with the default provider set."""
    processor = DeliveryJobProcessor(
        DeliveryJobRepository(db),
        registry or build_provider_registry(),
        settings,
        worker_id=worker_id,
    )
    return await processor.process_pending_jobs(limit)
