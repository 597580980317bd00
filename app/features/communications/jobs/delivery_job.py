"""
Parish message delivery worker job.

Runs the delivery processor on a fixed interval inside the worker service.
The worker owns its own database pool; nothing here touches the API
process's app.state.
"""

import asyncio
from datetime import UTC, datetime

from app.config import Settings, get_settings
from app.db.pool import DatabasePoolManager
from app.features.communications.domain import DeliveryBatchSummary
from app.features.communications.processor import DeliveryJobProcessor
from app.features.communications.providers import build_provider_registry
from app.features.communications.repository import DeliveryJobRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 60


class DeliveryWorkerMetrics:
    """Running totals across scheduler cycles."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.started_at = datetime.now(UTC)
        self.cycles = 0
        self.cycle_errors = 0
        self.processed = 0
        self.sent = 0
        self.failed = 0
        self.requeued = 0

    def record_cycle(self, summary: DeliveryBatchSummary):
        self.cycles += 1
        self.processed += summary.processed
        self.sent += summary.sent
        self.failed += summary.failed
        self.requeued += summary.requeued

    def record_error(self, error: str):
        self.cycles += 1
        self.cycle_errors += 1
        logger.error("Delivery worker cycle failed", error=error, job_run="parish_delivery")

    def to_dict(self) -> dict:
        return {
            "job_run": "parish_delivery",
            "started_at": self.started_at.isoformat(),
            "cycles": self.cycles,
            "cycle_errors": self.cycle_errors,
            "processed": self.processed,
            "sent": self.sent,
            "failed": self.failed,
            "requeued": self.requeued,
        }


class DeliveryWorker:
    """Owns a pool and processor for the lifetime of the worker process."""

    def __init__(self, settings: Settings, db: DatabasePoolManager | None = None):
        self.settings = settings
        self.db = db or DatabasePoolManager(settings)
        self.processor = DeliveryJobProcessor(
            DeliveryJobRepository(self.db),
            build_provider_registry(),
            settings,
        )
        self.metrics = DeliveryWorkerMetrics()
        self.is_running = False

    async def run_once(self, limit: int | None = None) -> DeliveryBatchSummary:
        if self.is_running:
            logger.warning("Delivery worker already running, skipping this iteration")
            return DeliveryBatchSummary()

        self.is_running = True
        try:
            if not self.db.initialized:
                await self.db.initialize()
            summary = await self.processor.process_pending_jobs(limit)
            self.metrics.record_cycle(summary)
            return summary
        finally:
            self.is_running = False

    async def run_forever(self) -> None:
        interval = self.settings.DELIVERY_WORKER_INTERVAL_SECONDS
        logger.info(
            "Starting parish delivery scheduler",
            interval_seconds=interval,
            worker_id=self.processor.worker_id,
            delivery_mode=self.settings.PARISH_COMMUNICATIONS_DELIVERY_MODE,
        )

        while True:
            try:
                await self.run_once()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                logger.info("Parish delivery scheduler stopped", **self.metrics.to_dict())
                raise
            except Exception as e:
                self.metrics.record_error(f"{type(e).__name__}: {e}")
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)

    async def close(self) -> None:
        await self.db.close()


async def start_parish_delivery_scheduler() -> None:
    """Worker entry point: process pending jobs every DELIVERY_WORKER_INTERVAL_SECONDS."""
    worker = DeliveryWorker(get_settings())
    try:
        await worker.run_forever()
    finally:
        await worker.close()


async def run_parish_delivery_once() -> None:
    """Worker entry point for cron-style invocations: one batch, then exit."""
    worker = DeliveryWorker(get_settings())
    try:
        summary = await worker.run_once()
        logger.info("Parish delivery run completed", **summary.to_dict())
    finally:
        await worker.close()
