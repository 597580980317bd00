"""
Background worker entrypoint.

    python -m app.jobs.worker parish_delivery        # poll on an interval
    python -m app.jobs.worker parish_delivery_once   # one batch, then exit

The job name may also come from WORKER_JOB; parish_delivery is the default.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import get_settings
from app.features.communications.jobs.delivery_job import (
    run_parish_delivery_once,
    start_parish_delivery_scheduler,
)
from app.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

DEFAULT_JOB = "parish_delivery"

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "parish_delivery": start_parish_delivery_scheduler,
    "parish_delivery_once": run_parish_delivery_once,
}


def _resolve_job_name(argv: list[str] | None = None) -> str:
    args = sys.argv[1:] if argv is None else argv
    raw = args[0] if args else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Look up a registered job and await it until it returns or is cancelled."""
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        raise ValueError(
            f"Unknown worker job '{name}'. Available jobs: {', '.join(sorted(JOB_REGISTRY))}"
        )

    logger.info("Starting background worker", job=name, pid=os.getpid())
    await job()
    logger.info("Background worker finished", job=name)


def main() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json_logs=settings.environment != "development")

    try:
        asyncio.run(run_worker(_resolve_job_name()))
    except KeyboardInterrupt:
        logger.info("Background worker interrupted")


if __name__ == "__main__":
    main()
