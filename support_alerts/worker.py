"""
Background worker for processing scheduled jobs.

Usage:
    python -m support_alerts.worker

The worker polls for pending jobs and processes them.
For production, run this as a separate process (e.g., systemd service, Docker container).
"""

import asyncio
import logging

from support_alerts.core.config import settings
from support_alerts.core.monitoring import capture_exception_and_log, setup_sentry
from support_alerts.core.structured_logging import build_log_context
from support_alerts.db.session import SessionLocal
from support_alerts.jobs.registry import resolve_job_handler
from support_alerts.services import job_service
from support_alerts.services.job_service import NonRetriableJobError

logger = logging.getLogger(__name__)


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
        extra=build_log_context(mailbox_id=job.mailbox_id, job_id=job.id, job_type=job.job_type),
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def run_job(db, job) -> None:
    """Run one job and record its outcome on the job row."""
    context = build_log_context(mailbox_id=job.mailbox_id, job_id=job.id, job_type=job.job_type)
    try:
        job_service.mark_job_running(db, job)
        await process_job(db, job)
        job_service.mark_job_completed(db, job)
        logger.info("Job %s completed successfully", job.id, extra=context)
    except NonRetriableJobError as e:
        db.rollback()
        job_service.mark_job_failed(db, job, str(e), retriable=False)
        logger.warning("Job %s failed permanently: %s", job.id, e, extra=context)
    except Exception as e:
        db.rollback()
        job_service.mark_job_failed(db, job, str(e))
        capture_exception_and_log(e, context)


async def run_pending_jobs(batch_size: int | None = None) -> int:
    """Process one batch of due jobs. Returns how many were picked up."""
    with SessionLocal() as db:
        jobs = job_service.get_pending_jobs(db, limit=batch_size or settings.WORKER_BATCH_SIZE)
        if jobs:
            logger.info("Found %s pending jobs", len(jobs))
        for job in jobs:
            await run_job(db, job)
        return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.WORKER_BATCH_SIZE,
    )
    if not settings.email_delivery_configured:
        logger.warning("RESEND_API_KEY / RESEND_FROM_ADDRESS not set - email delivery is disabled")

    while True:
        try:
            await run_pending_jobs()
        except Exception as e:
            logger.error("Error in worker loop: %s", type(e).__name__, exc_info=True)
        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    setup_sentry("support-alerts-worker")
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
