"""CLI tools for scheduling escalation sweeps and reports.

Intended to be called by an external cron; the worker does the actual work.
"""

import asyncio
from datetime import datetime, timezone

import click

from support_alerts.db.enums import JobType
from support_alerts.db.session import SessionLocal
from support_alerts.services import job_service

# Sweep job -> strftime pattern for its idempotency slot
SWEEPS = {
    "assigned-check": (JobType.ASSIGNED_TICKET_RESPONSE_CHECK, "%Y-%m-%dT%H"),
    "vip-check": (JobType.VIP_RESPONSE_CHECK, "%Y-%m-%dT%H"),
    "daily-reports": (JobType.DAILY_REPORT_FANOUT, "%Y-%m-%d"),
    "weekly-reports": (JobType.WEEKLY_REPORT_FANOUT, "%G-W%V"),
}


def sweep_idempotency_key(job_type: JobType, slot_format: str, now: datetime) -> str:
    return f"{job_type.value}:{now.strftime(slot_format)}"


@click.group()
def cli():
    """Support alerts CLI tools."""
    pass


@cli.command()
@click.argument("sweep", type=click.Choice(sorted(SWEEPS)))
def schedule(sweep: str):
    """
    Enqueue a sweep job for the worker.

    Repeated calls within the same slot (hour for checks, day or ISO week for
    reports) are ignored.

    Example:
        support-alerts schedule assigned-check
    """
    job_type, slot_format = SWEEPS[sweep]
    key = sweep_idempotency_key(job_type, slot_format, datetime.now(timezone.utc))
    db = SessionLocal()
    try:
        job = job_service.schedule_job_once(db, job_type, {}, idempotency_key=key)
        if job:
            click.echo(f"✓ Scheduled {job_type.value} (job {job.id})")
        else:
            click.echo(f"→ {job_type.value} already scheduled for {key}")
    finally:
        db.close()


@cli.command()
@click.option("--batch-size", default=None, type=int, help="Jobs to process (default: WORKER_BATCH_SIZE)")
def run_once(batch_size: int | None):
    """Process a single batch of due jobs and exit."""
    from support_alerts.worker import run_pending_jobs

    processed = asyncio.run(run_pending_jobs(batch_size))
    click.echo(f"✓ Processed {processed} job(s)")


if __name__ == "__main__":
    cli()
