"""Job service - background job scheduling and bookkeeping."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from support_alerts.db.enums import JobStatus, JobType
from support_alerts.db.models import Job


class NonRetriableJobError(Exception):
    """The job can never succeed (e.g. its target row does not exist)."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def schedule_job(
    db: Session,
    job_type: JobType,
    payload: dict,
    mailbox_id: int | None = None,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    If idempotency_key is provided, duplicate jobs with same key will fail
    with IntegrityError (caller should catch and handle).
    """
    job = Job(
        mailbox_id=mailbox_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or _utcnow(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def schedule_job_once(
    db: Session,
    job_type: JobType,
    payload: dict,
    idempotency_key: str,
    mailbox_id: int | None = None,
) -> Job | None:
    """Schedule a job unless one with the same idempotency key already exists."""
    existing = db.scalar(select(Job).where(Job.idempotency_key == idempotency_key))
    if existing:
        return None
    try:
        return schedule_job(
            db,
            job_type,
            payload,
            mailbox_id=mailbox_id,
            idempotency_key=idempotency_key,
        )
    except IntegrityError:
        db.rollback()
        return None


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    stmt = (
        select(Job)
        .where(Job.status == JobStatus.PENDING.value, Job.run_at <= _utcnow())
        .order_by(Job.run_at, Job.id)
        .limit(limit)
    )
    return list(db.scalars(stmt))


def mark_job_running(db: Session, job: Job) -> Job:
    """Mark a job as running (increment attempts)."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    db.commit()
    db.refresh(job)
    return job


def mark_job_completed(db: Session, job: Job) -> Job:
    """Mark a job as completed."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = _utcnow()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str, retriable: bool = True) -> Job:
    """
    Mark a job as failed.

    If retriable and attempts < max_attempts, reset to pending for retry.
    """
    job.last_error = error
    if retriable and job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job
