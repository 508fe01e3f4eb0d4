"""Tests for job dispatch, retry bookkeeping and the scheduling CLI."""

from datetime import datetime, timezone

import pytest
from click.testing import CliRunner
from sqlalchemy import select

from support_alerts import cli, worker
from support_alerts.db.enums import JobStatus, JobType
from support_alerts.db.models import Job
from support_alerts.jobs import registry
from support_alerts.schemas.notifications import FailedMailbox, JobResult
from support_alerts.services import escalation_service, job_service


def test_registry_covers_every_job_type():
    assert set(registry.JOB_HANDLERS) == {job_type.value for job_type in JobType}


def test_unknown_job_type_raises():
    with pytest.raises(ValueError, match="Unknown job type"):
        registry.resolve_job_handler("send_fax")


@pytest.mark.asyncio
async def test_successful_job_is_completed(db):
    job = job_service.schedule_job(db, JobType.DAILY_REPORT_FANOUT, {})

    await worker.run_job(db, job)

    db.refresh(job)
    assert job.status == JobStatus.COMPLETED.value
    assert job.attempts == 1
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_missing_payload_fails_without_retry(db):
    job = job_service.schedule_job(db, JobType.DAILY_REPORT, {})

    await worker.run_job(db, job)

    db.refresh(job)
    assert job.status == JobStatus.FAILED.value
    assert job.last_error == "Missing mailbox_id in job payload"


@pytest.mark.asyncio
async def test_unknown_mailbox_fails_without_retry(db):
    job = job_service.schedule_job(db, JobType.WEEKLY_REPORT, {"mailbox_id": 404})

    await worker.run_job(db, job)

    db.refresh(job)
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 1
    assert job.last_error == "Mailbox 404 not found"


@pytest.mark.asyncio
async def test_transient_error_returns_job_to_pending(db, monkeypatch):
    async def flaky_handler(db, job):
        raise RuntimeError("database is locked")

    monkeypatch.setitem(registry.JOB_HANDLERS, JobType.VIP_MESSAGE_NOTIFY.value, flaky_handler)
    job = job_service.schedule_job(db, JobType.VIP_MESSAGE_NOTIFY, {"message_id": 1})

    await worker.run_job(db, job)

    db.refresh(job)
    assert job.status == JobStatus.PENDING.value
    assert job.attempts == 1
    assert job.last_error == "database is locked"


@pytest.mark.asyncio
async def test_job_fails_after_max_attempts(db, monkeypatch):
    async def flaky_handler(db, job):
        raise RuntimeError("still down")

    monkeypatch.setitem(registry.JOB_HANDLERS, JobType.VIP_MESSAGE_NOTIFY.value, flaky_handler)
    job = job_service.schedule_job(db, JobType.VIP_MESSAGE_NOTIFY, {"message_id": 1})
    job.max_attempts = 1
    db.commit()

    await worker.run_job(db, job)

    db.refresh(job)
    assert job.status == JobStatus.FAILED.value


@pytest.mark.asyncio
async def test_failed_mailboxes_are_logged_and_the_check_completes(db, monkeypatch, caplog):
    async def partial_failure(db, now=None):
        return JobResult(
            success=False,
            failed_mailboxes=[FailedMailbox(id=1, name="Support", slug="support", error="timeout")],
        )

    monkeypatch.setattr(escalation_service, "check_assigned_ticket_response_times", partial_failure)
    job = job_service.schedule_job(db, JobType.ASSIGNED_TICKET_RESPONSE_CHECK, {})

    with caplog.at_level("WARNING", logger="support_alerts.jobs.utils"):
        await worker.run_job(db, job)

    db.refresh(job)
    assert job.status == JobStatus.COMPLETED.value
    assert job.attempts == 1
    assert job.last_error is None
    assert "failed for mailbox support: timeout" in caplog.text


@pytest.mark.asyncio
async def test_run_pending_jobs_processes_due_jobs(db):
    job = job_service.schedule_job(db, JobType.WEEKLY_REPORT_FANOUT, {})
    job_service.schedule_job(
        db,
        JobType.DAILY_REPORT_FANOUT,
        {},
        run_at=datetime(2099, 1, 1, tzinfo=timezone.utc),
    )

    processed = await worker.run_pending_jobs(batch_size=5)

    assert processed == 1
    db.expire_all()
    assert db.get(Job, job.id).status == JobStatus.COMPLETED.value


def test_schedule_job_once_ignores_duplicates(db):
    first = job_service.schedule_job_once(db, JobType.VIP_RESPONSE_CHECK, {}, idempotency_key="k1")
    second = job_service.schedule_job_once(db, JobType.VIP_RESPONSE_CHECK, {}, idempotency_key="k1")

    assert first is not None
    assert second is None
    assert len(db.scalars(select(Job)).all()) == 1


def test_sweep_idempotency_key_slots():
    now = datetime(2026, 10, 19, 13, 45, tzinfo=timezone.utc)

    assert cli.sweep_idempotency_key(JobType.VIP_RESPONSE_CHECK, "%Y-%m-%dT%H", now) == (
        "vip_response_check:2026-10-19T13"
    )
    assert cli.sweep_idempotency_key(JobType.WEEKLY_REPORT_FANOUT, "%G-W%V", now) == (
        "weekly_report_fanout:2026-W43"
    )


def test_cli_schedule_enqueues_sweep_once(db):
    runner = CliRunner()

    first = runner.invoke(cli.cli, ["schedule", "daily-reports"])
    second = runner.invoke(cli.cli, ["schedule", "daily-reports"])

    assert first.exit_code == 0
    assert "Scheduled daily_report_fanout" in first.output
    assert "already scheduled" in second.output
    jobs = db.scalars(select(Job)).all()
    assert [job.job_type for job in jobs] == [JobType.DAILY_REPORT_FANOUT.value]
