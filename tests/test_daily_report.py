"""Tests for the daily digest."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from support_alerts.db.enums import ConversationStatus, JobType, MessageRole
from support_alerts.db.models import Job
from support_alerts.schemas.notifications import DeliveryStatus, SkipReason
from support_alerts.services import report_service
from support_alerts.services.job_service import NonRetriableJobError
from tests.factories import (
    create_conversation,
    create_customer,
    create_mailbox,
    create_message,
    create_user,
)

NOW = datetime(2026, 10, 14, 15, 0, tzinfo=timezone.utc)


def _seed_day(db, mailbox):
    """
    Two open tickets (one from a VIP) and one closed ticket answered today.

    Reply gaps: VIP ticket 2h, closed ticket 1h.
    """
    agent = create_user(db, mailbox)
    vip = create_customer(db, mailbox, email="vip@example.com", value=500_000)

    vip_ticket = create_conversation(
        db, mailbox, email_from=vip.email, last_user_email_created_at=NOW - timedelta(hours=2)
    )
    question = create_message(db, vip_ticket, created_at=NOW - timedelta(hours=3))
    create_message(
        db,
        vip_ticket,
        role=MessageRole.STAFF,
        user_id=agent.id,
        response_to_id=question.id,
        created_at=NOW - timedelta(hours=1),
    )

    quiet_ticket = create_conversation(
        db, mailbox, email_from="new@example.com", last_user_email_created_at=NOW - timedelta(hours=4)
    )
    # Outside the 24h window
    create_message(
        db, quiet_ticket, role=MessageRole.STAFF, user_id=agent.id, created_at=NOW - timedelta(hours=30)
    )

    closed_ticket = create_conversation(db, mailbox, status=ConversationStatus.CLOSED)
    asked = create_message(db, closed_ticket, created_at=NOW - timedelta(hours=5))
    create_message(
        db,
        closed_ticket,
        role=MessageRole.STAFF,
        user_id=agent.id,
        response_to_id=asked.id,
        created_at=NOW - timedelta(hours=4),
    )


def test_compute_daily_report_lines(db):
    mailbox = create_mailbox(db, vip_threshold=1000, email_escalation_recipients="lead@example.com")
    _seed_day(db, mailbox)

    content = report_service.compute_daily_report(db, mailbox, NOW)

    assert content.lines() == [
        "• Open tickets: 2",
        "• Tickets answered: 2",
        "• Open tickets over $0: 1",
        "• Tickets answered over $0: 1",
        "• Average reply time: 1h 30m",
        "• VIP average reply time: 2h 0m",
        "• Average time existing open tickets have been open: 3h 0m",
    ]


def test_optional_lines_are_omitted_without_data(db):
    mailbox = create_mailbox(db, email_escalation_recipients="lead@example.com")
    create_conversation(db, mailbox)

    content = report_service.compute_daily_report(db, mailbox, NOW)

    assert content.lines() == ["• Open tickets: 1", "• Tickets answered: 0"]
    assert content.vip_avg_reply_time_message is None


def test_vip_average_requires_threshold(db):
    mailbox = create_mailbox(db, email_escalation_recipients="lead@example.com")
    _seed_day(db, mailbox)

    content = report_service.compute_daily_report(db, mailbox, NOW)

    assert content.vip_avg_reply_time_message is None
    assert content.avg_reply_time_message == "• Average reply time: 1h 30m"


def test_merged_conversations_are_not_counted(db):
    mailbox = create_mailbox(db, email_escalation_recipients="lead@example.com")
    target = create_conversation(db, mailbox)
    create_conversation(db, mailbox, merged_into_id=target.id)

    content = report_service.compute_daily_report(db, mailbox, NOW)

    assert content.open_count_message == "• Open tickets: 1"


@pytest.mark.asyncio
async def test_daily_report_emails_recipients(db, fake_email):
    mailbox = create_mailbox(
        db, name="Support", email_escalation_recipients="lead@example.com, ops@example.com"
    )
    _seed_day(db, mailbox)

    result = await report_service.generate_mailbox_daily_report(db, mailbox.id, now=NOW)

    assert result.success
    assert result.mailboxes[0].email == DeliveryStatus.SENT
    assert len(fake_email.sent) == 1
    sent = fake_email.sent[0]
    assert sent["to"] == ["lead@example.com", "ops@example.com"]
    assert sent["subject"] == "Daily summary for Support"
    assert "• Open tickets: 2" in sent["html"]
    assert sent["idempotency_key"] == f"daily-report/{mailbox.id}/2026-10-14"


@pytest.mark.asyncio
async def test_daily_report_skips_without_open_tickets(db, fake_email):
    mailbox = create_mailbox(db, email_escalation_recipients="lead@example.com")
    create_conversation(db, mailbox, status=ConversationStatus.CLOSED)

    result = await report_service.generate_mailbox_daily_report(db, mailbox.id, now=NOW)

    assert result.skipped == SkipReason.NO_OPEN_TICKETS
    assert fake_email.sent == []


@pytest.mark.asyncio
async def test_daily_report_not_configured(db, fake_email):
    mailbox = create_mailbox(db)
    create_conversation(db, mailbox)

    result = await report_service.generate_mailbox_daily_report(db, mailbox.id, now=NOW)

    assert result.skipped == SkipReason.NOT_CONFIGURED
    assert fake_email.sent == []


@pytest.mark.asyncio
async def test_daily_report_email_failure_is_reported(db, fake_email):
    mailbox = create_mailbox(db, email_escalation_recipients="lead@example.com")
    create_conversation(db, mailbox)
    fake_email.error = RuntimeError("Resend API error: 503")

    result = await report_service.generate_mailbox_daily_report(db, mailbox.id, now=NOW)

    assert result.success
    assert result.mailboxes[0].email == DeliveryStatus.FAILED


@pytest.mark.asyncio
async def test_daily_report_aggregation_failure_is_recorded(db, fake_email, monkeypatch):
    mailbox = create_mailbox(db, email_escalation_recipients="lead@example.com")
    create_conversation(db, mailbox)

    def broken_aggregate(db, mailbox, now):
        raise RuntimeError("statement timeout")

    monkeypatch.setattr(report_service, "compute_daily_report", broken_aggregate)

    result = await report_service.generate_mailbox_daily_report(db, mailbox.id, now=NOW)

    assert not result.success
    assert [(failed.slug, failed.error) for failed in result.failed_mailboxes] == [
        (mailbox.slug, "statement timeout")
    ]
    assert fake_email.sent == []


@pytest.mark.asyncio
async def test_daily_report_unknown_mailbox(db):
    with pytest.raises(NonRetriableJobError):
        await report_service.generate_mailbox_daily_report(db, 9999, now=NOW)


def test_schedule_daily_reports_is_idempotent_per_local_day(db):
    configured = create_mailbox(db, email_escalation_recipients="lead@example.com")
    create_mailbox(db, email_escalation_recipients=" , ")
    create_mailbox(db)

    assert report_service.schedule_daily_reports(db, now=NOW) == 1
    assert report_service.schedule_daily_reports(db, now=NOW) == 0

    jobs = db.scalars(select(Job)).all()
    assert len(jobs) == 1
    assert jobs[0].job_type == JobType.DAILY_REPORT.value
    assert jobs[0].payload == {"mailbox_id": configured.id}
    assert jobs[0].idempotency_key == f"daily_report:{configured.id}:2026-10-14"

    assert report_service.schedule_daily_reports(db, now=NOW + timedelta(days=1)) == 1
