"""Digest report job handlers."""

from __future__ import annotations

import logging

from support_alerts.jobs.utils import log_failed_mailboxes, payload_int
from support_alerts.services import report_service

logger = logging.getLogger(__name__)


async def process_daily_report_fanout(db, job) -> None:
    scheduled = report_service.schedule_daily_reports(db)
    logger.info("Daily report fan-out job %s scheduled %s report(s)", job.id, scheduled)


async def process_daily_report(db, job) -> None:
    mailbox_id = payload_int(job, "mailbox_id")
    result = await report_service.generate_mailbox_daily_report(db, mailbox_id)
    logger.info(
        "Daily report for mailbox %s: skipped=%s",
        mailbox_id,
        result.skipped.value if result.skipped else None,
    )
    log_failed_mailboxes(job, result)


async def process_weekly_report_fanout(db, job) -> None:
    scheduled = report_service.schedule_weekly_reports(db)
    logger.info("Weekly report fan-out job %s scheduled %s report(s)", job.id, scheduled)


async def process_weekly_report(db, job) -> None:
    mailbox_id = payload_int(job, "mailbox_id")
    result = await report_service.generate_mailbox_weekly_report(db, mailbox_id)
    logger.info(
        "Weekly report for mailbox %s: skipped=%s",
        mailbox_id,
        result.skipped.value if result.skipped else None,
    )
    log_failed_mailboxes(job, result)
