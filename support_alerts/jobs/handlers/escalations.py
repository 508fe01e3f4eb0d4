"""Response-time escalation job handlers."""

from __future__ import annotations

import logging

from support_alerts.jobs.utils import log_failed_mailboxes
from support_alerts.services import escalation_service

logger = logging.getLogger(__name__)


async def process_assigned_ticket_response_check(db, job) -> None:
    """Alert on assigned tickets waiting over 24 hours."""
    logger.info("Processing assigned ticket response check job %s", job.id)
    result = await escalation_service.check_assigned_ticket_response_times(db)
    logger.info(
        "Assigned ticket response check complete (mailboxes=%s skipped=%s failed=%s)",
        len(result.mailboxes),
        result.skipped.value if result.skipped else None,
        len(result.failed_mailboxes),
    )
    log_failed_mailboxes(job, result)


async def process_vip_response_check(db, job) -> None:
    """Alert on VIP tickets past the expected response time."""
    logger.info("Processing VIP response check job %s", job.id)
    result = await escalation_service.check_vip_response_times(db)
    logger.info(
        "VIP response check complete (mailboxes=%s skipped=%s failed=%s)",
        len(result.mailboxes),
        result.skipped.value if result.skipped else None,
        len(result.failed_mailboxes),
    )
    log_failed_mailboxes(job, result)
