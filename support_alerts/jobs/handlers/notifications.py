"""Message-created notification job handlers."""

from __future__ import annotations

import logging

from support_alerts.jobs.utils import payload_int
from support_alerts.services import (
    knowledge_bank_notification_service,
    vip_notification_service,
)

logger = logging.getLogger(__name__)


async def process_vip_message_notify(db, job) -> None:
    message_id = payload_int(job, "message_id")
    result = await vip_notification_service.notify_vip_message(db, message_id)
    logger.info("VIP message %s notified (%s)", message_id, result)


async def process_knowledge_bank_suggestion_notify(db, job) -> None:
    suggestion_id = payload_int(job, "suggestion_id")
    await knowledge_bank_notification_service.notify_knowledge_bank_suggestion(db, suggestion_id)
