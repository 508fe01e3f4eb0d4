"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from support_alerts.db.enums import JobType
from support_alerts.jobs.handlers import escalations, notifications, reports

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.ASSIGNED_TICKET_RESPONSE_CHECK.value: escalations.process_assigned_ticket_response_check,
    JobType.VIP_RESPONSE_CHECK.value: escalations.process_vip_response_check,
    JobType.DAILY_REPORT_FANOUT.value: reports.process_daily_report_fanout,
    JobType.DAILY_REPORT.value: reports.process_daily_report,
    JobType.WEEKLY_REPORT_FANOUT.value: reports.process_weekly_report_fanout,
    JobType.WEEKLY_REPORT.value: reports.process_weekly_report,
    JobType.VIP_MESSAGE_NOTIFY.value: notifications.process_vip_message_notify,
    JobType.KNOWLEDGE_BANK_SUGGESTION_NOTIFY.value: notifications.process_knowledge_bank_suggestion_notify,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
