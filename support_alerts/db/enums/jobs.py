"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    ASSIGNED_TICKET_RESPONSE_CHECK = "assigned_ticket_response_check"
    VIP_RESPONSE_CHECK = "vip_response_check"
    DAILY_REPORT_FANOUT = "daily_report_fanout"  # Enqueue one DAILY_REPORT per mailbox
    DAILY_REPORT = "daily_report"
    WEEKLY_REPORT_FANOUT = "weekly_report_fanout"  # Enqueue one WEEKLY_REPORT per mailbox
    WEEKLY_REPORT = "weekly_report"
    VIP_MESSAGE_NOTIFY = "vip_message_notify"  # Published when a message is created
    KNOWLEDGE_BANK_SUGGESTION_NOTIFY = "knowledge_bank_suggestion_notify"


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULT_JOB_STATUS = JobStatus.PENDING
