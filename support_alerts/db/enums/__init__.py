"""Enum definitions for application constants."""

from support_alerts.db.enums.jobs import DEFAULT_JOB_STATUS, JobStatus, JobType
from support_alerts.db.enums.ticketing import (
    ConversationStatus,
    MessageRole,
    SlackThreadState,
)

__all__ = [
    "ConversationStatus",
    "DEFAULT_JOB_STATUS",
    "JobStatus",
    "JobType",
    "MessageRole",
    "SlackThreadState",
]
