"""Notification schemas - typed content handed to renderers, and job results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# =============================================================================
# Result shapes
# =============================================================================

class SkipReason(str, Enum):
    """Why an entry point intentionally sent nothing."""

    # Configuration skips
    NOT_CONFIGURED = "not_configured"
    DISABLED = "disabled"
    WEEKEND = "weekend"
    # No-op conditions
    NO_MAILBOXES = "no_mailboxes"
    NO_OVERDUE = "no_overdue"
    NO_OPEN_TICKETS = "no_open_tickets"
    NO_STATS = "no_stats"


class DeliveryStatus(str, Enum):
    """Outcome of one channel send."""

    SKIPPED = "skipped"
    SENT = "sent"
    FAILED = "failed"


class FailedMailbox(BaseModel):
    """A mailbox whose detection/aggregation step raised."""
    id: int
    name: str
    slug: str
    error: str


class MailboxRunResult(BaseModel):
    """Per-mailbox outcome of a check or report."""
    mailbox_id: int
    skipped: SkipReason | None = None
    chat: DeliveryStatus = DeliveryStatus.SKIPPED
    email: DeliveryStatus = DeliveryStatus.SKIPPED


class JobResult(BaseModel):
    """
    Observability result returned by every scheduled entry point.

    ``success`` is False only when a mailbox's detection step raised; channel
    delivery failures are reported per mailbox and never flip it.
    """
    success: bool = True
    skipped: SkipReason | None = None
    failed_mailboxes: list[FailedMailbox] = Field(default_factory=list)
    mailboxes: list[MailboxRunResult] = Field(default_factory=list)

    @classmethod
    def from_runs(
        cls,
        runs: list[MailboxRunResult],
        failed: list[FailedMailbox],
    ) -> "JobResult":
        """Fold per-mailbox runs; a shared skip reason is lifted to the top level."""
        skipped = None
        if not runs and not failed:
            skipped = SkipReason.NO_MAILBOXES
        elif runs and not failed:
            reasons = {run.skipped for run in runs}
            if len(reasons) == 1:
                skipped = reasons.pop()
        return cls(success=not failed, skipped=skipped, failed_mailboxes=failed, mailboxes=runs)


# =============================================================================
# Escalation alerts
# =============================================================================

class OverdueTicket(BaseModel):
    """One itemized ticket in an overdue alert."""
    subject: str
    slug: str
    counterpart_name: str  # assignee for assigned alerts, customer for VIP alerts
    time_since_last_reply: str


class OverdueAlertContent(BaseModel):
    """Email content for assigned/VIP overdue alerts."""
    mailbox_name: str
    title: str
    headline: str
    counterpart_label: str  # "Assigned to" or "" for VIP alerts
    overdue_tickets: list[OverdueTicket]
    total_overdue_count: int

    @property
    def remaining_count(self) -> int:
        return max(self.total_overdue_count - len(self.overdue_tickets), 0)


# =============================================================================
# Digest reports
# =============================================================================

class DailyReportContent(BaseModel):
    """Daily digest lines; optional lines are None when they have no data."""
    mailbox_name: str
    open_count_message: str
    answered_count_message: str
    open_tickets_over_zero_message: str | None = None
    answered_tickets_over_zero_message: str | None = None
    avg_reply_time_message: str | None = None
    vip_avg_reply_time_message: str | None = None
    avg_wait_time_message: str | None = None

    def lines(self) -> list[str]:
        return [
            line
            for line in (
                self.open_count_message,
                self.answered_count_message,
                self.open_tickets_over_zero_message,
                self.answered_tickets_over_zero_message,
                self.avg_reply_time_message,
                self.vip_avg_reply_time_message,
                self.avg_wait_time_message,
            )
            if line
        ]


class MemberStats(BaseModel):
    """Reply count for one agent over a report window."""
    id: int
    display_name: str | None = None
    email: str | None = None
    reply_count: int = 0

    @property
    def label(self) -> str:
        return self.display_name or self.email or "Unknown"


class MemberReplyCount(BaseModel):
    name: str
    count: int


class WeeklyReportContent(BaseModel):
    """Weekly digest data, partitioned and ranked."""
    mailbox_name: str
    start_date: datetime
    end_date: datetime
    active_members: list[MemberReplyCount]
    inactive_members: list[str]
    total_tickets_resolved: int
    active_user_count: int


# =============================================================================
# VIP message + knowledge bank notifications
# =============================================================================

class VipMessageEmailContent(BaseModel):
    mailbox_name: str
    customer_name: str
    sender_name: str | None = None
    title: str | None = None
    subject: str
    message_preview: str
    conversation_slug: str


class KnowledgeBankSuggestionContent(BaseModel):
    mailbox_name: str
    suggested_content: str
    is_edit: bool
    original_content: str | None = None

    @property
    def title(self) -> str:
        if self.is_edit:
            return "New suggested edit for the knowledge bank"
        return "New suggested addition to the knowledge bank"


class VipChatStatus(str, Enum):
    """Outcome of the chat branch of a VIP message notification."""

    SKIPPED = "skipped"  # chat configured, nothing to post or update
    NOT_POSTED = "not-posted"  # chat not configured, or the conversation is not eligible
    POSTED = "posted"
    UPDATED = "updated"
    FAILED = "failed"  # the Slack post or update raised


class VipNotificationResult(BaseModel):
    chat: VipChatStatus = VipChatStatus.SKIPPED
    email: DeliveryStatus = DeliveryStatus.SKIPPED
    # Why nothing was sent, for ineligible messages
    reason: str | None = None

    def __str__(self) -> str:
        return f"chat: {self.chat.value}, email: {self.email.value}"
