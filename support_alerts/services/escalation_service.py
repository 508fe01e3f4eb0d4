"""Service layer for response-time escalations.

Two fixed policies share one detector: assigned tickets waiting on their
assignee, and unassigned tickets from VIP customers. Both exclude merged and
non-open conversations and measure elapsed time from the last customer email.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy import Select, and_, select
from sqlalchemy.orm import Session

from support_alerts.core.constants import (
    ASSIGNED_RESPONSE_THRESHOLD_HOURS,
    CUSTOMER_VALUE_SCALE,
    UNKNOWN_CUSTOMER,
    UNKNOWN_NAME,
)
from support_alerts.core.structured_logging import build_log_context
from support_alerts.db.enums import ConversationStatus
from support_alerts.db.models import Conversation, Mailbox, PlatformCustomer, User
from support_alerts.schemas.notifications import (
    FailedMailbox,
    JobResult,
    MailboxRunResult,
    SkipReason,
)
from support_alerts.services import alert_dispatch_service
from support_alerts.services.channel_resolver import resolve_channels
from support_alerts.utils.business_calendar import get_mailbox_timezone, is_weekend

logger = logging.getLogger(__name__)


def _plural(count: float, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


# =============================================================================
# Policies
# =============================================================================

@dataclass(frozen=True)
class OverduePolicy:
    """
    One kind of overdue alert.

    ``candidates`` returns ``select(Conversation, <counterpart>)`` with the
    policy-specific joins and filters; the detector adds the shared ones.
    """

    name: str
    threshold_hours: Callable[[Mailbox], float]
    candidates: Callable[[Mailbox], Select]
    counterpart_name: Callable[[Any], str]
    counterpart_email: Callable[[Any], str | None]
    chat_channel: Callable[[Mailbox], str | None]
    title: Callable[[Mailbox], str]
    headline: Callable[[int, Mailbox], str]
    # Prefix shown before the counterpart in each item ("" for none)
    counterpart_label: str
    mention_counterparts: bool
    utm_source: str


def _assigned_candidates(mailbox: Mailbox) -> Select:
    return (
        select(Conversation, User)
        .join(User, User.id == Conversation.assigned_to_id)
        .where(Conversation.assigned_to_id.is_not(None))
    )


def _assigned_headline(count: int, mailbox: Mailbox) -> str:
    return (
        f"{count} assigned tickets have been waiting over "
        f"{ASSIGNED_RESPONSE_THRESHOLD_HOURS} hours without a response"
    )


ASSIGNED_POLICY = OverduePolicy(
    name="assigned",
    threshold_hours=lambda mailbox: ASSIGNED_RESPONSE_THRESHOLD_HOURS,
    candidates=_assigned_candidates,
    counterpart_name=lambda user: (user.display_name or user.email or UNKNOWN_NAME) if user else UNKNOWN_NAME,
    counterpart_email=lambda user: user.email if user else None,
    chat_channel=lambda mailbox: mailbox.slack_alert_channel,
    title=lambda mailbox: f"Assigned Ticket Response Time Alert for {mailbox.name}",
    headline=_assigned_headline,
    counterpart_label="Assigned to",
    mention_counterparts=True,
    utm_source="assigned-ticket-alert",
)


def _vip_candidates(mailbox: Mailbox) -> Select:
    min_value = (mailbox.vip_threshold or 0) * CUSTOMER_VALUE_SCALE
    return (
        select(Conversation, PlatformCustomer)
        .join(
            PlatformCustomer,
            and_(
                PlatformCustomer.email == Conversation.email_from,
                PlatformCustomer.mailbox_id == Conversation.mailbox_id,
            ),
        )
        .where(
            Conversation.assigned_to_id.is_(None),
            PlatformCustomer.value >= min_value,
        )
    )


def _vip_headline(count: int, mailbox: Mailbox) -> str:
    hours = mailbox.vip_expected_response_hours or 0
    return (
        f"{count} {_plural(count, 'VIP', 'VIPs')} {_plural(count, 'has', 'have')} "
        f"been waiting over {hours} {_plural(hours, 'hour', 'hours')}"
    )


VIP_POLICY = OverduePolicy(
    name="vip",
    threshold_hours=lambda mailbox: mailbox.vip_expected_response_hours or 0,
    candidates=_vip_candidates,
    counterpart_name=lambda customer: (customer.name or UNKNOWN_CUSTOMER) if customer else UNKNOWN_CUSTOMER,
    counterpart_email=lambda customer: customer.email if customer else None,
    chat_channel=lambda mailbox: mailbox.vip_channel_id,
    title=lambda mailbox: f"VIP Response Time Alert for {mailbox.name}",
    headline=_vip_headline,
    counterpart_label="",
    mention_counterparts=False,
    utm_source="vip-response-alert",
)


# =============================================================================
# Detection
# =============================================================================

@dataclass(frozen=True)
class OverdueConversation:
    conversation: Conversation
    counterpart_name: str
    counterpart_email: str | None

    @property
    def waiting_since(self) -> datetime:
        return self.conversation.last_user_email_created_at


@dataclass(frozen=True)
class OverdueResult:
    conversations: list[OverdueConversation]

    @property
    def total(self) -> int:
        return len(self.conversations)


def find_overdue_conversations(
    db: Session,
    mailbox: Mailbox,
    policy: OverduePolicy,
    now: datetime,
) -> OverdueResult:
    """
    Return every conversation in the mailbox that is overdue under ``policy``.

    Ordered most overdue first. Not capped; truncation is a rendering concern.
    """
    cutoff = now - timedelta(hours=policy.threshold_hours(mailbox))
    stmt = (
        policy.candidates(mailbox)
        .where(
            Conversation.mailbox_id == mailbox.id,
            Conversation.merged_into_id.is_(None),
            Conversation.status == ConversationStatus.OPEN,
            Conversation.last_user_email_created_at.is_not(None),
            Conversation.last_user_email_created_at < cutoff,
        )
        .order_by(Conversation.last_user_email_created_at.asc(), Conversation.id.asc())
    )
    rows = db.execute(stmt).all()
    return OverdueResult(
        conversations=[
            OverdueConversation(
                conversation=conversation,
                counterpart_name=policy.counterpart_name(counterpart),
                counterpart_email=policy.counterpart_email(counterpart),
            )
            for conversation, counterpart in rows
        ]
    )


# =============================================================================
# Scheduled checks
# =============================================================================

async def _check_mailbox(
    db: Session,
    mailbox: Mailbox,
    policy: OverduePolicy,
    now: datetime,
) -> MailboxRunResult:
    channels = resolve_channels(mailbox, chat_channel=policy.chat_channel(mailbox))
    if not channels.any_enabled:
        return MailboxRunResult(mailbox_id=mailbox.id, skipped=SkipReason.NOT_CONFIGURED)

    overdue = find_overdue_conversations(db, mailbox, policy, now)
    if not overdue.total:
        return MailboxRunResult(mailbox_id=mailbox.id, skipped=SkipReason.NO_OVERDUE)

    logger.info(
        "Found %d overdue %s conversation(s)",
        overdue.total,
        policy.name,
        extra=build_log_context(mailbox_id=mailbox.id),
    )
    chat_status, email_status = await alert_dispatch_service.dispatch_overdue_alert(
        mailbox, policy, overdue, channels, now
    )
    return MailboxRunResult(mailbox_id=mailbox.id, chat=chat_status, email=email_status)


async def _run_policy(
    db: Session,
    mailboxes: list[Mailbox],
    policy: OverduePolicy,
    now: datetime,
    precheck: Callable[[Mailbox], SkipReason | None] | None = None,
) -> JobResult:
    runs: list[MailboxRunResult] = []
    failed: list[FailedMailbox] = []

    for mailbox in mailboxes:
        skip = precheck(mailbox) if precheck else None
        if skip:
            runs.append(MailboxRunResult(mailbox_id=mailbox.id, skipped=skip))
            continue
        try:
            runs.append(await _check_mailbox(db, mailbox, policy, now))
        except Exception as exc:
            entry = FailedMailbox(id=mailbox.id, name=mailbox.name, slug=mailbox.slug, error=str(exc))
            db.rollback()
            logger.exception(
                "%s response check failed",
                policy.name,
                extra=build_log_context(mailbox_id=entry.id),
            )
            failed.append(entry)

    return JobResult.from_runs(runs, failed)


def _assigned_precheck(now: datetime) -> Callable[[Mailbox], SkipReason | None]:
    def precheck(mailbox: Mailbox) -> SkipReason | None:
        if is_weekend(now, get_mailbox_timezone(mailbox)):
            return SkipReason.WEEKEND
        if mailbox.ticket_response_alerts_disabled:
            return SkipReason.DISABLED
        return None

    return precheck


async def check_assigned_ticket_response_times(
    db: Session,
    now: datetime | None = None,
) -> JobResult:
    """
    Alert on assigned tickets with no staff response for 24 hours.

    Suppressed on weekends (mailbox time zone) before any detection query runs.
    """
    now = now or datetime.now(timezone.utc)
    mailboxes = list(db.scalars(select(Mailbox).order_by(Mailbox.id)))
    return await _run_policy(db, mailboxes, ASSIGNED_POLICY, now, _assigned_precheck(now))


async def check_vip_response_times(
    db: Session,
    now: datetime | None = None,
) -> JobResult:
    """Alert on unassigned VIP tickets past the mailbox's expected response time."""
    now = now or datetime.now(timezone.utc)
    mailboxes = list(
        db.scalars(
            select(Mailbox)
            .where(
                Mailbox.vip_threshold.is_not(None),
                Mailbox.vip_expected_response_hours.is_not(None),
            )
            .order_by(Mailbox.id)
        )
    )
    return await _run_policy(db, mailboxes, VIP_POLICY, now)
