"""Daily and weekly digest reports.

Daily digests go to the mailbox's escalation email recipients; weekly digests
go to the Slack alert channel and email. Each delivery channel runs inside its
own failure boundary.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, aliased

from support_alerts.core.constants import (
    CUSTOMER_VALUE_SCALE,
    DAILY_REPORT_WINDOW_HOURS,
    UNKNOWN_NAME,
)
from support_alerts.core.monitoring import capture_exception_and_log
from support_alerts.core.structured_logging import build_log_context
from support_alerts.db.enums import ConversationStatus, JobType, MessageRole
from support_alerts.db.models import (
    Conversation,
    ConversationMessage,
    Mailbox,
    PlatformCustomer,
    User,
)
from support_alerts.schemas.notifications import (
    DailyReportContent,
    DeliveryStatus,
    FailedMailbox,
    JobResult,
    MailboxRunResult,
    MemberReplyCount,
    MemberStats,
    SkipReason,
    WeeklyReportContent,
)
from support_alerts.services import email_templates, email_transport, job_service, slack_client
from support_alerts.services.channel_resolver import parse_recipients, resolve_channels
from support_alerts.types import SlackBlocks
from support_alerts.utils.business_calendar import (
    get_mailbox_timezone,
    local_date,
    previous_week_range,
)
from support_alerts.utils.durations import format_hours_minutes

logger = logging.getLogger(__name__)


def _get_mailbox(db: Session, mailbox_id: int) -> Mailbox:
    mailbox = db.get(Mailbox, mailbox_id)
    if not mailbox:
        raise job_service.NonRetriableJobError(f"Mailbox {mailbox_id} not found")
    return mailbox


def _aggregation_failed(db: Session, mailbox: Mailbox, exc: Exception) -> JobResult:
    """Record a digest whose aggregation step raised; the job itself still completes."""
    failed = FailedMailbox(id=mailbox.id, name=mailbox.name, slug=mailbox.slug, error=str(exc))
    db.rollback()
    logger.exception("Report aggregation failed", extra=build_log_context(mailbox_id=failed.id))
    return JobResult.from_runs([], [failed])


def _customer_join():
    return and_(
        PlatformCustomer.email == Conversation.email_from,
        PlatformCustomer.mailbox_id == Conversation.mailbox_id,
    )


# =============================================================================
# Daily report
# =============================================================================

def _open_conversations_filter(mailbox: Mailbox):
    return and_(
        Conversation.mailbox_id == mailbox.id,
        Conversation.status == ConversationStatus.OPEN,
        Conversation.merged_into_id.is_(None),
    )


def _staff_replies_in_window(mailbox: Mailbox, start: datetime, end: datetime):
    return and_(
        Conversation.mailbox_id == mailbox.id,
        ConversationMessage.role == MessageRole.STAFF,
        ConversationMessage.created_at > start,
        ConversationMessage.created_at < end,
    )


def _average_reply_seconds(
    db: Session,
    mailbox: Mailbox,
    start: datetime,
    end: datetime,
    min_customer_value: int | None = None,
) -> int | None:
    """Mean seconds between a staff reply in the window and the customer message it answers."""
    customer_message = aliased(ConversationMessage)
    stmt = (
        select(ConversationMessage.created_at, customer_message.created_at)
        .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
        .join(
            customer_message,
            and_(
                customer_message.id == ConversationMessage.response_to_id,
                customer_message.role == MessageRole.USER,
            ),
        )
        .where(_staff_replies_in_window(mailbox, start, end))
    )
    if min_customer_value is not None:
        stmt = stmt.join(PlatformCustomer, _customer_join()).where(
            PlatformCustomer.value >= min_customer_value
        )

    gaps = [(replied_at - asked_at).total_seconds() for replied_at, asked_at in db.execute(stmt)]
    if not gaps:
        return None
    return round(sum(gaps) / len(gaps))


def compute_daily_report(
    db: Session,
    mailbox: Mailbox,
    now: datetime,
) -> DailyReportContent | None:
    """Aggregate the last 24 hours. Returns None when there are no open tickets."""
    end = now
    start = end - timedelta(hours=DAILY_REPORT_WINDOW_HOURS)

    open_count = db.scalar(
        select(func.count(Conversation.id)).where(_open_conversations_filter(mailbox))
    ) or 0
    if open_count == 0:
        return None

    answered_count = db.scalar(
        select(func.count(func.distinct(Conversation.id)))
        .select_from(ConversationMessage)
        .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
        .where(
            _staff_replies_in_window(mailbox, start, end),
            Conversation.merged_into_id.is_(None),
        )
    ) or 0

    open_over_zero = db.scalar(
        select(func.count(Conversation.id))
        .select_from(Conversation)
        .join(PlatformCustomer, _customer_join())
        .where(_open_conversations_filter(mailbox), PlatformCustomer.value > 0)
    ) or 0

    answered_over_zero = db.scalar(
        select(func.count(func.distinct(Conversation.id)))
        .select_from(ConversationMessage)
        .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
        .join(PlatformCustomer, _customer_join())
        .where(
            _staff_replies_in_window(mailbox, start, end),
            Conversation.merged_into_id.is_(None),
            PlatformCustomer.value > 0,
        )
    ) or 0

    avg_reply = _average_reply_seconds(db, mailbox, start, end)

    vip_avg_reply = None
    if mailbox.vip_threshold:
        vip_avg_reply = _average_reply_seconds(
            db, mailbox, start, end, min_customer_value=mailbox.vip_threshold * CUSTOMER_VALUE_SCALE
        )

    waiting_since = db.scalars(
        select(Conversation.last_user_email_created_at).where(
            _open_conversations_filter(mailbox),
            Conversation.last_user_email_created_at.is_not(None),
        )
    ).all()
    avg_wait = None
    if waiting_since:
        avg_wait = round(
            sum((end - moment).total_seconds() for moment in waiting_since) / len(waiting_since)
        )

    return DailyReportContent(
        mailbox_name=mailbox.name,
        open_count_message=f"• Open tickets: {open_count:,}",
        answered_count_message=f"• Tickets answered: {answered_count:,}",
        open_tickets_over_zero_message=(
            f"• Open tickets over $0: {open_over_zero:,}" if open_over_zero else None
        ),
        answered_tickets_over_zero_message=(
            f"• Tickets answered over $0: {answered_over_zero:,}" if answered_over_zero else None
        ),
        avg_reply_time_message=(
            f"• Average reply time: {format_hours_minutes(avg_reply)}" if avg_reply else None
        ),
        vip_avg_reply_time_message=(
            f"• VIP average reply time: {format_hours_minutes(vip_avg_reply)}"
            if vip_avg_reply
            else None
        ),
        avg_wait_time_message=(
            f"• Average time existing open tickets have been open: {format_hours_minutes(avg_wait)}"
            if avg_wait
            else None
        ),
    )


async def generate_mailbox_daily_report(
    db: Session,
    mailbox_id: int,
    now: datetime | None = None,
) -> JobResult:
    """Email the daily digest for one mailbox."""
    now = now or datetime.now(timezone.utc)
    mailbox = _get_mailbox(db, mailbox_id)

    channels = resolve_channels(mailbox, chat_channel=None)
    if not channels.email_enabled:
        run = MailboxRunResult(mailbox_id=mailbox.id, skipped=SkipReason.NOT_CONFIGURED)
        return JobResult.from_runs([run], [])

    try:
        content = compute_daily_report(db, mailbox, now)
    except Exception as exc:
        return _aggregation_failed(db, mailbox, exc)
    if content is None:
        logger.info("Daily report skipped: no open tickets", extra=build_log_context(mailbox_id=mailbox.id))
        run = MailboxRunResult(mailbox_id=mailbox.id, skipped=SkipReason.NO_OPEN_TICKETS)
        return JobResult.from_runs([run], [])

    day = local_date(now, get_mailbox_timezone(mailbox)).isoformat()
    email_status = DeliveryStatus.SENT
    try:
        await email_transport.send_email(
            to=channels.recipients,
            subject=f"Daily summary for {mailbox.name}",
            html=email_templates.render_daily_report(content),
            idempotency_key=f"daily-report/{mailbox.id}/{day}",
        )
    except Exception as exc:
        email_status = DeliveryStatus.FAILED
        capture_exception_and_log(exc, build_log_context(mailbox_id=mailbox.id, channel="email"))

    run = MailboxRunResult(mailbox_id=mailbox.id, email=email_status)
    return JobResult.from_runs([run], [])


# =============================================================================
# Weekly report
# =============================================================================

def get_member_stats(
    db: Session,
    mailbox: Mailbox,
    start: datetime,
    end: datetime,
) -> list[MemberStats]:
    """Staff reply counts per agent of the mailbox over ``[start, end]``, zeros included."""
    reply_counts = (
        select(
            ConversationMessage.user_id.label("user_id"),
            func.count(ConversationMessage.id).label("reply_count"),
        )
        .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
        .where(
            Conversation.mailbox_id == mailbox.id,
            ConversationMessage.role == MessageRole.STAFF,
            ConversationMessage.user_id.is_not(None),
            ConversationMessage.created_at >= start,
            ConversationMessage.created_at <= end,
        )
        .group_by(ConversationMessage.user_id)
        .subquery()
    )
    stmt = (
        select(User, func.coalesce(reply_counts.c.reply_count, 0))
        .outerjoin(reply_counts, reply_counts.c.user_id == User.id)
        .where(User.mailbox_id == mailbox.id)
        .order_by(User.id)
    )
    return [
        MemberStats(
            id=user.id,
            display_name=user.display_name,
            email=user.email,
            reply_count=int(count),
        )
        for user, count in db.execute(stmt)
    ]


def rank_members(stats: list[MemberStats]) -> tuple[list[MemberStats], list[MemberStats]]:
    """Split into (active by reply count descending, inactive)."""
    active = sorted(
        (member for member in stats if member.reply_count > 0),
        key=lambda member: member.reply_count,
        reverse=True,
    )
    inactive = [member for member in stats if member.reply_count == 0]
    return active, inactive


def build_weekly_report(
    mailbox: Mailbox,
    stats: list[MemberStats],
    start: datetime,
    end: datetime,
) -> WeeklyReportContent:
    active, inactive = rank_members(stats)
    return WeeklyReportContent(
        mailbox_name=mailbox.name,
        start_date=start,
        end_date=end,
        active_members=[
            MemberReplyCount(name=member.label, count=member.reply_count) for member in active
        ],
        inactive_members=[member.label for member in inactive],
        total_tickets_resolved=sum(member.reply_count for member in stats),
        active_user_count=len(active),
    )


def week_label(start: datetime, end: datetime) -> str:
    return f"Week of {start.date().isoformat()} to {end.date().isoformat()}"


def build_weekly_slack_blocks(
    mailbox: Mailbox,
    stats: list[MemberStats],
    slack_users_by_email: dict[str, str],
) -> SlackBlocks:
    active, inactive = rank_members(stats)
    total = sum(member.reply_count for member in stats)

    def name(member: MemberStats) -> str:
        return slack_client.mention_or_name(
            slack_users_by_email, member.email, member.display_name or member.email or UNKNOWN_NAME
        )

    blocks: SlackBlocks = [
        {
            "type": "section",
            "text": {
                "type": "plain_text",
                "text": f"Last week in the {mailbox.name} mailbox:",
                "emoji": True,
            },
        }
    ]
    if active:
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "*Team members:*"}})
        lines = [f"• {name(member)}: {member.reply_count:,}" for member in active]
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}})
    if inactive:
        names = ", ".join(name(member) for member in inactive)
        blocks.append(
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*No tickets answered:* {names}"}}
        )

    blocks.append({"type": "divider"})

    if total > 0:
        people = "person" if len(active) == 1 else "people"
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Total replies:*\n{total:,} from {len(active)} {people}",
                },
            }
        )
    return blocks


async def generate_mailbox_weekly_report(
    db: Session,
    mailbox_id: int,
    now: datetime | None = None,
) -> JobResult:
    """Post and email last week's per-agent reply summary for one mailbox."""
    now = now or datetime.now(timezone.utc)
    mailbox = _get_mailbox(db, mailbox_id)

    channels = resolve_channels(mailbox, chat_channel=mailbox.slack_alert_channel)
    if not channels.any_enabled:
        run = MailboxRunResult(mailbox_id=mailbox.id, skipped=SkipReason.NOT_CONFIGURED)
        return JobResult.from_runs([run], [])

    tz = get_mailbox_timezone(mailbox)
    start, end = previous_week_range(now, tz)
    try:
        stats = get_member_stats(db, mailbox, start, end)
    except Exception as exc:
        return _aggregation_failed(db, mailbox, exc)
    if not stats:
        logger.info("Weekly report skipped: no stats", extra=build_log_context(mailbox_id=mailbox.id))
        run = MailboxRunResult(mailbox_id=mailbox.id, skipped=SkipReason.NO_STATS)
        return JobResult.from_runs([run], [])

    local_start, local_end = start.astimezone(tz), end.astimezone(tz)
    chat_status = DeliveryStatus.SKIPPED
    email_status = DeliveryStatus.SKIPPED

    if channels.chat_enabled:
        try:
            slack_users_by_email = await slack_client.get_users_by_email(channels.slack_bot_token)
            await slack_client.post_message(
                channels.slack_bot_token,
                channel=channels.slack_channel,
                text=week_label(local_start, local_end),
                blocks=build_weekly_slack_blocks(mailbox, stats, slack_users_by_email),
            )
            chat_status = DeliveryStatus.SENT
        except Exception as exc:
            chat_status = DeliveryStatus.FAILED
            capture_exception_and_log(exc, build_log_context(mailbox_id=mailbox.id, channel="slack"))

    if channels.email_enabled:
        try:
            content = build_weekly_report(mailbox, stats, local_start, local_end)
            await email_transport.send_email(
                to=channels.recipients,
                subject=f"Weekly summary for {mailbox.name}",
                html=email_templates.render_weekly_report(content),
                idempotency_key=f"weekly-report/{mailbox.id}/{local_start.date().isoformat()}",
            )
            email_status = DeliveryStatus.SENT
        except Exception as exc:
            email_status = DeliveryStatus.FAILED
            capture_exception_and_log(exc, build_log_context(mailbox_id=mailbox.id, channel="email"))

    run = MailboxRunResult(mailbox_id=mailbox.id, chat=chat_status, email=email_status)
    return JobResult.from_runs([run], [])


# =============================================================================
# Fan-out
# =============================================================================

def schedule_daily_reports(db: Session, now: datetime | None = None) -> int:
    """
    Enqueue one DAILY_REPORT job per mailbox with escalation recipients.

    Keyed per mailbox-local day so a repeated fan-out is a no-op.
    """
    now = now or datetime.now(timezone.utc)
    mailboxes = db.scalars(
        select(Mailbox).where(Mailbox.email_escalation_recipients.is_not(None)).order_by(Mailbox.id)
    ).all()

    scheduled = 0
    for mailbox in mailboxes:
        if not parse_recipients(mailbox.email_escalation_recipients):
            continue
        day = local_date(now, get_mailbox_timezone(mailbox)).isoformat()
        job = job_service.schedule_job_once(
            db,
            JobType.DAILY_REPORT,
            {"mailbox_id": mailbox.id},
            idempotency_key=f"daily_report:{mailbox.id}:{day}",
            mailbox_id=mailbox.id,
        )
        if job:
            scheduled += 1
    logger.info("Scheduled %d daily report job(s)", scheduled)
    return scheduled


def schedule_weekly_reports(db: Session, now: datetime | None = None) -> int:
    """Enqueue one WEEKLY_REPORT job per mailbox with Slack or email configured."""
    now = now or datetime.now(timezone.utc)
    mailboxes = db.scalars(select(Mailbox).order_by(Mailbox.id)).all()

    scheduled = 0
    for mailbox in mailboxes:
        has_slack = bool(mailbox.slack_bot_token and mailbox.slack_alert_channel)
        if not has_slack and not parse_recipients(mailbox.email_escalation_recipients):
            continue
        tz = get_mailbox_timezone(mailbox)
        week_start, _ = previous_week_range(now, tz)
        week = local_date(week_start, tz).isoformat()
        job = job_service.schedule_job_once(
            db,
            JobType.WEEKLY_REPORT,
            {"mailbox_id": mailbox.id},
            idempotency_key=f"weekly_report:{mailbox.id}:{week}",
            mailbox_id=mailbox.id,
        )
        if job:
            scheduled += 1
    logger.info("Scheduled %d weekly report job(s)", scheduled)
    return scheduled
