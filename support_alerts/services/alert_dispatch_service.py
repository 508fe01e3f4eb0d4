"""Compose and deliver overdue alerts over Slack and email.

Each channel is sent inside its own failure boundary: a Slack error never
prevents the email attempt and vice versa. Errors are logged, reported to
Sentry and surfaced only as a FAILED delivery status.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING

from support_alerts.core.constants import ALERT_ITEM_LIMIT, NO_SUBJECT
from support_alerts.core.monitoring import capture_exception_and_log
from support_alerts.core.structured_logging import build_log_context
from support_alerts.db.models import Mailbox
from support_alerts.schemas.notifications import (
    DeliveryStatus,
    OverdueAlertContent,
    OverdueTicket,
)
from support_alerts.services import email_templates, email_transport, slack_client
from support_alerts.services.channel_resolver import ResolvedChannels
from support_alerts.types import SlackBlocks
from support_alerts.utils.durations import format_duration

if TYPE_CHECKING:
    from support_alerts.services.escalation_service import (
        OverdueConversation,
        OverduePolicy,
        OverdueResult,
    )

logger = logging.getLogger(__name__)

_SLACK_LINK_CHARS = re.compile(r"[|<>]")


def slack_safe_subject(subject: str | None) -> str:
    """Strip characters that would break Slack's ``<url|label>`` link syntax."""
    if not subject:
        return NO_SUBJECT
    return _SLACK_LINK_CHARS.sub("", subject) or NO_SUBJECT


def remaining_trailer(total: int, shown: int) -> str | None:
    remaining = total - shown
    return f"(and {remaining} more)" if remaining > 0 else None


def build_chat_alert_text(
    policy: OverduePolicy,
    mailbox: Mailbox,
    overdue: OverdueResult,
    now: datetime,
    slack_users_by_email: dict[str, str] | None = None,
) -> str:
    """Slack mrkdwn body: header, up to ALERT_ITEM_LIMIT items, and a trailer."""
    shown = overdue.conversations[:ALERT_ITEM_LIMIT]
    lines = [f"🚨 *{policy.headline(overdue.total, mailbox)}*\n"]
    for item in shown:
        lines.append(_chat_item(policy, item, now, slack_users_by_email or {}))
    trailer = remaining_trailer(overdue.total, len(shown))
    if trailer:
        lines.append(trailer)
    return "\n".join(lines)


def _chat_item(
    policy: OverduePolicy,
    item: OverdueConversation,
    now: datetime,
    slack_users_by_email: dict[str, str],
) -> str:
    conversation = item.conversation
    if policy.mention_counterparts:
        who = slack_client.mention_or_name(
            slack_users_by_email, item.counterpart_email, item.counterpart_name
        )
    else:
        who = item.counterpart_name
    if policy.counterpart_label:
        who = f"{policy.counterpart_label} {who}"
    url = email_templates.conversation_url(conversation.slug)
    elapsed = format_duration(item.waiting_since, now)
    return f"• <{url}|{slack_safe_subject(conversation.subject)}> ({who}, {elapsed} since last reply)"


def build_email_alert_content(
    policy: OverduePolicy,
    mailbox: Mailbox,
    overdue: OverdueResult,
    now: datetime,
) -> OverdueAlertContent:
    return OverdueAlertContent(
        mailbox_name=mailbox.name,
        title=policy.title(mailbox),
        headline=f"🚨 {policy.headline(overdue.total, mailbox)}",
        counterpart_label=policy.counterpart_label,
        overdue_tickets=[
            OverdueTicket(
                subject=item.conversation.subject or NO_SUBJECT,
                slug=item.conversation.slug,
                counterpart_name=item.counterpart_name,
                time_since_last_reply=format_duration(item.waiting_since, now),
            )
            for item in overdue.conversations[:ALERT_ITEM_LIMIT]
        ],
        total_overdue_count=overdue.total,
    )


async def _send_chat(
    policy: OverduePolicy,
    mailbox: Mailbox,
    overdue: OverdueResult,
    channels: ResolvedChannels,
    now: datetime,
) -> None:
    slack_users_by_email: dict[str, str] = {}
    if policy.mention_counterparts:
        slack_users_by_email = await slack_client.get_users_by_email(channels.slack_bot_token)
    text = build_chat_alert_text(policy, mailbox, overdue, now, slack_users_by_email)
    blocks: SlackBlocks = [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]
    await slack_client.post_message(
        channels.slack_bot_token,
        channel=channels.slack_channel,
        text=policy.title(mailbox),
        blocks=blocks,
    )


async def _send_email(
    policy: OverduePolicy,
    mailbox: Mailbox,
    overdue: OverdueResult,
    channels: ResolvedChannels,
    now: datetime,
) -> None:
    content = build_email_alert_content(policy, mailbox, overdue, now)
    html = email_templates.render_overdue_alert(content, utm_source=policy.utm_source)
    await email_transport.send_email(
        to=channels.recipients,
        subject=policy.title(mailbox),
        html=html,
        idempotency_key=f"{policy.name}-alert/{mailbox.id}/{now:%Y-%m-%dT%H}",
    )


async def dispatch_overdue_alert(
    mailbox: Mailbox,
    policy: OverduePolicy,
    overdue: OverdueResult,
    channels: ResolvedChannels,
    now: datetime,
) -> tuple[DeliveryStatus, DeliveryStatus]:
    """Send the alert on every enabled channel. Returns (chat_status, email_status)."""
    chat_status = DeliveryStatus.SKIPPED
    email_status = DeliveryStatus.SKIPPED

    if channels.chat_enabled:
        try:
            await _send_chat(policy, mailbox, overdue, channels, now)
            chat_status = DeliveryStatus.SENT
        except Exception as exc:
            chat_status = DeliveryStatus.FAILED
            capture_exception_and_log(
                exc, build_log_context(mailbox_id=mailbox.id, channel="slack")
            )

    if channels.email_enabled:
        try:
            await _send_email(policy, mailbox, overdue, channels, now)
            email_status = DeliveryStatus.SENT
        except Exception as exc:
            email_status = DeliveryStatus.FAILED
            capture_exception_and_log(
                exc, build_log_context(mailbox_id=mailbox.id, channel="email")
            )

    logger.info(
        "%s alert dispatched: chat=%s email=%s",
        policy.name,
        chat_status.value,
        email_status.value,
        extra=build_log_context(mailbox_id=mailbox.id),
    )
    return chat_status, email_status
