"""VIP message notifications.

A new customer message from a VIP is posted to the mailbox's VIP Slack
channel and the Slack ``ts`` is stored on the message. Staff or assistant
replies to that message edit the same Slack post in place instead of
posting again. Each notification is also emailed to the escalation
recipients; Slack and email each run inside their own failure boundary.

Messages carry an explicit SlackThreadState:

    UNTHREADED --post--> POSTED --reply--> UPDATED --reply--> UPDATED

There is no locking: two workers handling the same message concurrently can
both post, and the last write of the thread handle wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from support_alerts.core.constants import CUSTOMER_VALUE_SCALE, NO_SUBJECT, UNKNOWN_CUSTOMER
from support_alerts.core.monitoring import capture_exception_and_log
from support_alerts.core.structured_logging import build_log_context
from support_alerts.db.enums import ConversationStatus, JobType, MessageRole, SlackThreadState
from support_alerts.db.models import (
    Conversation,
    ConversationMessage,
    Job,
    Mailbox,
    PlatformCustomer,
)
from support_alerts.schemas.notifications import (
    DeliveryStatus,
    VipChatStatus,
    VipMessageEmailContent,
    VipNotificationResult,
)
from support_alerts.services import email_templates, email_transport, job_service, slack_client
from support_alerts.services.channel_resolver import ResolvedChannels, resolve_channels
from support_alerts.types import SlackBlocks

logger = logging.getLogger(__name__)

# Slack rejects section text longer than 3000 characters.
SLACK_SECTION_LIMIT = 2900

AI_ASSISTANT_SENDER = "AI Assistant"
TEAM_SENDER = "Helper Team"


# =============================================================================
# Lookups
# =============================================================================

def find_vip_customer(db: Session, mailbox: Mailbox, email: str | None) -> PlatformCustomer | None:
    """Return the customer record when it meets the mailbox's VIP threshold."""
    if not email or mailbox.vip_threshold is None:
        return None
    return db.scalar(
        select(PlatformCustomer).where(
            PlatformCustomer.mailbox_id == mailbox.id,
            PlatformCustomer.email == email,
            PlatformCustomer.value >= mailbox.vip_threshold * CUSTOMER_VALUE_SCALE,
        )
    )


def _load_message(db: Session, message_id: int) -> tuple[ConversationMessage, Conversation]:
    """Load a message and the conversation it belongs to, following one merge."""
    message = db.get(ConversationMessage, message_id)
    if not message:
        raise job_service.NonRetriableJobError(f"Conversation message {message_id} not found")

    conversation = message.conversation
    if conversation.merged_into_id:
        target = db.get(Conversation, conversation.merged_into_id)
        if not target:
            raise job_service.NonRetriableJobError(
                f"Merge target {conversation.merged_into_id} not found"
            )
        conversation = target
    return message, conversation


def ensure_cleaned_up_text(db: Session, message: ConversationMessage) -> str:
    """Plain-text body of a message, derived from the HTML body once and stored."""
    if message.cleaned_up_text is None:
        message.cleaned_up_text = email_transport.html_to_text(message.body or "")
        db.commit()
    return message.cleaned_up_text


# =============================================================================
# Slack rendering
# =============================================================================

def _slack_escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _quote(text: str) -> str:
    text = _slack_escape(text.strip())
    if len(text) > SLACK_SECTION_LIMIT:
        text = text[:SLACK_SECTION_LIMIT].rstrip() + "…"
    return "\n".join(f"> {line}" for line in text.splitlines()) or "> "


def _conversation_link(conversation: Conversation) -> str:
    subject = _slack_escape(conversation.subject or NO_SUBJECT).replace("|", "")
    return f"<{email_templates.conversation_url(conversation.slug)}|{subject}>"


def build_vip_post_blocks(
    conversation: Conversation,
    customer: PlatformCustomer,
    customer_name: str,
    message_text: str,
) -> SlackBlocks:
    value = customer.value / CUSTOMER_VALUE_SCALE
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*New VIP message from {_slack_escape(customer_name)}*"},
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": _quote(message_text)}},
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": f"{_conversation_link(conversation)} · Value: ${value:,.2f}"}
            ],
        },
    ]


def build_vip_update_blocks(
    conversation: Conversation,
    customer_name: str,
    original_text: str,
    reply_text: str,
    sender_name: str,
    closed: bool,
) -> SlackBlocks:
    blocks: SlackBlocks = [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*VIP message from {_slack_escape(customer_name)}*"},
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": _quote(original_text)}},
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*{_slack_escape(sender_name)} replied:*\n{_quote(reply_text)}",
            },
        },
    ]
    context = _conversation_link(conversation)
    if closed:
        context = f"{context} · ✅ Closed"
    blocks.append({"type": "context", "elements": [{"type": "mrkdwn", "text": context}]})
    return blocks


# =============================================================================
# Notifier
# =============================================================================

@dataclass(frozen=True)
class _EmailContext:
    is_reply: bool
    body: str
    sender_name: str
    title: str | None = None


def _reply_sender_name(message: ConversationMessage) -> str:
    author = message.author
    if author and (author.display_name or author.email):
        return author.display_name or author.email
    return AI_ASSISTANT_SENDER if message.role == MessageRole.AI_ASSISTANT else TEAM_SENDER


def _email_context(
    db: Session,
    mailbox: Mailbox,
    message: ConversationMessage,
    customer_name: str,
) -> _EmailContext | None:
    """What to email for this message, independent of whether chat succeeds."""
    if message.role != MessageRole.USER and message.response_to_id:
        original = db.get(ConversationMessage, message.response_to_id)
        if not original or not original.has_slack_thread:
            return None
        return _EmailContext(
            is_reply=True,
            body=ensure_cleaned_up_text(db, message),
            sender_name=_reply_sender_name(message),
            title=f"VIP Conversation Update for {mailbox.name}",
        )
    if message.role == MessageRole.USER:
        return _EmailContext(
            is_reply=False,
            body=ensure_cleaned_up_text(db, message),
            sender_name=customer_name,
        )
    return None


async def _handle_chat(
    db: Session,
    message: ConversationMessage,
    conversation: Conversation,
    customer: PlatformCustomer,
    customer_name: str,
    channels: ResolvedChannels,
) -> VipChatStatus:
    if message.role != MessageRole.USER and message.response_to_id:
        original = db.get(ConversationMessage, message.response_to_id)
        if not original or not original.has_slack_thread:
            return VipChatStatus.SKIPPED

        original_text = ensure_cleaned_up_text(db, original)
        reply_text = ensure_cleaned_up_text(db, message)
        sender_name = _reply_sender_name(message)
        await slack_client.update_message(
            channels.slack_bot_token,
            channel=original.slack_channel,
            ts=original.slack_message_ts,
            text=f"{sender_name} replied to {customer_name}",
            blocks=build_vip_update_blocks(
                conversation,
                customer_name,
                original_text,
                reply_text,
                sender_name,
                closed=conversation.status == ConversationStatus.CLOSED,
            ),
        )
        original.slack_thread_state = SlackThreadState.UPDATED
        db.commit()
        return VipChatStatus.UPDATED

    if message.role == MessageRole.USER:
        text = ensure_cleaned_up_text(db, message)
        ts = await slack_client.post_message(
            channels.slack_bot_token,
            channel=channels.slack_channel,
            text=f"New VIP message from {customer_name}",
            blocks=build_vip_post_blocks(conversation, customer, customer_name, text),
        )
        message.slack_channel = channels.slack_channel
        message.slack_message_ts = ts
        message.slack_thread_state = SlackThreadState.POSTED
        db.commit()
        return VipChatStatus.POSTED

    return VipChatStatus.SKIPPED


async def _send_email(
    mailbox: Mailbox,
    conversation: Conversation,
    message_id: int,
    customer_name: str,
    context: _EmailContext,
    channels: ResolvedChannels,
) -> None:
    content = VipMessageEmailContent(
        mailbox_name=mailbox.name,
        customer_name=customer_name,
        sender_name=context.sender_name,
        title=context.title,
        subject=conversation.subject or NO_SUBJECT,
        message_preview=context.body,
        conversation_slug=conversation.slug,
    )
    if context.is_reply:
        subject = f"{context.sender_name} replied to {customer_name}"
    else:
        subject = f"New VIP Message from {customer_name}"
    await email_transport.send_email(
        to=channels.recipients,
        subject=subject,
        html=email_templates.render_vip_message(content),
        idempotency_key=f"vip-message/{message_id}",
    )


async def notify_vip_message(db: Session, message_id: int) -> VipNotificationResult:
    """Post or update the VIP Slack notification for a message and email it."""
    message, conversation = _load_message(db, message_id)
    mailbox = db.get(Mailbox, conversation.mailbox_id)
    log_context = build_log_context(mailbox_id=conversation.mailbox_id, message_id=message.id)

    if conversation.is_prompt:
        return VipNotificationResult(chat=VipChatStatus.NOT_POSTED, reason="prompt conversation")
    if not conversation.email_from:
        return VipNotificationResult(chat=VipChatStatus.NOT_POSTED, reason="anonymous conversation")

    customer = find_vip_customer(db, mailbox, conversation.email_from)
    if not customer:
        return VipNotificationResult(chat=VipChatStatus.NOT_POSTED, reason="not a VIP customer")

    customer_name = customer.name or conversation.email_from or UNKNOWN_CUSTOMER
    channels = resolve_channels(mailbox, chat_channel=mailbox.vip_channel_id)
    # Built before the chat branch so a chat failure cannot suppress the email.
    email_context = _email_context(db, mailbox, message, customer_name)

    chat_status = VipChatStatus.NOT_POSTED
    if channels.chat_enabled:
        try:
            chat_status = await _handle_chat(
                db, message, conversation, customer, customer_name, channels
            )
        except Exception as exc:
            db.rollback()
            chat_status = VipChatStatus.FAILED
            capture_exception_and_log(exc, {**log_context, "channel": "slack"})

    email_status = DeliveryStatus.SKIPPED
    if email_context and channels.email_enabled:
        try:
            await _send_email(
                mailbox, conversation, message_id, customer_name, email_context, channels
            )
            email_status = DeliveryStatus.SENT
        except Exception as exc:
            email_status = DeliveryStatus.FAILED
            capture_exception_and_log(exc, {**log_context, "channel": "email"})

    result = VipNotificationResult(chat=chat_status, email=email_status)
    logger.info("VIP message notification: %s", result, extra=log_context)
    return result


def publish_vip_message_created(db: Session, message: ConversationMessage) -> Job | None:
    """Queue the VIP notification for a newly created message."""
    return job_service.schedule_job_once(
        db,
        JobType.VIP_MESSAGE_NOTIFY,
        {"message_id": message.id},
        idempotency_key=f"vip_message_notify:{message.id}",
        mailbox_id=message.conversation.mailbox_id,
    )
