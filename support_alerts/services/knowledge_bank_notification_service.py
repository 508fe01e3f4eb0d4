"""Notify reviewers about suggested knowledge-bank additions and edits."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from support_alerts.core.config import settings
from support_alerts.core.monitoring import capture_exception_and_log
from support_alerts.core.structured_logging import build_log_context
from support_alerts.db.enums import JobType
from support_alerts.db.models import Job, KnowledgeBankSuggestion
from support_alerts.schemas.notifications import (
    DeliveryStatus,
    JobResult,
    KnowledgeBankSuggestionContent,
    MailboxRunResult,
    SkipReason,
)
from support_alerts.services import email_templates, email_transport, job_service, slack_client
from support_alerts.services.channel_resolver import resolve_channels
from support_alerts.types import SlackBlocks

logger = logging.getLogger(__name__)


def _suggestion_content(suggestion: KnowledgeBankSuggestion) -> KnowledgeBankSuggestionContent:
    return KnowledgeBankSuggestionContent(
        mailbox_name=suggestion.mailbox.name,
        suggested_content=suggestion.content,
        is_edit=suggestion.is_edit,
        original_content=suggestion.original_content,
    )


def email_subject(content: KnowledgeBankSuggestionContent) -> str:
    kind = "edit" if content.is_edit else "addition"
    return f"Knowledge Bank: New suggested {kind} for {content.mailbox_name}"


def build_suggestion_blocks(content: KnowledgeBankSuggestionContent) -> SlackBlocks:
    blocks: SlackBlocks = [
        {"type": "section", "text": {"type": "mrkdwn", "text": f"💡 *{content.title}*"}},
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Suggested content:*\n{content.suggested_content}"},
        },
    ]
    if content.is_edit and content.original_content:
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Original content:*\n{content.original_content}"},
            }
        )
    blocks.append(
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"<{settings.base_url}/settings/knowledge|Review in settings>",
                }
            ],
        }
    )
    return blocks


async def notify_knowledge_bank_suggestion(db: Session, suggestion_id: int) -> JobResult:
    suggestion = db.get(KnowledgeBankSuggestion, suggestion_id)
    if not suggestion:
        raise job_service.NonRetriableJobError(f"Knowledge bank suggestion {suggestion_id} not found")

    mailbox = suggestion.mailbox
    channels = resolve_channels(mailbox, chat_channel=mailbox.slack_alert_channel)
    if not channels.any_enabled:
        run = MailboxRunResult(mailbox_id=mailbox.id, skipped=SkipReason.NOT_CONFIGURED)
        return JobResult.from_runs([run], [])

    content = _suggestion_content(suggestion)
    chat_status = DeliveryStatus.SKIPPED
    email_status = DeliveryStatus.SKIPPED

    if channels.chat_enabled:
        try:
            await slack_client.post_message(
                channels.slack_bot_token,
                channel=channels.slack_channel,
                text=content.title,
                blocks=build_suggestion_blocks(content),
            )
            chat_status = DeliveryStatus.SENT
        except Exception as exc:
            chat_status = DeliveryStatus.FAILED
            capture_exception_and_log(exc, build_log_context(mailbox_id=mailbox.id, channel="slack"))

    if channels.email_enabled:
        try:
            await email_transport.send_email(
                to=channels.recipients,
                subject=email_subject(content),
                html=email_templates.render_knowledge_bank_suggestion(content),
                idempotency_key=f"kb-suggestion/{suggestion.id}",
            )
            email_status = DeliveryStatus.SENT
        except Exception as exc:
            email_status = DeliveryStatus.FAILED
            capture_exception_and_log(exc, build_log_context(mailbox_id=mailbox.id, channel="email"))

    logger.info(
        "Knowledge bank suggestion %s notified: chat=%s email=%s",
        suggestion.id,
        chat_status.value,
        email_status.value,
        extra=build_log_context(mailbox_id=mailbox.id),
    )
    run = MailboxRunResult(mailbox_id=mailbox.id, chat=chat_status, email=email_status)
    return JobResult.from_runs([run], [])


def publish_knowledge_bank_suggestion(db: Session, suggestion: KnowledgeBankSuggestion) -> Job | None:
    """Queue reviewer notifications for a newly recorded suggestion."""
    return job_service.schedule_job_once(
        db,
        JobType.KNOWLEDGE_BANK_SUGGESTION_NOTIFY,
        {"suggestion_id": suggestion.id},
        idempotency_key=f"knowledge_bank_suggestion:{suggestion.id}",
        mailbox_id=suggestion.mailbox_id,
    )
