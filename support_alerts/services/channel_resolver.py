"""Resolve which delivery channels are active for a mailbox."""

from __future__ import annotations

from dataclasses import dataclass, field

from support_alerts.core.config import settings
from support_alerts.db.models import Mailbox


@dataclass(frozen=True)
class ResolvedChannels:
    recipients: list[str] = field(default_factory=list)
    chat_enabled: bool = False
    email_enabled: bool = False
    slack_bot_token: str | None = None
    slack_channel: str | None = None

    @property
    def any_enabled(self) -> bool:
        return self.chat_enabled or self.email_enabled


def parse_recipients(raw: str | None) -> list[str]:
    """Split a comma-separated recipient string; trims entries and drops empties."""
    if not raw:
        return []
    return [email.strip() for email in raw.split(",") if email.strip()]


def resolve_channels(mailbox: Mailbox, *, chat_channel: str | None) -> ResolvedChannels:
    """
    Normalize a mailbox's delivery configuration against one Slack channel.

    Chat needs both the bot token and the channel id. Email additionally
    requires the Resend API key and From address; when either is missing email
    is simply disabled.
    """
    recipients = parse_recipients(mailbox.email_escalation_recipients)
    token = (mailbox.slack_bot_token or "").strip() or None
    channel = (chat_channel or "").strip() or None
    return ResolvedChannels(
        recipients=recipients,
        chat_enabled=bool(token and channel),
        email_enabled=bool(recipients) and settings.email_delivery_configured,
        slack_bot_token=token,
        slack_channel=channel,
    )
