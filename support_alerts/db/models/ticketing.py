"""Mailbox, conversation and customer ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from support_alerts.db.base import Base
from support_alerts.db.enums import ConversationStatus, MessageRole, SlackThreadState


def _enum_type(enum_cls, *, name: str) -> Enum:
    """Store str-enums by value as a checked VARCHAR."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


class Mailbox(Base):
    """A support inbox and its escalation settings."""

    __tablename__ = "mailboxes"
    __table_args__ = (UniqueConstraint("slug", name="uq_mailboxes_slug"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    slack_bot_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    slack_alert_channel: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vip_channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Whole currency units; NULL disables VIP alerting.
    vip_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    vip_expected_response_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Comma-separated list of addresses
    email_escalation_recipients: Mapped[str | None] = mapped_column(Text, nullable=True)
    preferences: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    @property
    def ticket_response_alerts_disabled(self) -> bool:
        return bool((self.preferences or {}).get("disable_ticket_response_time_alerts"))


class User(Base):
    """Support agent working a mailbox."""

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_mailbox", "mailbox_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mailbox_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mailboxes.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    mailbox: Mapped["Mailbox"] = relationship()


class Conversation(Base):
    """Customer ticket."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("slug", name="uq_conversations_slug"),
        Index("idx_conversations_mailbox_status", "mailbox_id", "status"),
        Index("idx_conversations_last_user_email", "last_user_email_created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mailbox_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mailboxes.id", ondelete="CASCADE"), nullable=False
    )
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ConversationStatus] = mapped_column(
        _enum_type(ConversationStatus, name="conversation_status"),
        default=ConversationStatus.OPEN,
        nullable=False,
    )
    assigned_to_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    merged_into_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True
    )
    email_from: Mapped[str | None] = mapped_column(String(320), nullable=True)
    # Synthetic conversations created from the prompt/preview UI
    is_prompt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_user_email_created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    mailbox: Mapped["Mailbox"] = relationship()
    assigned_to: Mapped["User | None"] = relationship()
    merged_into: Mapped["Conversation | None"] = relationship(remote_side=[id])


class ConversationMessage(Base):
    """A single message on a conversation."""

    __tablename__ = "conversation_messages"
    __table_args__ = (
        Index("idx_conversation_messages_conversation", "conversation_id", "created_at"),
        Index("idx_conversation_messages_role_created", "role", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[MessageRole] = mapped_column(
        _enum_type(MessageRole, name="message_role"), nullable=False
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleaned_up_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_to_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("conversation_messages.id", ondelete="SET NULL"), nullable=True
    )

    slack_channel: Mapped[str | None] = mapped_column(String(64), nullable=True)
    slack_message_ts: Mapped[str | None] = mapped_column(String(64), nullable=True)
    slack_thread_state: Mapped[SlackThreadState] = mapped_column(
        _enum_type(SlackThreadState, name="slack_thread_state"),
        default=SlackThreadState.UNTHREADED,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    conversation: Mapped["Conversation"] = relationship()
    author: Mapped["User | None"] = relationship()
    response_to: Mapped["ConversationMessage | None"] = relationship(remote_side=[id])

    @property
    def has_slack_thread(self) -> bool:
        return bool(self.slack_channel and self.slack_message_ts)


class PlatformCustomer(Base):
    """Customer value record used to decide VIP status."""

    __tablename__ = "platform_customers"
    __table_args__ = (
        UniqueConstraint("mailbox_id", "email", name="uq_platform_customers_mailbox_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mailbox_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mailboxes.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Minor units (cents)
    value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class KnowledgeBankSuggestion(Base):
    """Suggested knowledge-bank addition or edit awaiting review."""

    __tablename__ = "knowledge_bank_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mailbox_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mailboxes.id", ondelete="CASCADE"), nullable=False
    )
    message_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("conversation_messages.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    original_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    mailbox: Mapped["Mailbox"] = relationship()
