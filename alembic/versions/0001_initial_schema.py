"""Initial schema: mailboxes, conversations, customers, suggestions, jobs

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17

Tables:
- mailboxes: Support inboxes with Slack/email escalation settings
- users: Support agents
- conversations / conversation_messages: Tickets and their messages
- platform_customers: Customer value used for VIP status
- knowledge_bank_suggestions: Pending knowledge-bank additions/edits
- jobs: Background job queue
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "mailboxes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("slack_bot_token", sa.Text, nullable=True),
        sa.Column("slack_alert_channel", sa.String(64), nullable=True),
        sa.Column("vip_channel_id", sa.String(64), nullable=True),
        sa.Column("vip_threshold", sa.Integer, nullable=True),
        sa.Column("vip_expected_response_hours", sa.Integer, nullable=True),
        sa.Column("email_escalation_recipients", sa.Text, nullable=True),
        sa.Column("preferences", sa.JSON, nullable=True),
        _created_at(),
        sa.UniqueConstraint("slug", name="uq_mailboxes_slug"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "mailbox_id",
            sa.Integer,
            sa.ForeignKey("mailboxes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
    )
    op.create_index("idx_users_mailbox", "users", ["mailbox_id"])

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "mailbox_id",
            sa.Integer,
            sa.ForeignKey("mailboxes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("subject", sa.Text, nullable=True),
        sa.Column("status", sa.String(32), nullable=False),  # open, closed, spam
        sa.Column(
            "assigned_to_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "merged_into_id",
            sa.Integer,
            sa.ForeignKey("conversations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("email_from", sa.String(320), nullable=True),
        sa.Column("is_prompt", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_user_email_created_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("slug", name="uq_conversations_slug"),
    )
    op.create_index(
        "idx_conversations_mailbox_status", "conversations", ["mailbox_id", "status"]
    )
    op.create_index(
        "idx_conversations_last_user_email", "conversations", ["last_user_email_created_at"]
    )

    op.create_table(
        "conversation_messages",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "conversation_id",
            sa.Integer,
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(32), nullable=False),  # user, staff, ai_assistant
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("cleaned_up_text", sa.Text, nullable=True),
        sa.Column(
            "response_to_id",
            sa.Integer,
            sa.ForeignKey("conversation_messages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("slack_channel", sa.String(64), nullable=True),
        sa.Column("slack_message_ts", sa.String(64), nullable=True),
        sa.Column(
            "slack_thread_state", sa.String(32), nullable=False, server_default="unthreaded"
        ),  # unthreaded, posted, updated
        _created_at(),
    )
    op.create_index(
        "idx_conversation_messages_conversation",
        "conversation_messages",
        ["conversation_id", "created_at"],
    )
    op.create_index(
        "idx_conversation_messages_role_created",
        "conversation_messages",
        ["role", "created_at"],
    )

    op.create_table(
        "platform_customers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "mailbox_id",
            sa.Integer,
            sa.ForeignKey("mailboxes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("value", sa.BigInteger, nullable=False, server_default="0"),  # cents
        _created_at(),
        sa.UniqueConstraint(
            "mailbox_id", "email", name="uq_platform_customers_mailbox_email"
        ),
    )

    op.create_table(
        "knowledge_bank_suggestions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "mailbox_id",
            sa.Integer,
            sa.ForeignKey("mailboxes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "message_id",
            sa.Integer,
            sa.ForeignKey("conversation_messages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("original_content", sa.Text, nullable=True),
        sa.Column("is_edit", sa.Boolean, nullable=False, server_default=sa.false()),
        _created_at(),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "mailbox_id",
            sa.Integer,
            sa.ForeignKey("mailboxes.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column(
            "run_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text, nullable=True),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
    )
    op.create_index("idx_jobs_pending", "jobs", ["status", "run_at"])
    op.create_index("idx_jobs_mailbox", "jobs", ["mailbox_id", "created_at"])
    op.create_index("uq_job_idempotency", "jobs", ["idempotency_key"], unique=True)


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_table("knowledge_bank_suggestions")
    op.drop_table("platform_customers")
    op.drop_table("conversation_messages")
    op.drop_table("conversations")
    op.drop_table("users")
    op.drop_table("mailboxes")
