"""SQLAlchemy ORM models."""

from support_alerts.db.models.jobs import Job
from support_alerts.db.models.ticketing import (
    Conversation,
    ConversationMessage,
    KnowledgeBankSuggestion,
    Mailbox,
    PlatformCustomer,
    User,
)

__all__ = [
    "Conversation",
    "ConversationMessage",
    "Job",
    "KnowledgeBankSuggestion",
    "Mailbox",
    "PlatformCustomer",
    "User",
]
