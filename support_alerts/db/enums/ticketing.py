"""Conversation and message enums."""

from enum import Enum


class ConversationStatus(str, Enum):
    """Conversation lifecycle status."""

    OPEN = "open"
    CLOSED = "closed"
    SPAM = "spam"


class MessageRole(str, Enum):
    """Who authored a conversation message."""

    USER = "user"  # the customer
    STAFF = "staff"
    AI_ASSISTANT = "ai_assistant"


class SlackThreadState(str, Enum):
    """
    Slack notification state of a message.

    - UNTHREADED: nothing posted yet
    - POSTED: a VIP notification was posted; slack_channel/slack_message_ts are set
    - UPDATED: the posted notification was edited in place for a reply
    """

    UNTHREADED = "unthreaded"
    POSTED = "posted"
    UPDATED = "updated"
