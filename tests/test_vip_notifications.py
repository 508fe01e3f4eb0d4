"""Tests for VIP message Slack post/update notifications."""

import pytest
from sqlalchemy import select

from support_alerts.db.enums import ConversationStatus, JobType, MessageRole, SlackThreadState
from support_alerts.db.models import Job
from support_alerts.schemas.notifications import DeliveryStatus, VipChatStatus, VipNotificationResult
from support_alerts.services import vip_notification_service
from support_alerts.services.job_service import NonRetriableJobError
from support_alerts.services.slack_client import SlackApiError
from tests.factories import (
    create_conversation,
    create_customer,
    create_mailbox,
    create_message,
    create_user,
)


def _vip_setup(db, *, slack=True, customer_value=50_000):
    overrides = {
        "name": "Support",
        "vip_threshold": 100,
        "email_escalation_recipients": "lead@example.com",
    }
    if slack:
        overrides.update(slack_bot_token="xoxb-vip", vip_channel_id="C-VIP")
    mailbox = create_mailbox(db, **overrides)
    customer = create_customer(
        db, mailbox, email="vip@example.com", name="Big Co", value=customer_value
    )
    conversation = create_conversation(db, mailbox, subject="Billing", email_from=customer.email)
    return mailbox, customer, conversation


@pytest.mark.asyncio
async def test_customer_message_is_posted_and_tracked(db, fake_slack, fake_email):
    _, _, conversation = _vip_setup(db)
    message = create_message(db, conversation, body="<p>Please help &amp; hurry</p>")

    result = await vip_notification_service.notify_vip_message(db, message.id)

    assert result.chat == VipChatStatus.POSTED
    assert result.email == DeliveryStatus.SENT
    assert str(result) == "chat: posted, email: sent"

    post = fake_slack.posts[0]
    assert post["channel"] == "C-VIP"
    assert post["text"] == "New VIP message from Big Co"
    assert post["blocks"][0]["text"]["text"] == "*New VIP message from Big Co*"
    assert post["blocks"][1]["text"]["text"] == "> Please help &amp; hurry"
    assert post["blocks"][2]["elements"][0]["text"] == (
        f"<https://helper.test/conversations?id={conversation.slug}|Billing> · Value: $500.00"
    )

    db.refresh(message)
    assert message.slack_channel == "C-VIP"
    assert message.slack_message_ts == post["ts"]
    assert message.slack_thread_state == SlackThreadState.POSTED
    assert message.cleaned_up_text == "Please help & hurry"

    assert fake_email.sent[0]["subject"] == "New VIP Message from Big Co"


@pytest.mark.asyncio
async def test_replies_update_the_original_post(db, fake_slack, fake_email):
    mailbox, _, conversation = _vip_setup(db)
    agent = create_user(db, mailbox, display_name="Sam")
    original = create_message(db, conversation, body="<p>Where is my invoice?</p>")
    await vip_notification_service.notify_vip_message(db, original.id)
    posted_ts = fake_slack.posts[0]["ts"]

    reply = create_message(
        db,
        conversation,
        role=MessageRole.STAFF,
        user_id=agent.id,
        response_to_id=original.id,
        body="<p>Sent it again.</p>",
    )
    result = await vip_notification_service.notify_vip_message(db, reply.id)

    assert result.chat == VipChatStatus.UPDATED
    assert result.email == DeliveryStatus.SENT
    assert len(fake_slack.posts) == 1
    update = fake_slack.updates[0]
    assert update["channel"] == "C-VIP"
    assert update["ts"] == posted_ts
    assert update["text"] == "Sam replied to Big Co"
    assert update["blocks"][2]["text"]["text"] == "*Sam replied:*\n> Sent it again."
    assert "Closed" not in update["blocks"][-1]["elements"][0]["text"]

    db.refresh(original)
    assert original.slack_thread_state == SlackThreadState.UPDATED
    assert original.slack_message_ts == posted_ts
    assert fake_email.sent[-1]["subject"] == "Sam replied to Big Co"
    assert "VIP Conversation Update for Support" in fake_email.sent[-1]["html"]


@pytest.mark.asyncio
async def test_assistant_reply_on_closed_conversation(db, fake_slack, fake_email):
    _, _, conversation = _vip_setup(db)
    original = create_message(db, conversation)
    await vip_notification_service.notify_vip_message(db, original.id)
    conversation.status = ConversationStatus.CLOSED
    db.commit()

    reply = create_message(
        db, conversation, role=MessageRole.AI_ASSISTANT, response_to_id=original.id, body="Done!"
    )
    result = await vip_notification_service.notify_vip_message(db, reply.id)

    assert result.chat == VipChatStatus.UPDATED
    update = fake_slack.updates[0]
    assert update["text"] == "AI Assistant replied to Big Co"
    assert update["blocks"][-1]["elements"][0]["text"].endswith("· ✅ Closed")


@pytest.mark.asyncio
async def test_reply_to_unposted_message_is_skipped(db, fake_slack, fake_email):
    mailbox, _, conversation = _vip_setup(db)
    agent = create_user(db, mailbox)
    original = create_message(db, conversation)
    reply = create_message(
        db, conversation, role=MessageRole.STAFF, user_id=agent.id, response_to_id=original.id
    )

    result = await vip_notification_service.notify_vip_message(db, reply.id)

    assert result.chat == VipChatStatus.SKIPPED
    assert result.email == DeliveryStatus.SKIPPED
    assert fake_slack.updates == []
    assert fake_email.sent == []


@pytest.mark.asyncio
async def test_non_vip_customer_gets_nothing(db, fake_slack, fake_email):
    mailbox, _, conversation = _vip_setup(db, customer_value=9_999)
    agent = create_user(db, mailbox)
    message = create_message(db, conversation)
    reply = create_message(
        db, conversation, role=MessageRole.STAFF, user_id=agent.id, response_to_id=message.id
    )

    for message_id in (message.id, reply.id):
        result = await vip_notification_service.notify_vip_message(db, message_id)
        assert result.chat == VipChatStatus.NOT_POSTED
        assert result.reason == "not a VIP customer"

    assert fake_slack.posts == []
    assert fake_slack.updates == []
    assert fake_email.sent == []


@pytest.mark.asyncio
async def test_email_only_when_slack_not_configured(db, fake_slack, fake_email):
    mailbox, _, conversation = _vip_setup(db, slack=False)
    agent = create_user(db, mailbox)
    message = create_message(db, conversation, body="<p>Hi</p>")
    reply = create_message(
        db, conversation, role=MessageRole.STAFF, user_id=agent.id, response_to_id=message.id
    )

    result = await vip_notification_service.notify_vip_message(db, message.id)
    assert result.chat == VipChatStatus.NOT_POSTED
    assert result.email == DeliveryStatus.SENT
    assert fake_email.sent[0]["subject"] == "New VIP Message from Big Co"

    reply_result = await vip_notification_service.notify_vip_message(db, reply.id)
    assert str(reply_result) == "chat: not-posted, email: skipped"
    assert fake_slack.posts == []


@pytest.mark.asyncio
async def test_merged_conversation_uses_merge_target(db, fake_slack, fake_email):
    mailbox, _, target = _vip_setup(db)
    source = create_conversation(db, mailbox, email_from=None, merged_into_id=target.id)
    message = create_message(db, source)

    result = await vip_notification_service.notify_vip_message(db, message.id)

    assert result.chat == VipChatStatus.POSTED
    assert f"id={target.slug}|" in fake_slack.posts[0]["blocks"][2]["elements"][0]["text"]


@pytest.mark.asyncio
async def test_prompt_and_anonymous_conversations_are_ignored(db, fake_slack, fake_email):
    mailbox, customer, _ = _vip_setup(db)
    prompt = create_conversation(db, mailbox, email_from=customer.email, is_prompt=True)
    anonymous = create_conversation(db, mailbox, email_from=None)

    prompt_result = await vip_notification_service.notify_vip_message(
        db, create_message(db, prompt).id
    )
    anonymous_result = await vip_notification_service.notify_vip_message(
        db, create_message(db, anonymous).id
    )

    assert prompt_result.reason == "prompt conversation"
    assert anonymous_result.reason == "anonymous conversation"
    assert fake_slack.posts == []


@pytest.mark.asyncio
async def test_chat_failure_still_sends_the_email(db, fake_slack, fake_email):
    _, _, conversation = _vip_setup(db)
    message = create_message(db, conversation, body="<p>Urgent</p>")
    fake_slack.post_error = SlackApiError("chat.postMessage", "channel_not_found")

    result = await vip_notification_service.notify_vip_message(db, message.id)

    assert result.chat == VipChatStatus.FAILED
    assert result.email == DeliveryStatus.SENT
    assert str(result) == "chat: failed, email: sent"
    assert fake_email.sent[0]["subject"] == "New VIP Message from Big Co"
    assert fake_email.sent[0]["idempotency_key"] == f"vip-message/{message.id}"

    db.refresh(message)
    assert message.slack_thread_state == SlackThreadState.UNTHREADED
    assert message.slack_message_ts is None


@pytest.mark.asyncio
async def test_failed_update_keeps_posted_state_and_emails_reply(db, fake_slack, fake_email):
    mailbox, _, conversation = _vip_setup(db)
    agent = create_user(db, mailbox, display_name="Sam")
    original = create_message(db, conversation)
    await vip_notification_service.notify_vip_message(db, original.id)
    fake_slack.update_error = SlackApiError("chat.update", "message_not_found")

    reply = create_message(
        db, conversation, role=MessageRole.STAFF, user_id=agent.id, response_to_id=original.id
    )
    result = await vip_notification_service.notify_vip_message(db, reply.id)

    assert result.chat == VipChatStatus.FAILED
    assert result.email == DeliveryStatus.SENT
    assert fake_email.sent[-1]["subject"] == "Sam replied to Big Co"
    db.refresh(original)
    assert original.slack_thread_state == SlackThreadState.POSTED


@pytest.mark.asyncio
async def test_unknown_message_is_not_retried(db):
    with pytest.raises(NonRetriableJobError):
        await vip_notification_service.notify_vip_message(db, 424242)


def test_result_string_defaults():
    assert str(VipNotificationResult()) == "chat: skipped, email: skipped"


def test_find_vip_customer_uses_inclusive_threshold(db):
    mailbox = create_mailbox(db, vip_threshold=100)
    create_customer(db, mailbox, email="edge@example.com", value=10_000)

    assert vip_notification_service.find_vip_customer(db, mailbox, "edge@example.com")
    assert vip_notification_service.find_vip_customer(db, mailbox, "other@example.com") is None
    assert vip_notification_service.find_vip_customer(db, mailbox, None) is None


def test_publish_vip_message_created_once(db):
    _, _, conversation = _vip_setup(db)
    message = create_message(db, conversation)

    job = vip_notification_service.publish_vip_message_created(db, message)
    duplicate = vip_notification_service.publish_vip_message_created(db, message)

    assert job.job_type == JobType.VIP_MESSAGE_NOTIFY.value
    assert job.payload == {"message_id": message.id}
    assert duplicate is None
    assert len(db.scalars(select(Job)).all()) == 1
