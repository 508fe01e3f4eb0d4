"""Tests for delivery channel resolution."""

from types import SimpleNamespace

from support_alerts.core.config import settings
from support_alerts.services.channel_resolver import parse_recipients, resolve_channels


def _mailbox(**overrides):
    values = {"slack_bot_token": "xoxb-token", "email_escalation_recipients": "a@example.com"}
    values.update(overrides)
    return SimpleNamespace(**values)


def test_parse_recipients_trims_and_drops_empties():
    assert parse_recipients(" a@example.com, ,b@example.com ,") == ["a@example.com", "b@example.com"]
    assert parse_recipients("a@example.com,a@example.com") == ["a@example.com", "a@example.com"]
    assert parse_recipients(None) == []
    assert parse_recipients("") == []


def test_chat_requires_token_and_channel():
    assert resolve_channels(_mailbox(), chat_channel="C123").chat_enabled
    assert not resolve_channels(_mailbox(), chat_channel=None).chat_enabled
    assert not resolve_channels(_mailbox(slack_bot_token=None), chat_channel="C123").chat_enabled
    assert not resolve_channels(_mailbox(slack_bot_token="  "), chat_channel="C123").chat_enabled


def test_email_requires_recipients():
    channels = resolve_channels(_mailbox(email_escalation_recipients=" , "), chat_channel="C123")
    assert not channels.email_enabled
    assert channels.chat_enabled
    assert channels.any_enabled


def test_email_disabled_without_resend_credentials(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "")
    channels = resolve_channels(_mailbox(), chat_channel=None)

    assert channels.recipients == ["a@example.com"]
    assert not channels.email_enabled
    assert not channels.any_enabled

    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_key")
    monkeypatch.setattr(settings, "RESEND_FROM_ADDRESS", " ")
    assert not resolve_channels(_mailbox(), chat_channel=None).email_enabled
