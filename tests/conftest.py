"""
Test configuration and fixtures.

Provides:
- SQLite in-memory database, recreated for every test
- Recording fakes for the Slack and Resend clients
"""
import os
from dataclasses import dataclass, field
from typing import Generator

import pytest
from sqlalchemy.orm import Session

# Settings are read at import time; configure before importing the package.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENV"] = "test"
os.environ["APP_BASE_URL"] = "https://helper.test"
os.environ["RESEND_API_KEY"] = "re_test_key"
os.environ["RESEND_FROM_ADDRESS"] = "alerts@helper.test"
os.environ["SENTRY_DSN"] = ""

from support_alerts.db.base import Base  # noqa: E402
from support_alerts.db.session import SessionLocal, engine  # noqa: E402
from support_alerts.services import email_transport, slack_client  # noqa: E402


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test; app code is free to commit."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


# =============================================================================
# Delivery fakes
# =============================================================================

@dataclass
class FakeSlack:
    posts: list[dict] = field(default_factory=list)
    updates: list[dict] = field(default_factory=list)
    users_by_email: dict[str, str] = field(default_factory=dict)
    user_lookups: int = 0
    post_error: Exception | None = None
    update_error: Exception | None = None
    next_ts: int = 1000

    async def post_message(self, bot_token, *, channel, text, blocks=None):
        if self.post_error:
            raise self.post_error
        self.next_ts += 1
        ts = f"{self.next_ts}.000100"
        self.posts.append(
            {"token": bot_token, "channel": channel, "text": text, "blocks": blocks, "ts": ts}
        )
        return ts

    async def update_message(self, bot_token, *, channel, ts, text, blocks=None):
        if self.update_error:
            raise self.update_error
        self.updates.append(
            {"token": bot_token, "channel": channel, "ts": ts, "text": text, "blocks": blocks}
        )

    async def get_users_by_email(self, bot_token):
        self.user_lookups += 1
        return dict(self.users_by_email)


@dataclass
class FakeEmail:
    sent: list[dict] = field(default_factory=list)
    error: Exception | None = None

    async def send_email(self, *, to, subject, html, text=None, idempotency_key=None):
        if self.error:
            raise self.error
        self.sent.append(
            {"to": to, "subject": subject, "html": html, "idempotency_key": idempotency_key}
        )
        return f"email-{len(self.sent)}"


@pytest.fixture
def fake_slack(monkeypatch) -> FakeSlack:
    fake = FakeSlack()
    monkeypatch.setattr(slack_client, "post_message", fake.post_message)
    monkeypatch.setattr(slack_client, "update_message", fake.update_message)
    monkeypatch.setattr(slack_client, "get_users_by_email", fake.get_users_by_email)
    return fake


@pytest.fixture
def fake_email(monkeypatch) -> FakeEmail:
    fake = FakeEmail()
    monkeypatch.setattr(email_transport, "send_email", fake.send_email)
    return fake
