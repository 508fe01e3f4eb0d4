"""Slack Web API client.

Thin async wrappers around chat.postMessage, chat.update and users.list.
Slack reports most failures as HTTP 200 with ``{"ok": false}``, so every
call checks the body as well as the status code.
"""

from __future__ import annotations

import logging

import httpx

from support_alerts.core.config import settings
from support_alerts.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries
from support_alerts.types import JsonObject, SlackBlocks

logger = logging.getLogger(__name__)

SLACK_TIMEOUT_SECONDS = 15.0
SLACK_MAX_ATTEMPTS = 3
SLACK_USERS_PAGE_SIZE = 200


class SlackApiError(Exception):
    """Slack returned an error (HTTP or ``ok: false``)."""

    def __init__(self, method: str, error: str):
        super().__init__(f"Slack {method} failed: {error}")
        self.method = method
        self.error = error


def _headers(bot_token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {bot_token}",
        "Content-Type": "application/json; charset=utf-8",
    }


def _parse_response(method: str, response: httpx.Response) -> JsonObject:
    if response.status_code >= 400:
        raise SlackApiError(method, f"HTTP {response.status_code}")
    try:
        data = response.json()
    except ValueError as exc:
        raise SlackApiError(method, "invalid JSON response") from exc
    if not isinstance(data, dict) or not data.get("ok"):
        error = data.get("error") if isinstance(data, dict) else None
        raise SlackApiError(method, str(error or "unknown_error"))
    return data


async def _call(
    bot_token: str,
    method: str,
    *,
    json: JsonObject | None = None,
    params: dict[str, str] | None = None,
) -> JsonObject:
    url = f"{settings.SLACK_API_BASE_URL.rstrip('/')}/{method}"
    async with httpx.AsyncClient(timeout=SLACK_TIMEOUT_SECONDS) as client:

        async def request_fn() -> httpx.Response:
            if json is None:
                return await client.get(url, headers=_headers(bot_token), params=params)
            return await client.post(url, headers=_headers(bot_token), json=json)

        response = await request_with_retries(
            request_fn,
            max_attempts=SLACK_MAX_ATTEMPTS,
            retry_statuses=DEFAULT_RETRY_STATUSES,
        )
    return _parse_response(method, response)


async def post_message(
    bot_token: str,
    *,
    channel: str,
    text: str,
    blocks: SlackBlocks | None = None,
) -> str:
    """Post a message and return its ``ts`` (the handle used for later updates)."""
    payload: JsonObject = {"channel": channel, "text": text}
    if blocks:
        payload["blocks"] = blocks
    data = await _call(bot_token, "chat.postMessage", json=payload)
    ts = data.get("ts")
    if not isinstance(ts, str) or not ts:
        raise SlackApiError("chat.postMessage", "missing ts in response")
    logger.info("Posted Slack message to channel %s", channel)
    return ts


async def update_message(
    bot_token: str,
    *,
    channel: str,
    ts: str,
    text: str,
    blocks: SlackBlocks | None = None,
) -> None:
    """Replace the content of an existing message in place."""
    payload: JsonObject = {"channel": channel, "ts": ts, "text": text}
    if blocks:
        payload["blocks"] = blocks
    await _call(bot_token, "chat.update", json=payload)
    logger.info("Updated Slack message %s in channel %s", ts, channel)


async def get_users_by_email(bot_token: str) -> dict[str, str]:
    """Map workspace member email -> Slack user id (for @-mentions)."""
    users: dict[str, str] = {}
    cursor = ""
    while True:
        params = {"limit": str(SLACK_USERS_PAGE_SIZE)}
        if cursor:
            params["cursor"] = cursor
        data = await _call(bot_token, "users.list", params=params)

        for member in data.get("members") or []:
            if not isinstance(member, dict) or member.get("deleted") or member.get("is_bot"):
                continue
            email = (member.get("profile") or {}).get("email")
            user_id = member.get("id")
            if email and user_id:
                users[email.lower()] = user_id

        cursor = ((data.get("response_metadata") or {}).get("next_cursor") or "").strip()
        if not cursor:
            return users


def mention_or_name(
    slack_users_by_email: dict[str, str],
    email: str | None,
    display_name: str | None,
) -> str:
    """Slack @-mention when the email maps to a member, else display name/email/Unknown."""
    if email:
        slack_user_id = slack_users_by_email.get(email.lower())
        if slack_user_id:
            return f"<@{slack_user_id}>"
    return display_name or email or "Unknown"
