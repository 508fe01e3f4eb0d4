"""Escalation/report email sender (Resend).

Sending requires both RESEND_API_KEY and RESEND_FROM_ADDRESS. Callers check
``email_delivery_configured()`` first; a missing secret is a silent skip, not
an error.
"""

from __future__ import annotations

import html as html_module
import logging
import re

import httpx

from support_alerts.core.config import settings
from support_alerts.core.structured_logging import mask_email
from support_alerts.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries
from support_alerts.types import JsonObject

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


class EmailDeliveryError(Exception):
    """Resend rejected the message or could not be reached."""


def email_delivery_configured() -> bool:
    return settings.email_delivery_configured


def html_to_text(content: str) -> str:
    """Convert HTML into readable text (deliverability + inbox previews)."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<br\s*/?>|</p>|</div>", "\n", text, flags=re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\s*\n\s*", "\n", text).strip()
    return html_module.unescape(text)


async def send_email(
    *,
    to: list[str],
    subject: str,
    html: str,
    text: str | None = None,
    idempotency_key: str | None = None,
) -> str | None:
    """
    Send one email to all recipients via Resend.

    Returns the Resend message id (None for idempotent duplicates).
    Raises EmailDeliveryError on any failure.
    """
    if not email_delivery_configured():
        raise EmailDeliveryError("Email delivery not configured (RESEND_API_KEY / RESEND_FROM_ADDRESS)")
    if not to:
        raise EmailDeliveryError("No recipients")

    payload: JsonObject = {
        "from": settings.RESEND_FROM_ADDRESS.strip(),
        "to": to,
        "subject": subject,
        "html": html,
    }
    plain = text if text is not None else html_to_text(html)
    if plain:
        payload["text"] = plain

    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY.strip()}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    try:
        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

            async def request_fn() -> httpx.Response:
                return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

            response = await request_with_retries(
                request_fn,
                max_attempts=RESEND_MAX_ATTEMPTS,
                base_delay=RESEND_RETRY_BASE_DELAY,
                max_delay=RESEND_RETRY_MAX_DELAY,
                retry_statuses=DEFAULT_RETRY_STATUSES,
            )
    except httpx.TimeoutException as exc:
        raise EmailDeliveryError("Connection timeout") from exc
    except httpx.RequestError as exc:
        raise EmailDeliveryError(f"Connection error: {exc.__class__.__name__}") from exc

    if 200 <= response.status_code < 300:
        data = response.json()
        message_id = data.get("id") if isinstance(data, dict) else None
        logger.info(
            "Email sent to %s, message_id=%s",
            ", ".join(mask_email(recipient) for recipient in to),
            message_id,
        )
        return message_id

    # Resend uses 409 for idempotency conflicts: the message already went out.
    if response.status_code == 409:
        logger.info("Email already sent (409) for idempotency key %s", idempotency_key)
        return None

    detail = None
    try:
        data = response.json()
        if isinstance(data, dict):
            detail = data.get("message") or data.get("error")
    except ValueError:
        detail = None

    error_msg = f"Resend API error: {response.status_code}"
    if detail:
        error_msg = f"{error_msg} ({detail})"
    raise EmailDeliveryError(error_msg)
