"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    mailbox_id: int | None = None,
    job_id: int | None = None,
    job_type: str | None = None,
    message_id: int | None = None,
    channel: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict for use as ``extra=``."""
    context: dict[str, Any] = {}
    if mailbox_id is not None:
        context["mailbox_id"] = mailbox_id
    if job_id is not None:
        context["job_id"] = job_id
    if job_type:
        context["job_type"] = job_type
    if message_id is not None:
        context["message_id"] = message_id
    if channel:
        context["channel"] = channel
    return context


def mask_email(email: str | None) -> str:
    """Keep the first characters of the local part and the domain only."""
    if not email:
        return ""
    local, _, domain = email.partition("@")
    prefix = local[:3] if local else ""
    return f"{prefix}...@{domain}" if domain else f"{prefix}..."
