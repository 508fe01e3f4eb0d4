"""Shared helpers for worker job handlers."""

from __future__ import annotations

import logging

from support_alerts.services.job_service import NonRetriableJobError

logger = logging.getLogger(__name__)


def payload_int(job, key: str) -> int:
    """Read a required integer id from the job payload."""
    value = (job.payload or {}).get(key)
    if value is None:
        raise NonRetriableJobError(f"Missing {key} in job payload")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise NonRetriableJobError(f"Invalid {key} in job payload: {value!r}") from exc


def log_failed_mailboxes(job, result) -> None:
    """Per-mailbox failures are reported, not retried; the job itself completes."""
    for failed in result.failed_mailboxes:
        logger.warning(
            "Job %s (%s) failed for mailbox %s: %s",
            job.id,
            job.job_type,
            failed.slug,
            failed.error,
        )
