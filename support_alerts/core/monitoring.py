"""Error tracking helpers (Sentry)."""

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from support_alerts.core.config import settings

logger = logging.getLogger(__name__)


def setup_sentry(service_name: str) -> bool:
    """
    Initialize Sentry when a DSN is configured outside dev.

    Returns True if Sentry was initialized.
    """
    if not settings.SENTRY_DSN or settings.ENV == "dev":
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.VERSION,
        server_name=service_name,
        integrations=[SqlalchemyIntegration()],
        traces_sample_rate=0.0,
        send_default_pii=False,  # Don't send customer emails to Sentry
    )
    logger.info("Sentry initialized for %s", service_name)
    return True


def capture_exception_and_log(exc: BaseException, context: dict[str, Any] | None = None) -> None:
    """Log an exception with traceback and forward it to Sentry.

    Used at channel boundaries where the error must not propagate.
    """
    context = context or {}
    logger.error(
        "%s: %s",
        type(exc).__name__,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra=context,
    )
    sentry_sdk.capture_exception(exc)
