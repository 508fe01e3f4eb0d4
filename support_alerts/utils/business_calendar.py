"""Mailbox-local calendar helpers.

Weekend checks and report windows follow the mailbox's configured time zone,
not UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from support_alerts.core.config import settings


def get_mailbox_timezone(mailbox) -> ZoneInfo:
    """Get the mailbox time zone with fallback: mailbox -> settings default -> UTC."""
    for name in (getattr(mailbox, "timezone", None), settings.DEFAULT_TIMEZONE):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def is_weekend(now: datetime, tz: ZoneInfo) -> bool:
    """Saturday or Sunday in the given time zone."""
    return now.astimezone(tz).weekday() >= 5


def previous_week_range(now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """
    Return the previous Sunday-Saturday week in ``tz`` as UTC datetimes.

    The start is Sunday 00:00 local, the end is Saturday 23:59:59.999999 local.
    """
    local_today = now.astimezone(tz).date()
    # weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (local_today.weekday() + 1) % 7
    this_week_start = local_today - timedelta(days=days_since_sunday)
    last_week_start = this_week_start - timedelta(days=7)
    last_week_end = last_week_start + timedelta(days=6)

    start = datetime.combine(last_week_start, time.min, tzinfo=tz)
    end = datetime.combine(last_week_end, time.max, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_date(moment: datetime, tz: ZoneInfo) -> date:
    return moment.astimezone(tz).date()
