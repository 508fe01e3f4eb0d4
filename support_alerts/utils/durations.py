"""Human-readable elapsed-time formatting for alerts and reports."""

from datetime import datetime, timedelta, timezone


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun if count == 1 else noun + 's'}"


def format_duration(start: datetime, now: datetime | None = None) -> str:
    """
    Render the time between ``start`` and ``now`` as days/hours/minutes.

    Only non-zero components are included, highest first
    (e.g. "1 day 2 hours 5 minutes", "45 minutes"). Zero or negative spans
    render as an empty string.
    """
    end = now or datetime.now(timezone.utc)
    delta = end - start
    if delta <= timedelta(0):
        return ""

    days = delta.days
    hours, remainder = divmod(delta.seconds, 3600)
    minutes = remainder // 60

    parts: list[str] = []
    if days > 0:
        parts.append(_plural(days, "day"))
    if hours > 0:
        parts.append(_plural(hours, "hour"))
    if minutes > 0:
        parts.append(_plural(minutes, "minute"))
    return " ".join(parts)


def format_hours_minutes(seconds: float) -> str:
    """Render a number of seconds as "Xh Ym" (used by the daily report)."""
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    return f"{hours}h {minutes}m"
