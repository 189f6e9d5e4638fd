"""UTC time helpers.

SQLite hands DateTime(timezone=True) columns back as naive values; everything
that does arithmetic on stored timestamps goes through ``as_utc``.
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def period_start(moment: datetime) -> date:
    """First day of the calendar month (UTC) containing ``moment``."""
    moment = as_utc(moment)
    return date(moment.year, moment.month, 1)
