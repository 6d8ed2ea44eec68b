"""
Timezone helpers.

DTR dates are calendar dates in the team's local timezone
(``settings.TIMEZONE``); timestamps are stored in UTC.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from tms.core.config import settings


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def local_today() -> date:
    return datetime.now(local_tz()).date()


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_local(value: datetime) -> datetime:
    return as_utc(value).astimezone(local_tz())
