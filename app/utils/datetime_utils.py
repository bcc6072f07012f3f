# app/utils/datetime_utils.py
import os
from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

# IANA zone that defines "today" for streaks and the time-of-day buckets.
ACTIVITY_TIMEZONE = os.getenv("ACTIVITY_TIMEZONE", "UTC")


def utcnow() -> datetime:
    """Naive UTC, the form Mongo hands back for stored datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def activity_zone() -> tzinfo:
    if ACTIVITY_TIMEZONE.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(ACTIVITY_TIMEZONE)


def to_local(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(activity_zone())


def local_date(dt: datetime) -> date:
    return to_local(dt).date()
