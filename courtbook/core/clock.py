"""Time helpers shared by the booking services."""
from datetime import date, datetime, time, timezone
from typing import Callable, Optional

import pytz

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a timestamp to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def facility_tz(name: Optional[str]):
    return pytz.timezone(name or "UTC")


def to_local(value: datetime, tz_name: Optional[str]) -> datetime:
    """Convert a UTC timestamp to the facility's wall-clock time."""
    return ensure_utc(value).astimezone(facility_tz(tz_name))


def local_to_utc(day: date, at: time, tz_name: Optional[str]) -> datetime:
    """Interpret a local date and time in the facility's timezone."""
    tz = facility_tz(tz_name)
    return tz.localize(datetime.combine(day, at)).astimezone(timezone.utc)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval intersection test."""
    return not (end_a <= start_b or start_a >= end_b)
