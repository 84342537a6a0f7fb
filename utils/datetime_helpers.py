from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

import pytz


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # Naive values come back from the database; they are stored as UTC
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_utc_datetime(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime as ISO 8601 in UTC with a 'Z' suffix.

    Naive datetimes are treated as UTC.
    """
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def local_day_bounds_utc(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """[start, end) of a calendar day in tz_name, expressed in UTC."""
    tz = pytz.timezone(tz_name)
    start_local = tz.localize(datetime.combine(day, time.min))
    end_local = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
    return start_local.astimezone(pytz.utc), end_local.astimezone(pytz.utc)


def local_today(tz_name: str) -> date:
    return datetime.now(pytz.timezone(tz_name)).date()
