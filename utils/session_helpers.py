import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from utils.datetime_helpers import ensure_utc


def calculate_session_duration(
    check_in_time: datetime, check_out_time: Optional[datetime]
) -> int:
    """Whole minutes between check-in and check-out; 0 while the session is open."""
    if check_out_time is None:
        return 0
    elapsed = ensure_utc(check_out_time) - ensure_utc(check_in_time)
    return math.floor(elapsed.total_seconds() / 60 + 0.5)


def format_duration(minutes: int) -> str:
    if minutes <= 0:
        return "0m"
    if minutes < 60:
        return f"{minutes}m"

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}m"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_duration_detailed(minutes: int) -> str:
    if minutes <= 0:
        return "0 minutes"
    if minutes < 60:
        return _plural(minutes, "minute")

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return _plural(hours, "hour")
    return f"{_plural(hours, 'hour')} {_plural(remaining, 'minute')}"


def validate_session_data(data: Mapping[str, Any]) -> List[str]:
    errors = []
    if not data.get("user_id"):
        errors.append("User ID is required")
    if not data.get("school_id"):
        errors.append("School ID is required")
    if data.get("check_in_latitude") is None or data.get("check_in_longitude") is None:
        errors.append("Check-in location is required")
    if not data.get("check_in_time"):
        errors.append("Check-in time is required")
    return errors


def is_session_still_active(
    check_in_time: datetime,
    max_hours: float = 12,
    now: Optional[datetime] = None,
) -> bool:
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    return now - ensure_utc(check_in_time) <= timedelta(hours=max_hours)


def create_session_summary(sessions: Iterable[Any]) -> Dict[str, int]:
    """
    Totals for a set of sessions.

    Accepts CheckInSession records or dicts with 'status' and
    'duration_minutes'. The average is taken over completed sessions.
    """
    total_sessions = 0
    active_sessions = 0
    completed_sessions = 0
    total_duration = 0

    for s in sessions:
        status = s.get("status") if isinstance(s, Mapping) else s.status
        duration = (
            s.get("duration_minutes") if isinstance(s, Mapping) else s.duration_minutes
        )
        status = getattr(status, "value", status)

        total_sessions += 1
        if status == "active":
            active_sessions += 1
        elif status == "completed":
            completed_sessions += 1
        total_duration += duration or 0

    average_duration = (
        math.floor(total_duration / completed_sessions + 0.5) if completed_sessions else 0
    )
    return {
        "total_sessions": total_sessions,
        "total_duration": total_duration,
        "average_duration": average_duration,
        "active_sessions": active_sessions,
        "completed_sessions": completed_sessions,
    }
