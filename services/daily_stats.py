import logging
from collections import Counter
from datetime import date, timedelta
from typing import Dict, Optional

from firebase_admin import firestore
from pydantic import BaseModel
from sqlmodel import Session, select

from core.config import REPORT_TIMEZONE
from models.check_in_session import CheckInSession, SessionStatus
from utils.datetime_helpers import local_day_bounds_utc, local_today
from utils.session_helpers import calculate_session_duration

logger = logging.getLogger(__name__)


class DailyStats(BaseModel):
    date: str
    timezone: str
    total_sessions: int
    completed_sessions: int
    average_duration_minutes: float
    by_school: Dict[str, int]
    by_provider: Dict[str, int]


def daily_stats_doc_id(day: date) -> str:
    return f"daily_stats_{day.isoformat()}"


def compute_daily_stats(
    session: Session, day: date, tz_name: str = REPORT_TIMEZONE
) -> DailyStats:
    start_utc, end_utc = local_day_bounds_utc(day, tz_name)

    sessions = session.exec(
        select(CheckInSession)
        .where(CheckInSession.check_in_time >= start_utc)
        .where(CheckInSession.check_in_time < end_utc)
    ).all()

    by_school: Counter = Counter()
    by_provider: Counter = Counter()
    completed = 0
    total_duration = 0

    for s in sessions:
        by_school[s.school_id] += 1
        by_provider[s.user_id] += 1
        if s.status == SessionStatus.COMPLETED and s.check_out_time is not None:
            completed += 1
            total_duration += calculate_session_duration(s.check_in_time, s.check_out_time)

    return DailyStats(
        date=day.isoformat(),
        timezone=tz_name,
        total_sessions=len(sessions),
        completed_sessions=completed,
        average_duration_minutes=round(total_duration / completed, 2) if completed else 0.0,
        by_school=dict(by_school),
        by_provider=dict(by_provider),
    )


def generate_daily_stats(
    session: Session,
    db,
    day: Optional[date] = None,
    tz_name: str = REPORT_TIMEZONE,
) -> DailyStats:
    """Aggregate one day's sessions (yesterday by default) and store them in Firestore."""
    day = day or (local_today(tz_name) - timedelta(days=1))
    stats = compute_daily_stats(session, day, tz_name)

    doc = stats.model_dump()
    doc["generatedAt"] = firestore.SERVER_TIMESTAMP
    db.collection("system").document(daily_stats_doc_id(day)).set(doc)

    logger.info(
        f"Daily statistics generated for {stats.date}: "
        f"{stats.total_sessions} sessions, {stats.completed_sessions} completed"
    )
    return stats


def load_daily_stats(db, day: date) -> Optional[dict]:
    snapshot = db.collection("system").document(daily_stats_doc_id(day)).get()
    if not snapshot.exists:
        return None
    data = snapshot.to_dict()
    data.pop("generatedAt", None)
    return data
