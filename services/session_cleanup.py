import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from firebase_admin import firestore
from sqlmodel import Session, select

from core.config import CLEANUP_MAX_BATCH_SIZE, SESSION_TIMEOUT_HOURS
from db.session import engine
from models.check_in_session import CheckInSession, SessionStatus

logger = logging.getLogger(__name__)

TIMEOUT_NOTE = "Session automatically closed due to timeout."


def close_stale_sessions(
    session: Session,
    timeout_hours: float = SESSION_TIMEOUT_HOURS,
    max_batch_size: int = CLEANUP_MAX_BATCH_SIZE,
    now: Optional[datetime] = None,
) -> List[int]:
    """
    Mark active sessions older than timeout_hours as errored.

    The check-out time is set to the check-in time so no hours are credited.
    Returns the ids that were closed; all updates commit together.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=timeout_hours)

    stale: List[CheckInSession] = session.exec(
        select(CheckInSession)
        .where(CheckInSession.status == SessionStatus.ACTIVE)
        .where(CheckInSession.check_in_time < cutoff)
        .order_by(CheckInSession.check_in_time)
        .limit(max_batch_size)
    ).all()

    if not stale:
        logger.info("No stale sessions found.")
        return []

    closed_ids = []
    for record in stale:
        logger.info(f"Found stale session: {record.id}")
        record.status = SessionStatus.ERROR
        record.notes = TIMEOUT_NOTE
        record.check_out_time = record.check_in_time
        record.duration_minutes = 0
        record.updated_at = now
        session.add(record)
        closed_ids.append(record.id)

    try:
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Cleaned up {len(closed_ids)} stale sessions.")
    return closed_ids


def record_cleanup_metrics(db, cleaned_sessions: int) -> None:
    db.collection("system").document("cleanup_metrics").set(
        {
            "cleanedSessions": cleaned_sessions,
            "timestamp": firestore.SERVER_TIMESTAMP,
            "type": "session_cleanup",
        },
        merge=True,
    )


def _run_cleanup_once(db, timeout_hours: float, max_batch_size: int) -> List[int]:
    """Blocking DB work for a single cleanup pass (run off the event loop)."""
    with Session(engine) as session:
        closed = close_stale_sessions(session, timeout_hours, max_batch_size)

    try:
        record_cleanup_metrics(db, len(closed))
    except Exception as e:
        # Sessions are already closed; a missing metric must not fail the job
        logger.error(f"Could not record cleanup metrics: {e}")
    return closed


async def run_session_cleanup_async(
    db,
    timeout_hours: float = SESSION_TIMEOUT_HOURS,
    max_batch_size: int = CLEANUP_MAX_BATCH_SIZE,
) -> List[int]:
    return await asyncio.to_thread(_run_cleanup_once, db, timeout_hours, max_batch_size)
