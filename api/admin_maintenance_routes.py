import logging
from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from core.config import CLEANUP_MAX_BATCH_SIZE, REPORT_TIMEZONE, SESSION_TIMEOUT_HOURS
from core.deps import get_school_cache, get_user_cache, require_admin_role
from core.firebase import get_firestore
from db.session import get_session
from services.daily_stats import DailyStats, generate_daily_stats, load_daily_stats
from services.session_cleanup import run_session_cleanup_async
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/run-session-cleanup")
async def run_session_cleanup(
    admin_user: Annotated[dict, Depends(require_admin_role)],
    timeout_hours: Optional[float] = Query(default=None, gt=0),
    db=Depends(get_firestore),
):
    """
    One-shot execution of the stale session cleanup. Admin-only (Bearer token with admin role).

    Query params:
    - timeout_hours: optional override; defaults to env SESSION_TIMEOUT_HOURS or 12
    """
    effective_timeout = timeout_hours if timeout_hours is not None else SESSION_TIMEOUT_HOURS

    closed = await run_session_cleanup_async(db, effective_timeout, CLEANUP_MAX_BATCH_SIZE)

    return {
        "status": "ok",
        "timeout_hours": effective_timeout,
        "cleaned_sessions": len(closed),
        "session_ids": closed,
    }


@router.post("/daily-stats", response_model=DailyStats)
def create_daily_stats(
    admin_user: Annotated[dict, Depends(require_admin_role)],
    session: Annotated[Session, Depends(get_session)],
    target_date: Optional[date] = Query(default=None, description="Defaults to yesterday"),
    db=Depends(get_firestore),
):
    try:
        return generate_daily_stats(session, db, target_date, REPORT_TIMEZONE)
    except Exception as e:
        logger.error(f"Error generating daily stats for {target_date}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not store daily statistics.",
        )


@router.get("/daily-stats")
def read_daily_stats(
    target_date: date,
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    stats = load_daily_stats(db, target_date)
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No daily statistics for {target_date.isoformat()}.",
        )
    return stats


@router.get("/cache")
def get_cache_stats(
    admin_user: Annotated[dict, Depends(require_admin_role)],
    school_cache: Annotated[TTLCache, Depends(get_school_cache)],
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
):
    return {"schools": school_cache.stats(), "users": user_cache.stats()}


@router.post("/cache/clear")
def clear_caches(
    admin_user: Annotated[dict, Depends(require_admin_role)],
    school_cache: Annotated[TTLCache, Depends(get_school_cache)],
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
):
    school_cache.clear()
    user_cache.clear()
    logger.info(f"Admin {admin_user.get('email')} cleared caches")
    return {"status": "success", "message": "Caches cleared."}
