import logging
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlmodel import Session, func, select

from core.deps import require_admin_role
from db.session import get_session
from models.check_in_session import CheckInSession, SessionStatus
from utils.datetime_helpers import ensure_utc
from utils.query_filters import FilterOp, RecordQuery
from utils.session_helpers import calculate_session_duration, create_session_summary

logger = logging.getLogger(__name__)

router = APIRouter()


class SessionUpdate(BaseModel):
    status: Optional[SessionStatus] = None
    notes: Optional[str] = None


def session_filters(
    user_id: Optional[str] = None,
    school_id: Optional[str] = None,
    status: Optional[SessionStatus] = None,
    start: Optional[datetime] = Query(default=None, description="Check-in at or after (UTC)"),
    end: Optional[datetime] = Query(default=None, description="Check-in before (UTC)"),
) -> RecordQuery:
    """Query parameters shared by the listing and summary endpoints."""
    return (
        RecordQuery()
        .where_if(user_id is not None, "user_id", FilterOp.EQ, user_id)
        .where_if(school_id is not None, "school_id", FilterOp.EQ, school_id)
        .where_if(status is not None, "status", FilterOp.EQ, status)
        .where_if(start is not None, "check_in_time", FilterOp.GE, ensure_utc(start))
        .where_if(end is not None, "check_in_time", FilterOp.LT, ensure_utc(end))
    )


@router.get("")
def list_sessions(
    query: Annotated[RecordQuery, Depends(session_filters)],
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    total = session.exec(
        query.apply_to_statement(select(func.count()).select_from(CheckInSession), CheckInSession)
    ).one()
    rows = session.exec(
        query.order("check_in_time", descending=True)
        .skip(offset)
        .take(limit)
        .apply_to_statement(select(CheckInSession), CheckInSession)
    ).all()
    return {"status": "success", "data": rows, "total": total}


@router.get("/summary")
def get_sessions_summary(
    query: Annotated[RecordQuery, Depends(session_filters)],
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    rows = session.exec(query.apply_to_statement(select(CheckInSession), CheckInSession)).all()
    return {"status": "success", "data": create_session_summary(rows)}


@router.put("/{session_id}")
def update_session(
    session_id: int,
    update: SessionUpdate,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    record = session.get(CheckInSession, session_id)
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found.",
        )

    if update.status == SessionStatus.ACTIVE and record.status != SessionStatus.ACTIVE:
        # A user holds at most one active session
        open_session = session.exec(
            select(CheckInSession).where(
                CheckInSession.user_id == record.user_id,
                CheckInSession.status == SessionStatus.ACTIVE,
                CheckInSession.id != record.id,
            )
        ).first()
        if open_session is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"User {record.user_id} already has an active session ({open_session.id}).",
            )
        record.check_out_time = None
        record.check_out_latitude = None
        record.check_out_longitude = None
        record.check_out_accuracy = None
        record.check_out_distance_meters = None
        record.duration_minutes = None

    now = datetime.now(timezone.utc)
    if update.notes is not None:
        record.notes = update.notes
    if update.status is not None and update.status != record.status:
        # Closing by hand stamps the check-out like a normal check-out would
        if update.status != SessionStatus.ACTIVE and record.check_out_time is None:
            record.check_out_time = now
            record.duration_minutes = calculate_session_duration(record.check_in_time, now)
        record.status = update.status
    record.updated_at = now

    try:
        session.add(record)
        session.commit()
        session.refresh(record)
    except Exception as e:
        session.rollback()
        logger.error(f"Error updating session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not update session.",
        )

    logger.info(f"Admin {admin_user.get('email')} updated session {session_id}")
    return {"status": "success", "data": record}


@router.delete("/{session_id}")
def delete_session(
    session_id: int,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    record = session.get(CheckInSession, session_id)
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found.",
        )

    try:
        session.delete(record)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Error deleting session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not delete session.",
        )

    logger.info(f"Admin {admin_user.get('email')} deleted session {session_id}")
    return {"status": "success", "message": f"Session {session_id} deleted successfully."}
