from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, func, select

from core.deps import get_current_user, get_school_cache
from db.session import get_session
from models.check_in_session import CheckInRequest, CheckInSession, CheckOutRequest
from services.session_service import SessionService, get_active_session
from utils.cache import TTLCache
from utils.query_filters import FilterOp, RecordQuery

# Defines API Endpoints
router = APIRouter()


# Check In Endpoint
@router.post("/check-in")
def check_in(
    data: CheckInRequest,
    session: Session = Depends(get_session),
    school_cache: TTLCache = Depends(get_school_cache),
    user: dict = Depends(get_current_user),
):
    return SessionService.check_in(
        user=user, payload=data, session=session, school_cache=school_cache
    )


# Check Out Endpoint
@router.post("/check-out")
def check_out(
    data: CheckOutRequest,
    session: Session = Depends(get_session),
    school_cache: TTLCache = Depends(get_school_cache),
    user: dict = Depends(get_current_user),
):
    return SessionService.check_out(
        user=user, payload=data, session=session, school_cache=school_cache
    )


# Get The Open Session, If Any
@router.get("/current")
def get_current_session(
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    active = get_active_session(session, user["uid"])
    if not active:
        return {"status": "success", "data": None, "message": "No active session."}
    return {"status": "success", "data": active}


# Paginated History, Newest First
@router.get("/history")
def get_session_history(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    school_id: str | None = None,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    query = (
        RecordQuery()
        .where("user_id", FilterOp.EQ, user["uid"])
        .where_if(school_id is not None, "school_id", FilterOp.EQ, school_id)
    )

    total = session.exec(
        query.apply_to_statement(select(func.count()).select_from(CheckInSession), CheckInSession)
    ).one()

    offset = (page - 1) * page_size
    # One extra row tells us whether another page exists
    rows = session.exec(
        query.order("check_in_time", descending=True)
        .skip(offset)
        .take(page_size + 1)
        .apply_to_statement(select(CheckInSession), CheckInSession)
    ).all()

    return {
        "status": "success",
        "data": rows[:page_size],
        "page": page,
        "page_size": page_size,
        "total": total,
        "has_more": len(rows) > page_size,
    }


@router.get("/{session_id}")
def get_session_detail(
    session_id: int,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    record = session.get(CheckInSession, session_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found.")
    if record.user_id != user["uid"]:
        raise HTTPException(
            status_code=403,
            detail=f"You do not have permission to view session {session_id}.",
        )
    return {"status": "success", "data": record}
