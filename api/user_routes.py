import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from core.deps import get_current_user
from core.firebase import get_firestore
from services.user_directory import record_user_activity

logger = logging.getLogger(__name__)

router = APIRouter()


class ActivityReport(BaseModel):
    activity_type: Optional[str] = None
    metadata: Dict[str, Any] = {}


# Touches lastActiveAt on the profile and appends to the activity log
@router.post("/activity")
def post_user_activity(
    data: ActivityReport,
    user: dict = Depends(get_current_user),
    db=Depends(get_firestore),
):
    try:
        record_user_activity(db, user["uid"], data.activity_type, data.metadata)
    except Exception as e:
        logger.error(f"Error recording activity for {user['uid']}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not record user activity.",
        )
    return {"status": "success"}
