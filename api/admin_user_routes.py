import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from core.config import VALID_ROLES
from core.deps import get_user_cache, require_admin_role
from core.firebase import get_firestore
from services import user_directory
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

# Define Router
router = APIRouter()


class UserInfo(BaseModel):
    uid: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    assigned_schools: List[str] = []
    is_active: bool = True


class RoleUpdate(BaseModel):
    role: str


@router.get("/users", response_model=List[UserInfo])
def list_all_users_for_admin(
    admin_user: Annotated[dict, Depends(require_admin_role)],
    role: Optional[str] = Query(default=None, description=f"One of {VALID_ROLES}"),
    db=Depends(get_firestore),
):
    try:
        return user_directory.list_users(db, role=role)
    except Exception as e:
        logger.error(f"Error listing users: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not retrieve user list.",
        )


@router.put("/users/{uid}/role")
def set_user_role(
    uid: str,
    update: RoleUpdate,
    admin_user: Annotated[dict, Depends(require_admin_role)],
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
    db=Depends(get_firestore),
):
    user_directory.set_user_role(db, user_cache, uid, update.role)
    return {"status": "success", "message": f"Role for user '{uid}' set to '{update.role}'."}
