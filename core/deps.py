import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from core.config import ADMIN_ROLES
from core.firebase import get_firestore, verify_id_token
from services.user_directory import get_user_profile
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

# Standard credentials exception
CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


# Cache Instances Live On The App; Handed Out Per Request
def get_school_cache(request: Request) -> TTLCache:
    return request.app.state.school_cache


def get_user_cache(request: Request) -> TTLCache:
    return request.app.state.user_cache


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_header.split(" ", 1)[1]


# Verifies Firebase Token And Pulls The Firestore Profile
async def get_current_user(
    request: Request,
    db=Depends(get_firestore),
    user_cache: TTLCache = Depends(get_user_cache),
) -> dict:

    # 1) Extract the token
    token = _bearer_token(request)

    # 2) Verify This Points to a Real User Account
    try:
        decoded = verify_id_token(token)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    uid = decoded.get("uid")
    if not uid:
        raise CREDENTIALS_EXCEPTION

    # 3) Fetch the Firestore user profile
    try:
        profile = get_user_profile(db, user_cache, uid)
    except Exception as e:
        logger.error(f"Firestore error fetching profile for {uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not fetch user profile.",
        )
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found in Firestore",
        )
    if not profile.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return profile


# Admin Role Check Dependency
async def require_admin_role(
    current_user: Annotated[dict, Depends(get_current_user)]
) -> dict:
    if current_user.get("role") not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User doesn't have sufficient privileges for this action",
        )
    return current_user
