import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from firebase_admin import auth as firebase_auth
from firebase_admin import firestore, storage
from sqlalchemy import text
from sqlmodel import Session

from core.firebase import firestore_client, initialize_firebase
from db.session import get_session
from utils.datetime_helpers import format_utc_datetime

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"


def _check_database(session: Session) -> bool:
    try:
        session.exec(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False


def _check_firestore() -> bool:
    try:
        firestore_client().collection("system").document("health_check").set(
            {"test": True, "timestamp": firestore.SERVER_TIMESTAMP}
        )
        return True
    except Exception as e:
        logger.warning(f"Firestore health check failed: {e}")
        return False


def _check_auth() -> bool:
    try:
        initialize_firebase()
        firebase_auth.list_users(max_results=1)
        return True
    except Exception as e:
        logger.warning(f"Auth health check failed: {e}")
        return False


def _check_storage() -> bool:
    try:
        initialize_firebase()
        return bool(storage.bucket().exists())
    except Exception as e:
        logger.warning(f"Storage health check failed: {e}")
        return False


@router.get("")
def health_check(
    session: Session = Depends(get_session),
):
    checks = {
        "database": _check_database(session),
        "firestore": _check_firestore(),
        "auth": _check_auth(),
        "storage": _check_storage(),
    }
    return {
        "status": "healthy" if all(checks.values()) else "degraded",
        "checks": checks,
        "timestamp": format_utc_datetime(datetime.now(timezone.utc)),
        "version": API_VERSION,
    }
