import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import HTTPException, status
from firebase_admin import firestore
from google.cloud.firestore_v1.transforms import ArrayRemove, ArrayUnion

from core.config import PROVIDER_ROLE, VALID_ROLES
from utils.cache import TTLCache
from utils.query_filters import FilterOp, RecordQuery

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
USER_ACTIVITY_COLLECTION = "user_activity"


def _profile_from_snapshot(snapshot) -> Dict[str, Any]:
    data = snapshot.to_dict() or {}
    assigned = data.get("assignedSchools") or []
    # Older profiles stored assignments as a comma separated string
    if isinstance(assigned, str):
        assigned = [s.strip() for s in assigned.split(",") if s.strip()]
    return {
        "uid": snapshot.id,
        "name": data.get("displayName", ""),
        "email": data.get("email", ""),
        "role": data.get("role", ""),
        "assigned_schools": list(dict.fromkeys(assigned)),
        "is_active": data.get("isActive", True),
    }


def load_user_profile(db, uid: str) -> Optional[Dict[str, Any]]:
    snapshot = db.collection(USERS_COLLECTION).document(uid).get()
    if not snapshot.exists:
        return None
    return _profile_from_snapshot(snapshot)


def get_user_profile(
    db, cache: TTLCache, uid: str, force_refresh: bool = False
) -> Optional[Dict[str, Any]]:
    return cache.get_or_load(
        f"profile:{uid}",
        lambda: load_user_profile(db, uid),
        force_refresh=force_refresh,
    )


def list_users(db, role: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    query = (
        RecordQuery()
        .where_if(role is not None, "role", FilterOp.EQ, role)
        .take(limit)
    )
    docs = query.apply_to_firestore(db.collection(USERS_COLLECTION)).stream()
    users = [_profile_from_snapshot(doc) for doc in docs]
    return sorted(users, key=lambda u: (u["name"] or "").lower())


def list_school_providers(db, cache: TTLCache, school_id: str) -> List[Dict[str, Any]]:
    query = (
        RecordQuery()
        .where("assignedSchools", FilterOp.ARRAY_CONTAINS, school_id)
        .where("role", FilterOp.EQ, PROVIDER_ROLE)
    )

    def load():
        docs = query.apply_to_firestore(db.collection(USERS_COLLECTION)).stream()
        return [_profile_from_snapshot(doc) for doc in docs]

    return cache.get_or_load(query.cache_key(USERS_COLLECTION), load)


def _user_ref_or_404(db, uid: str):
    user_ref = db.collection(USERS_COLLECTION).document(uid)
    if not user_ref.get().exists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User '{uid}' not found.",
        )
    return user_ref


def _forget_user(cache: TTLCache, uid: str) -> None:
    cache.invalidate(f"profile:{uid}")
    # Provider listings are keyed by query; any of them may include this user
    cache.invalidate_prefix(USERS_COLLECTION)


def assign_school(db, cache: TTLCache, uid: str, school_id: str) -> None:
    user_ref = _user_ref_or_404(db, uid)
    user_ref.update(
        {
            "assignedSchools": ArrayUnion([school_id]),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }
    )
    _forget_user(cache, uid)
    logger.info(f"Assigned school {school_id} to user {uid}")


def remove_school(db, cache: TTLCache, uid: str, school_id: str) -> None:
    user_ref = _user_ref_or_404(db, uid)
    user_ref.update(
        {
            "assignedSchools": ArrayRemove([school_id]),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }
    )
    _forget_user(cache, uid)
    logger.info(f"Removed school {school_id} from user {uid}")


def set_user_role(db, cache: TTLCache, uid: str, role: str) -> None:
    if role not in VALID_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid role '{role}'. Must be one of: {', '.join(VALID_ROLES)}",
        )
    user_ref = _user_ref_or_404(db, uid)
    user_ref.update({"role": role, "updatedAt": firestore.SERVER_TIMESTAMP})
    _forget_user(cache, uid)
    logger.info(f"Set role '{role}' for user {uid}")


def record_user_activity(
    db, uid: str, activity_type: Optional[str], metadata: Optional[Dict[str, Any]] = None
) -> None:
    activity_type = activity_type or "unknown"
    db.collection(USERS_COLLECTION).document(uid).update(
        {
            "lastActiveAt": firestore.SERVER_TIMESTAMP,
            "lastActivityType": activity_type,
        }
    )
    db.collection(USER_ACTIVITY_COLLECTION).add(
        {
            "userId": uid,
            "activityType": activity_type,
            "metadata": metadata or {},
            "timestamp": firestore.SERVER_TIMESTAMP,
        }
    )


# --- Bulk assignments ---

# Firestore rejects batches with more writes than this
BATCH_WRITE_LIMIT = 500


def _commit_updates(db, updates: List[Tuple[Any, Dict[str, Any]]]) -> None:
    for start in range(0, len(updates), BATCH_WRITE_LIMIT):
        batch = db.batch()
        for user_ref, data in updates[start:start + BATCH_WRITE_LIMIT]:
            batch.update(user_ref, data)
        batch.commit()


def _assignment_update(transform) -> Dict[str, Any]:
    return {"assignedSchools": transform, "updatedAt": firestore.SERVER_TIMESTAMP}


def _existing_refs(db, uids: Iterable[str]) -> List[Tuple[str, Any]]:
    """References for the given uids, skipping users without a profile."""
    refs = []
    for uid in dict.fromkeys(uids):
        user_ref = db.collection(USERS_COLLECTION).document(uid)
        if user_ref.get().exists:
            refs.append((uid, user_ref))
        else:
            logger.warning(f"Skipping unknown user {uid}")
    return refs


def bulk_assign_school(db, cache: TTLCache, school_id: str, uids: Iterable[str]) -> List[str]:
    refs = _existing_refs(db, uids)
    _commit_updates(
        db, [(ref, _assignment_update(ArrayUnion([school_id]))) for _, ref in refs]
    )
    assigned = [uid for uid, _ in refs]
    for uid in assigned:
        _forget_user(cache, uid)
    logger.info(f"Assigned school {school_id} to {len(assigned)} users")
    return assigned


def bulk_remove_school(db, cache: TTLCache, school_id: str, uids: Iterable[str]) -> List[str]:
    refs = _existing_refs(db, uids)
    _commit_updates(
        db, [(ref, _assignment_update(ArrayRemove([school_id]))) for _, ref in refs]
    )
    removed = [uid for uid, _ in refs]
    for uid in removed:
        _forget_user(cache, uid)
    logger.info(f"Removed school {school_id} from {len(removed)} users")
    return removed


def replace_school_assignments(
    db, cache: TTLCache, school_id: str, uids: Iterable[str]
) -> Dict[str, List[str]]:
    """
    Make the given providers the exact set assigned to a school.

    Only providers whose membership changes are written; uids that are not
    providers are ignored.
    """
    wanted = set(uids)
    added, removed, updates = [], [], []
    for provider in list_users(db, role=PROVIDER_ROLE):
        uid = provider["uid"]
        assigned = school_id in provider["assigned_schools"]
        if uid in wanted and not assigned:
            added.append(uid)
            transform = ArrayUnion([school_id])
        elif uid not in wanted and assigned:
            removed.append(uid)
            transform = ArrayRemove([school_id])
        else:
            continue
        updates.append(
            (db.collection(USERS_COLLECTION).document(uid), _assignment_update(transform))
        )

    _commit_updates(db, updates)
    for uid in added + removed:
        _forget_user(cache, uid)
    logger.info(
        f"Replaced assignments for school {school_id}: +{len(added)} -{len(removed)}"
    )
    return {"added": added, "removed": removed}


def get_school_assignments(db, schools: Iterable[Any]) -> List[Dict[str, Any]]:
    """Providers assigned to each school, schools taken in the order given."""
    providers = list_users(db, role=PROVIDER_ROLE)
    overview = []
    for school in schools:
        assigned = [
            {
                "uid": p["uid"],
                "name": p["name"] or "Unknown",
                "email": p["email"],
                "is_active": p["is_active"],
            }
            for p in providers
            if school.id in p["assigned_schools"]
        ]
        overview.append(
            {
                "school_id": school.id,
                "school_name": school.name,
                "school_address": school.address or "",
                "is_active": school.is_active,
                "providers": assigned,
                "total_providers": len(assigned),
            }
        )
    return overview


def get_assignment_stats(db, schools: Iterable[Any]) -> Dict[str, int]:
    overview = get_school_assignments(db, schools)
    with_providers = sum(1 for school in overview if school["total_providers"])
    active_providers = {
        p["uid"] for school in overview for p in school["providers"] if p["is_active"]
    }
    return {
        "total_schools": len(overview),
        "schools_with_providers": with_providers,
        "schools_without_providers": len(overview) - with_providers,
        "total_assignments": sum(school["total_providers"] for school in overview),
        "active_providers": len(active_providers),
    }


def list_available_providers(db, exclude_school: Optional[str] = None) -> List[Dict[str, Any]]:
    """Active providers sorted by name, optionally leaving out those already at a school."""
    return [
        p for p in list_users(db, role=PROVIDER_ROLE)
        if p["is_active"] and exclude_school not in p["assigned_schools"]
    ]


def list_unassigned_providers(db) -> List[Dict[str, Any]]:
    return [p for p in list_available_providers(db) if not p["assigned_schools"]]
