import logging
from datetime import datetime, timezone
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from pydantic import Field as PydanticField
from sqlmodel import Session, select

from core.deps import get_school_cache, get_user_cache, require_admin_role
from core.firebase import get_firestore
from db.session import get_session
from models.check_in_session import CheckInSession
from models.school import School
from services import user_directory
from services.location_validation import LocationValidationResult, validate_location
from services.school_directory import forget_school
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

# --- Router Definition ---
router = APIRouter()


# --- Pydantic Data Models ---


# Base model: Common fields required or used by other School models
class SchoolBase(BaseModel):
    name: str = PydanticField(..., min_length=2)
    address: str = PydanticField(..., min_length=5)
    center_lat: float = PydanticField(..., ge=-90, le=90)
    center_lng: float = PydanticField(..., ge=-180, le=180)
    radius_meters: float = PydanticField(gt=0)  # Ensures radius is positive
    is_active: bool = True


# Create model: Data needed when creating a NEW school via POST
class SchoolCreate(SchoolBase):
    id: str = PydanticField(
        ..., min_length=1, description="Unique school identifier (e.g., district code)"
    )


# Read model: How school data is sent back in responses
class SchoolRead(SchoolBase):
    id: str
    address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Update model: Fields that CAN be updated via PUT (all optional)
class SchoolUpdate(BaseModel):
    name: Optional[str] = PydanticField(default=None, min_length=2)
    address: Optional[str] = None
    center_lat: Optional[float] = PydanticField(default=None, ge=-90, le=90)
    center_lng: Optional[float] = PydanticField(default=None, ge=-180, le=180)
    radius_meters: Optional[float] = PydanticField(default=None, gt=0)  # Validate if sent
    is_active: Optional[bool] = None


class SchoolWriteResponse(BaseModel):
    school: SchoolRead
    validation: LocationValidationResult


class ProviderInfo(BaseModel):
    uid: str
    name: Optional[str] = None
    email: Optional[str] = None


def _validate_or_400(school: School) -> LocationValidationResult:
    result = validate_location(
        school.address, school.center_lat, school.center_lng, school.radius_meters
    )
    if not result.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid school location.", "errors": result.errors},
        )
    return result


def _get_school_or_404(session: Session, school_id: str) -> School:
    db_school = session.get(School, school_id)
    if not db_school:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"School with ID '{school_id}' not found.",
        )
    return db_school


# --- API Endpoints ---


# Endpoint: Create a New School
@router.post("/schools", response_model=SchoolWriteResponse, status_code=status.HTTP_201_CREATED)
def create_school(
    school_in: SchoolCreate,
    session: Annotated[Session, Depends(get_session)],
    school_cache: Annotated[TTLCache, Depends(get_school_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    if session.get(School, school_in.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"School with ID '{school_in.id}' already exists.",
        )

    db_school = School(**school_in.model_dump())
    validation = _validate_or_400(db_school)

    try:
        session.add(db_school)
        session.commit()
        session.refresh(db_school)
    except Exception as e:
        session.rollback()
        logger.error(f"Error creating school {school_in.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create school.",
        )

    forget_school(school_cache, db_school.id)
    logger.info(f"Admin {admin_user.get('email')} created school {db_school.id}")
    return SchoolWriteResponse(
        school=SchoolRead.model_validate(db_school, from_attributes=True),
        validation=validation,
    )


# Endpoint: List All Schools
@router.get("/schools", response_model=List[SchoolRead])
def list_all_schools(
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    include_inactive: bool = True,
):
    statement = select(School).order_by(School.name)
    if not include_inactive:
        statement = statement.where(School.is_active == True)
    return session.exec(statement).all()


# Endpoint: Get a Single School by ID
@router.get("/schools/{school_id}", response_model=SchoolRead)
def read_school(
    school_id: str,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    return _get_school_or_404(session, school_id)


# Endpoint: Update an Existing School by ID
@router.put("/schools/{school_id}", response_model=SchoolWriteResponse)
def update_school(
    school_id: str,
    school_update: SchoolUpdate,
    session: Annotated[Session, Depends(get_session)],
    school_cache: Annotated[TTLCache, Depends(get_school_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    db_school = _get_school_or_404(session, school_id)

    # exclude_unset=True ensures we only get fields the client actually sent
    update_data = school_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        # Required columns cannot be cleared
        if value is None:
            continue
        setattr(db_school, key, value)
    db_school.updated_at = datetime.now(timezone.utc)

    try:
        validation = _validate_or_400(db_school)
    except HTTPException:
        session.rollback()
        raise

    try:
        session.add(db_school)
        session.commit()
        session.refresh(db_school)
    except Exception as e:
        session.rollback()
        logger.error(f"Error updating school {school_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not update school.",
        )

    forget_school(school_cache, school_id)
    logger.info(f"Admin {admin_user.get('email')} updated school {school_id}")
    return SchoolWriteResponse(
        school=SchoolRead.model_validate(db_school, from_attributes=True),
        validation=validation,
    )


# Endpoint: Delete a School by ID
@router.delete("/schools/{school_id}", status_code=status.HTTP_200_OK)
def delete_school(
    school_id: str,
    session: Annotated[Session, Depends(get_session)],
    school_cache: Annotated[TTLCache, Depends(get_school_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    db_school = _get_school_or_404(session, school_id)

    # Session history references the school; keep it and deactivate instead
    has_history = session.exec(
        select(CheckInSession.id).where(CheckInSession.school_id == school_id).limit(1)
    ).first()
    if has_history is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"School '{school_id}' has session history; deactivate it instead.",
        )

    try:
        session.delete(db_school)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Error deleting school {school_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not delete school.",
        )

    forget_school(school_cache, school_id)
    logger.info(f"Admin {admin_user.get('email')} deleted school {school_id}")
    return {
        "status": "success",
        "message": f"School '{school_id}' deleted successfully.",
    }


# --- Provider Assignments (stored on the Firestore user profile) ---


@router.get("/schools/{school_id}/providers", response_model=List[ProviderInfo])
def list_assigned_providers(
    school_id: str,
    session: Annotated[Session, Depends(get_session)],
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    _get_school_or_404(session, school_id)
    providers = user_directory.list_school_providers(db, user_cache, school_id)
    return [ProviderInfo(uid=p["uid"], name=p["name"], email=p["email"]) for p in providers]


@router.post("/schools/{school_id}/providers/{uid}")
def assign_provider(
    school_id: str,
    uid: str,
    session: Annotated[Session, Depends(get_session)],
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    _get_school_or_404(session, school_id)
    user_directory.assign_school(db, user_cache, uid, school_id)
    logger.info(f"Admin {admin_user.get('email')} assigned {uid} to school {school_id}")
    return {"status": "success", "message": f"User '{uid}' assigned to school '{school_id}'."}


@router.delete("/schools/{school_id}/providers/{uid}")
def remove_provider(
    school_id: str,
    uid: str,
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    user_directory.remove_school(db, user_cache, uid, school_id)
    logger.info(f"Admin {admin_user.get('email')} removed {uid} from school {school_id}")
    return {"status": "success", "message": f"User '{uid}' removed from school '{school_id}'."}


# --- Bulk Assignments ---


class ProviderBulkRequest(BaseModel):
    uids: List[str] = PydanticField(..., min_length=1)


# An empty list clears the school
class ProviderReplaceRequest(BaseModel):
    uids: List[str] = []


class AssignedProvider(ProviderInfo):
    is_active: bool = True


class SchoolAssignmentRead(BaseModel):
    school_id: str
    school_name: str
    school_address: str
    is_active: bool
    providers: List[AssignedProvider]
    total_providers: int


class AssignmentStats(BaseModel):
    total_schools: int
    schools_with_providers: int
    schools_without_providers: int
    total_assignments: int
    active_providers: int


def _firestore_or_503(action: str, operation):
    try:
        return operation()
    except Exception as e:
        logger.error(f"Error trying to {action}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Could not {action}.",
        )


@router.post("/schools/{school_id}/providers")
def bulk_assign_providers(
    school_id: str,
    bulk: ProviderBulkRequest,
    session: Annotated[Session, Depends(get_session)],
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    _get_school_or_404(session, school_id)
    assigned = _firestore_or_503(
        "assign providers",
        lambda: user_directory.bulk_assign_school(db, user_cache, school_id, bulk.uids),
    )
    logger.info(f"Admin {admin_user.get('email')} bulk assigned {assigned} to school {school_id}")
    return {"status": "success", "assigned": assigned}


@router.delete("/schools/{school_id}/providers")
def bulk_remove_providers(
    school_id: str,
    bulk: ProviderBulkRequest,
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    removed = _firestore_or_503(
        "remove providers",
        lambda: user_directory.bulk_remove_school(db, user_cache, school_id, bulk.uids),
    )
    logger.info(f"Admin {admin_user.get('email')} bulk removed {removed} from school {school_id}")
    return {"status": "success", "removed": removed}


@router.put("/schools/{school_id}/providers")
def replace_providers(
    school_id: str,
    replacement: ProviderReplaceRequest,
    session: Annotated[Session, Depends(get_session)],
    user_cache: Annotated[TTLCache, Depends(get_user_cache)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    _get_school_or_404(session, school_id)
    changes = _firestore_or_503(
        "replace assignments",
        lambda: user_directory.replace_school_assignments(
            db, user_cache, school_id, replacement.uids
        ),
    )
    logger.info(f"Admin {admin_user.get('email')} replaced providers of school {school_id}")
    return {"status": "success", **changes}


@router.get("/assignments", response_model=List[SchoolAssignmentRead])
def list_school_assignments(
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    schools = session.exec(select(School).order_by(School.name)).all()
    return _firestore_or_503(
        "fetch school assignments",
        lambda: user_directory.get_school_assignments(db, schools),
    )


@router.get("/assignments/stats", response_model=AssignmentStats)
def read_assignment_stats(
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    schools = session.exec(select(School)).all()
    return _firestore_or_503(
        "fetch assignment statistics",
        lambda: user_directory.get_assignment_stats(db, schools),
    )


@router.get("/providers/available", response_model=List[ProviderInfo])
def list_available_providers(
    admin_user: Annotated[dict, Depends(require_admin_role)],
    exclude_school: Optional[str] = None,
    db=Depends(get_firestore),
):
    return _firestore_or_503(
        "fetch available providers",
        lambda: user_directory.list_available_providers(db, exclude_school),
    )


@router.get("/providers/unassigned", response_model=List[ProviderInfo])
def list_unassigned_providers(
    admin_user: Annotated[dict, Depends(require_admin_role)],
    db=Depends(get_firestore),
):
    return _firestore_or_503(
        "fetch unassigned providers",
        lambda: user_directory.list_unassigned_providers(db),
    )
