from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from core.deps import get_current_user, get_school_cache
from db.session import get_session
from models.check_in_session import LocationReport
from services.school_directory import get_school_geofence, list_school_geofences
from services.session_service import reported_coordinates
from utils.cache import TTLCache
from utils.geofence import PresenceCheck, evaluate_presence

router = APIRouter()

# --- Pydantic Models for Response ---


class SchoolGeofenceResponse(BaseModel):
    school_id: str
    name: str
    address: Optional[str] = None
    center_lat: float
    center_lng: float
    radius_meters: float


class PresenceResponse(PresenceCheck):
    school_id: str
    message: Optional[str] = None


def _assigned_school_or_404(
    school_id: str, user: dict, session: Session, school_cache: TTLCache
):
    if school_id not in user.get("assigned_schools", []):
        raise HTTPException(status_code=403, detail="You are not assigned to this school.")
    school = get_school_geofence(session, school_cache, school_id)
    if not school or not school.is_active:
        raise HTTPException(status_code=404, detail=f"School with ID {school_id} not found.")
    return school


# --- API Endpoints ---


@router.get("", response_model=List[SchoolGeofenceResponse])
def list_my_schools(
    session: Session = Depends(get_session),
    school_cache: TTLCache = Depends(get_school_cache),
    user: dict = Depends(get_current_user),
):
    """
    Schools the current provider is assigned to, with their geofences.
    """
    schools = list_school_geofences(session, school_cache, user.get("assigned_schools", []))
    return [
        SchoolGeofenceResponse(
            school_id=s.id,
            name=s.name,
            address=s.address,
            center_lat=s.center_lat,
            center_lng=s.center_lng,
            radius_meters=s.radius_meters,
        )
        for s in schools
    ]


@router.get("/{school_id}/geofence", response_model=SchoolGeofenceResponse)
def get_school_geofence_route(
    school_id: str,
    session: Session = Depends(get_session),
    school_cache: TTLCache = Depends(get_school_cache),
    user: dict = Depends(get_current_user),
):
    """
    Retrieve the geofence information (latitude, longitude, radius) for a specific school.
    """
    school = _assigned_school_or_404(school_id, user, session, school_cache)
    return SchoolGeofenceResponse(
        school_id=school.id,
        name=school.name,
        address=school.address,
        center_lat=school.center_lat,
        center_lng=school.center_lng,
        radius_meters=school.radius_meters,
    )


# Lets the client show "in range" before the provider taps Check In
@router.post("/{school_id}/presence", response_model=PresenceResponse)
def check_presence(
    school_id: str,
    data: LocationReport,
    session: Session = Depends(get_session),
    school_cache: TTLCache = Depends(get_school_cache),
    user: dict = Depends(get_current_user),
):
    coords = reported_coordinates(data, "check in")
    school = _assigned_school_or_404(school_id, user, session, school_cache)

    presence = evaluate_presence(coords, school.center, school.radius_meters)
    return PresenceResponse(
        school_id=school.id,
        message=None if presence.within_radius else presence.describe("check in"),
        **presence.model_dump(),
    )
