import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlmodel import Session, select

from models.check_in_session import (
    CheckInRequest,
    CheckInSession,
    CheckOutRequest,
    LocationReport,
    SessionStatus,
)
from services.school_directory import get_school_geofence
from utils.cache import TTLCache
from utils.geofence import (
    Coordinates,
    evaluate_presence,
    format_coordinates,
    location_error_message,
    validate_coordinates,
)
from utils.session_helpers import calculate_session_duration

logger = logging.getLogger(__name__)

AUTO_CHECK_OUT_NOTE = "Auto check-out due to new check-in."


def reported_coordinates(report: LocationReport, action: str) -> Coordinates:
    # The device never produced a reading
    if report.latitude is None or report.longitude is None:
        if report.location_error_code is not None:
            detail = location_error_message(report.location_error_code)
        else:
            detail = f"Location (latitude and longitude) is required to {action}."
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    coords = Coordinates(
        latitude=report.latitude,
        longitude=report.longitude,
        accuracy=report.accuracy,
    )
    if not validate_coordinates(coords):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                "Invalid coordinates: latitude must be between -90 and 90 and "
                "longitude between -180 and 180."
            ),
        )
    return coords


def get_active_session(session: Session, user_id: str) -> Optional[CheckInSession]:
    return session.exec(
        select(CheckInSession)
        .where(CheckInSession.user_id == user_id)
        .where(CheckInSession.status == SessionStatus.ACTIVE)
        .order_by(CheckInSession.check_in_time.desc())
    ).first()


class SessionService:

    @staticmethod
    def check_in(
        user: dict,
        payload: CheckInRequest,
        session: Session,
        school_cache: TTLCache,
    ):
        # Capture the time of the request for consistency
        request_time = datetime.now(timezone.utc)
        new_check_in_time = request_time
        response_message = None

        # 0) Must supply a usable location
        coords = reported_coordinates(payload, "check in")

        # 1) Provider must be assigned to this school
        if payload.school_id not in user.get("assigned_schools", []):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not assigned to this school.",
            )

        school = get_school_geofence(session, school_cache, payload.school_id)
        if school is None or not school.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"School '{payload.school_id}' not found.",
            )

        # 2) Geofence
        presence = evaluate_presence(coords, school.center, school.radius_meters)
        if not presence.within_radius:
            logger.info(
                f"Check-in rejected for {user['uid']} at {school.id}: "
                f"({format_coordinates(coords)}) is {presence.distance_meters:.1f}m away"
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"You are too far from the school to check in. {presence.describe('check in')}",
            )

        # 3) Close out anything still open
        open_session = get_active_session(session, user["uid"])
        if open_session:
            open_session.status = SessionStatus.COMPLETED
            open_session.check_out_time = request_time
            open_session.duration_minutes = calculate_session_duration(
                open_session.check_in_time, request_time
            )
            open_session.notes = AUTO_CHECK_OUT_NOTE
            open_session.updated_at = request_time
            session.add(open_session)
            response_message = "Automatically checked out of previous session."

            # Ensure the new check-in appears *after* the auto check-out
            new_check_in_time = request_time + timedelta(seconds=3)

        new_session = CheckInSession(
            user_id=user["uid"],
            school_id=school.id,
            status=SessionStatus.ACTIVE,
            check_in_time=new_check_in_time,
            check_in_latitude=coords.latitude,
            check_in_longitude=coords.longitude,
            check_in_accuracy=coords.accuracy,
            check_in_distance_meters=presence.distance_meters,
            within_geofence=presence.within_radius,
            created_at=request_time,
            updated_at=request_time,
        )
        session.add(new_session)

        try:
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error saving check-in for {user['uid']}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not save check-in.",
            )
        session.refresh(new_session)
        logger.info(f"User {user['uid']} checked in at {school.id} (session {new_session.id})")

        response = {
            "status": "success",
            "data": new_session,
            "presence": presence,
        }
        if response_message:
            response["message"] = response_message
        return response

    @staticmethod
    def check_out(
        user: dict,
        payload: CheckOutRequest,
        session: Session,
        school_cache: TTLCache,
    ):
        request_time = datetime.now(timezone.utc)

        coords = reported_coordinates(payload, "check out")

        # Find the session being closed
        if payload.session_id is not None:
            target = session.get(CheckInSession, payload.session_id)
            if target is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Session {payload.session_id} not found.",
                )
            if target.user_id != user["uid"]:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You do not have permission to check out of this session.",
                )
        else:
            target = get_active_session(session, user["uid"])
            if target is None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Cannot check out before checking in.",
                )

        if target.status != SessionStatus.ACTIVE:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Session {target.id} is not active.",
            )

        school = get_school_geofence(session, school_cache, target.school_id)
        if school is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"School '{target.school_id}' not found.",
            )

        presence = evaluate_presence(coords, school.center, school.radius_meters)
        if not presence.within_radius:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"You are too far from the school to check out. {presence.describe('check out')}",
            )

        target.status = SessionStatus.COMPLETED
        target.check_out_time = request_time
        target.check_out_latitude = coords.latitude
        target.check_out_longitude = coords.longitude
        target.check_out_accuracy = coords.accuracy
        target.check_out_distance_meters = presence.distance_meters
        target.duration_minutes = calculate_session_duration(target.check_in_time, request_time)
        target.updated_at = request_time
        session.add(target)

        try:
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Error saving check-out for {user['uid']}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not save check-out.",
            )
        session.refresh(target)
        logger.info(f"User {user['uid']} checked out of session {target.id}")

        return {"status": "success", "data": target, "presence": presence}
