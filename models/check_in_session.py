from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_serializer
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime


# Defines the Structure of Data for a Check In / Check Out Call
class LocationReport(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    # Device positioning error code (1 denied, 2 unavailable, 3 timeout)
    location_error_code: int | None = None


class CheckInRequest(LocationReport):
    school_id: str


class CheckOutRequest(LocationReport):
    # Defaults to the caller's active session
    session_id: int | None = None


# Enum Limiting Session Status
class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"


# Defines a Table "sessions" w/ One Row Per Visit
class CheckInSession(SQLModel, table=True):
    __tablename__ = "sessions"

    __table_args__ = (
        Index("ix_sessions_user_id", "user_id"),
        Index("ix_sessions_school_id", "school_id"),
        Index("ix_sessions_status", "status"),
        # Provider history, newest first
        Index("ix_sessions_user_id_check_in_time", "user_id", "check_in_time"),
        # Cleanup scans active sessions by age
        Index("ix_sessions_status_check_in_time", "status", "check_in_time"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str
    school_id: str = Field(foreign_key="schools.id")
    status: SessionStatus = Field(default=SessionStatus.ACTIVE)

    check_in_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    check_out_time: Optional[datetime] = None

    check_in_latitude: float
    check_in_longitude: float
    check_in_accuracy: Optional[float] = None
    check_in_distance_meters: Optional[float] = None
    within_geofence: bool = Field(default=True)

    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    check_out_accuracy: Optional[float] = None
    check_out_distance_meters: Optional[float] = None

    duration_minutes: Optional[int] = None
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("check_in_time", "check_out_time", "created_at", "updated_at")
    def serialize_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        """Ensure timestamps are formatted as UTC with Z suffix"""
        return format_utc_datetime(dt)
