from datetime import datetime, timezone
from typing import Optional

from pydantic import field_serializer
from sqlmodel import Field, SQLModel

from utils.datetime_helpers import format_utc_datetime
from utils.geofence import Coordinates

# Defines the Structure of Data for Comparing a Provider Check In/Out to Expected Location


# School w/ Circular Geofence
class School(SQLModel, table=True):
    __tablename__ = "schools"

    id: str = Field(primary_key=True, description="Unique school identifier")
    name: str = Field(..., description="Human-friendly school name")
    address: Optional[str] = Field(default=None, description="Street address")
    center_lat: float = Field(..., description="Latitude of school center")
    center_lng: float = Field(..., description="Longitude of school center")
    radius_meters: float = Field(..., description="Allowed check-in radius in meters")
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def center(self) -> Coordinates:
        return Coordinates(latitude=self.center_lat, longitude=self.center_lng)

    @field_serializer("created_at", "updated_at")
    def serialize_timestamps(self, dt: datetime) -> str:
        return format_utc_datetime(dt)
