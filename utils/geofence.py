# utils/geofence.py

from math import atan2, cos, isfinite, radians, sin, sqrt
from typing import Optional

from pydantic import BaseModel, ConfigDict

EARTH_RADIUS_M = 6371000.0

LOCATION_ERROR_MESSAGES = {
    1: "Location access denied. Please enable location permissions.",
    2: "Location unavailable. Please check your GPS settings.",
    3: "Location request timed out. Please try again.",
}


# A Reading From The Device's Positioning Sensor
class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    accuracy: Optional[float] = None


# Result Of Testing A Reading Against A Geofence
class PresenceCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    within_radius: bool
    distance_meters: float
    radius_meters: float

    def describe(self, action: str = "check in") -> str:
        return (
            f"You are {self.distance_meters:.1f}m away. "
            f"You must be within {self.radius_meters:g}m to {action}."
        )


def validate_coordinates(c: Coordinates) -> bool:
    if not (isfinite(c.latitude) and isfinite(c.longitude)):
        return False
    return -90 <= c.latitude <= 90 and -180 <= c.longitude <= 180


def haversine_dist(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    φ1, φ2 = radians(lat1), radians(lat2)
    Δφ = radians(lat2 - lat1)
    Δλ = radians(lng2 - lng1)

    a = sin(Δφ/2)**2 + cos(φ1) * cos(φ2) * sin(Δλ/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in meters between two readings."""
    return haversine_dist(a.latitude, a.longitude, b.latitude, b.longitude)


def is_within_radius(user: Coordinates, target: Coordinates, radius: float) -> bool:
    return distance(user, target) <= radius


def evaluate_presence(
    user: Coordinates, target: Coordinates, radius: float
) -> PresenceCheck:
    dist = distance(user, target)
    return PresenceCheck(
        within_radius=dist <= radius,
        distance_meters=dist,
        radius_meters=radius,
    )


def format_coordinates(c: Coordinates, precision: int = 6) -> str:
    return f"{c.latitude:.{precision}f}, {c.longitude:.{precision}f}"


def location_error_message(code: Optional[int]) -> str:
    """User-facing message for a positioning sensor error code."""
    return LOCATION_ERROR_MESSAGES.get(code, "An unknown location error occurred.")
