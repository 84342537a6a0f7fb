"""
Validation of school location data entered by admins.

These checks never raise; they return errors that block a save and
warnings/suggestions that are shown alongside a saved record.
"""

import math
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Precision = Literal["high", "medium", "low"]

MIN_RECOMMENDED_RADIUS_M = 10
MAX_RECOMMENDED_RADIUS_M = 500

_STATE_CODE = re.compile(r"\b[A-Z]{2}\b")
_ZIP_CODE = re.compile(r"\b\d{5}(-\d{4})?\b")
_STATE_ZIP = re.compile(r"([A-Z]{2})\s*(\d{5}(?:-\d{4})?)?")


class CoordinateValidationResult(BaseModel):
    is_valid: bool
    precision: Precision
    errors: List[str] = Field(default_factory=list)
    normalized_lat: Optional[float] = None
    normalized_lng: Optional[float] = None


class AddressComponents(BaseModel):
    street_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class AddressValidationResult(BaseModel):
    is_valid: bool
    confidence: Precision
    errors: List[str] = Field(default_factory=list)
    components: Optional[AddressComponents] = None
    standardized_address: Optional[str] = None


class LocationValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


def count_decimals(value: float) -> int:
    if not math.isfinite(value) or float(value).is_integer():
        return 0
    text = str(value)
    if "e-" in text:
        mantissa, exponent = text.split("e-")
        mantissa_decimals = len(mantissa.split(".")[1]) if "." in mantissa else 0
        return int(exponent) + mantissa_decimals
    if "." in text:
        return len(text.split(".")[1])
    return 0


def validate_coordinate_quality(latitude: float, longitude: float) -> CoordinateValidationResult:
    errors = []

    if not (math.isfinite(latitude) and -90 <= latitude <= 90):
        errors.append("Latitude must be between -90 and 90 degrees")
    if not (math.isfinite(longitude) and -180 <= longitude <= 180):
        errors.append("Longitude must be between -180 and 180 degrees")

    # (0, 0) is what an unset form field submits
    if latitude == 0 and longitude == 0:
        errors.append("Coordinates appear to be unset (0, 0)")

    lat_decimals = count_decimals(latitude)
    lng_decimals = count_decimals(longitude)
    if lat_decimals < 4 or lng_decimals < 4:
        precision = "low"
    elif lat_decimals < 6 or lng_decimals < 6:
        precision = "medium"
    else:
        precision = "high"

    finite = math.isfinite(latitude) and math.isfinite(longitude)
    return CoordinateValidationResult(
        is_valid=not errors,
        precision=precision,
        errors=errors,
        normalized_lat=round(latitude, 6) if finite else None,
        normalized_lng=round(longitude, 6) if finite else None,
    )


def validate_address(address: Optional[str]) -> AddressValidationResult:
    trimmed = (address or "").strip()
    if not trimmed:
        return AddressValidationResult(
            is_valid=False, confidence="low", errors=["Address is required"]
        )

    errors = []
    if len(trimmed) < 10:
        errors.append("Address appears to be too short")

    has_numbers = any(ch.isdigit() for ch in trimmed)
    has_commas = "," in trimmed
    has_state = bool(_STATE_CODE.search(trimmed))
    has_zip = bool(_ZIP_CODE.search(trimmed))

    confidence: Precision = "low"
    if has_numbers and has_commas and has_state:
        confidence = "high" if has_zip else "medium"

    if not has_numbers:
        errors.append("Address should include a street number")

    parts = [part.strip() for part in trimmed.split(",")]
    components = AddressComponents()
    if len(parts) >= 2:
        components.street_name = parts[0]
        if len(parts) >= 3:
            components.city = parts[1]
            match = _STATE_ZIP.search(parts[-1])
            if match:
                components.state = match.group(1)
                components.postal_code = match.group(2)

    return AddressValidationResult(
        is_valid=not errors,
        confidence=confidence,
        errors=errors,
        components=components,
        standardized_address=trimmed,
    )


def validate_location(
    address: Optional[str],
    latitude: float,
    longitude: float,
    radius: Optional[float] = None,
) -> LocationValidationResult:
    errors: List[str] = []
    warnings: List[str] = []
    suggestions: List[str] = []

    address_result = validate_address(address)
    if not address_result.is_valid:
        errors.extend(address_result.errors)
    elif address_result.confidence == "low":
        warnings.append("Address format could be improved for better accuracy")
        suggestions.append("Include city, state, and ZIP code for better geocoding")

    coord_result = validate_coordinate_quality(latitude, longitude)
    if not coord_result.is_valid:
        errors.extend(coord_result.errors)
    elif coord_result.precision == "low":
        warnings.append("GPS coordinates have low precision")
        suggestions.append("Use more precise coordinates (at least 4 decimal places)")

    if radius is not None:
        if radius < MIN_RECOMMENDED_RADIUS_M:
            warnings.append("Check-in radius is very small (< 10m)")
            suggestions.append("Consider using at least 25m radius for reliable check-ins")
        elif radius > MAX_RECOMMENDED_RADIUS_M:
            warnings.append("Check-in radius is very large (> 500m)")
            suggestions.append("Large radius may allow check-ins from far away")

    if coord_result.is_valid:
        in_continental_us = 24 < latitude < 50 and -125 < longitude < -66
        in_us_territories = 18 < latitude < 72 and -180 < longitude < -60
        if not in_continental_us:
            if in_us_territories:
                warnings.append("Coordinates appear to be outside continental US")
            else:
                warnings.append("Coordinates appear to be outside the United States")

    return LocationValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        suggestions=suggestions,
    )
