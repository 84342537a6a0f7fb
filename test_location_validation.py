#!/usr/bin/env python3
"""
Tests for the admin-side checks on school addresses, coordinates and radii.
"""

from services.location_validation import (
    count_decimals,
    validate_address,
    validate_coordinate_quality,
    validate_location,
)

GOOD_ADDRESS = "1200 Lincoln Ave, Springfield, IL 62703"


def test_count_decimals():
    assert count_decimals(39.7817) == 4
    assert count_decimals(40.0) == 0
    assert count_decimals(1e-7) == 7


def test_coordinate_precision_levels():
    assert validate_coordinate_quality(39.78, -89.65).precision == "low"
    assert validate_coordinate_quality(39.7817, -89.6501).precision == "medium"
    assert validate_coordinate_quality(39.781712, -89.650123).precision == "high"


def test_coordinate_range_and_unset():
    bad = validate_coordinate_quality(95.0, -200.0)
    assert not bad.is_valid
    assert len(bad.errors) == 2

    unset = validate_coordinate_quality(0, 0)
    assert not unset.is_valid
    assert "unset" in unset.errors[0]


def test_coordinates_are_normalized():
    result = validate_coordinate_quality(39.78171234, -89.65012345)
    assert result.normalized_lat == 39.781712
    assert result.normalized_lng == -89.650123


def test_address_rules():
    assert validate_address("").errors == ["Address is required"]
    assert "Address appears to be too short" in validate_address("1 Main").errors
    assert "Address should include a street number" in validate_address(
        "Lincoln Avenue, Springfield, IL"
    ).errors


def test_address_confidence_and_components():
    result = validate_address(GOOD_ADDRESS)
    assert result.is_valid
    assert result.confidence == "high"
    assert result.components.street_name == "1200 Lincoln Ave"
    assert result.components.city == "Springfield"
    assert result.components.state == "IL"
    assert result.components.postal_code == "62703"

    assert validate_address("1200 Lincoln Ave, Springfield, IL").confidence == "medium"
    assert validate_address("1200 Lincoln Avenue Springfield").confidence == "low"


def test_valid_location_has_no_warnings():
    result = validate_location(GOOD_ADDRESS, 39.7817, -89.6501, 100)
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_radius_warnings():
    small = validate_location(GOOD_ADDRESS, 39.7817, -89.6501, 5)
    assert "Check-in radius is very small (< 10m)" in small.warnings

    large = validate_location(GOOD_ADDRESS, 39.7817, -89.6501, 800)
    assert "Check-in radius is very large (> 500m)" in large.warnings
    assert large.is_valid


def test_location_outside_us_warns():
    hawaii = validate_location(GOOD_ADDRESS, 21.3069, -157.8583, 100)
    assert "Coordinates appear to be outside continental US" in hawaii.warnings

    paris = validate_location(GOOD_ADDRESS, 48.8566, 2.3522, 100)
    assert "Coordinates appear to be outside the United States" in paris.warnings


def test_errors_block_location():
    result = validate_location(None, 0, 0, 100)
    assert not result.is_valid
    assert "Address is required" in result.errors
