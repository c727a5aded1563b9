"""Tests for geofence decisions."""

from __future__ import annotations

import re

import pytest

from campus_geofence.config import FALLBACK_PRESETS
from campus_geofence.datatypes import BoundaryPolicy, GeoPoint, parse_coordinate
from campus_geofence.geo import destination_point, distance_meters, point_in_polygon
from campus_geofence.geofence import LOCATION_NOT_AVAILABLE, Geofence, point_from_coordinates

from .conftest import SQUARE_CENTER

_REASON = re.compile(r"^Location is outside geofence \((\d+)m from center\)$")


def _um_matina_geofence() -> Geofence:
    preset = FALLBACK_PRESETS["um_matina"]
    policy = BoundaryPolicy(name="um_matina", polygon=preset["polygon"])
    return Geofence.from_policy(policy)


def test_from_policy_computes_centroid_and_radius(square_geofence: Geofence):
    assert square_geofence.centroid.lat == pytest.approx(SQUARE_CENTER.lat, abs=1e-9)
    assert square_geofence.centroid.lng == pytest.approx(SQUARE_CENTER.lng, abs=1e-9)
    assert square_geofence.approx_radius_m == pytest.approx(353.6, abs=1.0)
    assert square_geofence.tolerance_radius_m == pytest.approx(square_geofence.approx_radius_m + 10.0)


def test_geofence_is_immutable(square_geofence: Geofence):
    with pytest.raises(AttributeError):
        square_geofence.approx_radius_m = 1.0  # type: ignore[misc]


def test_centroid_is_inside_campus_polygon():
    geofence = _um_matina_geofence()
    assert geofence.is_within_polygon(geofence.centroid) is True
    assert point_in_polygon(geofence.centroid, geofence.policy.polygon) is True


def test_known_campus_point_is_allowed():
    geofence = _um_matina_geofence()
    decision = geofence.can_be_available(GeoPoint(lat=7.0901, lng=125.6063))
    assert decision.allowed is True
    assert decision.reason is None


def test_buffer_accepts_point_just_inside_tolerance(square_geofence: Geofence):
    point = destination_point(square_geofence.centroid, 0, square_geofence.tolerance_radius_m - 0.5)
    assert point_in_polygon(point, square_geofence.policy.polygon) is False
    assert square_geofence.is_within_polygon(point) is True


def test_buffer_rejects_point_just_outside_tolerance(square_geofence: Geofence):
    point = destination_point(square_geofence.centroid, 0, square_geofence.tolerance_radius_m + 0.5)
    assert square_geofence.is_within_polygon(point) is False


def test_radius_check_uses_client_radius(square_geofence: Geofence):
    assert square_geofence.is_within_radius(destination_point(SQUARE_CENTER, 45, 299.0)) is True
    assert square_geofence.is_within_radius(destination_point(SQUARE_CENTER, 45, 301.0)) is False


def test_validate_location_dispatches_by_method(square_geofence: Geofence):
    # 320 m east: outside the 300 m client radius, inside the polygon tolerance.
    point = destination_point(SQUARE_CENTER, 90, 320.0)

    by_polygon = square_geofence.validate_location(point)
    by_radius = square_geofence.validate_location(point, use_polygon=False)

    assert by_polygon.method == "polygon"
    assert by_polygon.is_valid is True
    assert by_radius.method == "radius"
    assert by_radius.is_valid is False
    assert by_polygon.center_distance_m == pytest.approx(320.0, abs=0.01)
    assert by_radius.center_distance_m == pytest.approx(320.0, abs=0.01)


def test_can_be_available_without_location(square_geofence: Geofence):
    decision = square_geofence.can_be_available(None)
    assert decision.allowed is False
    assert decision.reason == LOCATION_NOT_AVAILABLE == "Location not available"


def test_can_be_available_at_center(square_geofence: Geofence):
    decision = square_geofence.can_be_available(SQUARE_CENTER)
    assert decision.allowed is True
    assert decision.as_response() == {"allowed": True}


def test_can_be_available_far_away_reports_rounded_distance(square_geofence: Geofence):
    far = destination_point(SQUARE_CENTER, 30, 10_000.0)
    decision = square_geofence.can_be_available(far)

    assert decision.allowed is False
    match = _REASON.match(decision.reason or "")
    assert match is not None
    expected = distance_meters(far, square_geofence.centroid)
    assert int(match.group(1)) == pytest.approx(expected, abs=1)
    assert int(match.group(1)) == pytest.approx(10_000, abs=1)


def test_assignment_eligibility_matches_availability(square_geofence: Geofence):
    for point in (None, SQUARE_CENTER, destination_point(SQUARE_CENTER, 180, 5_000.0)):
        for use_polygon in (True, False):
            assert square_geofence.is_eligible_for_assignment(point, use_polygon) == square_geofence.can_be_available(
                point, use_polygon
            )


def test_filter_by_geofence_preserves_order(square_geofence: Geofence):
    candidates = [
        ("A", SQUARE_CENTER),
        ("B", destination_point(SQUARE_CENTER, 90, 2_000.0)),
        ("C", destination_point(SQUARE_CENTER, 270, 100.0)),
        ("D", None),
    ]
    assert square_geofence.filter_by_geofence(candidates) == ["A", "C"]


def test_filter_by_geofence_radius_method(square_geofence: Geofence):
    candidates = [
        ("near", destination_point(SQUARE_CENTER, 0, 100.0)),
        ("edge", destination_point(SQUARE_CENTER, 90, 320.0)),
    ]
    assert square_geofence.filter_by_geofence(candidates, use_polygon=True) == ["near", "edge"]
    assert square_geofence.filter_by_geofence(candidates, use_polygon=False) == ["near"]


@pytest.mark.parametrize(
    "lat, lng",
    [
        (None, 125.6),
        (7.09, None),
        ("abc", 125.6),
        (float("nan"), 125.6),
        (7.09, float("inf")),
        (True, 125.6),
        (95.0, 125.6),
        (7.09, 181.0),
        (10**400, 125.6),
        (7.09, -(10**400)),
        ("7.0_9", 125.6),
        ("NaN", 125.6),
        ("1e400", 125.6),
        ([7.09], 125.6),
    ],
)
def test_point_from_coordinates_rejects_unusable_values(lat, lng):
    assert point_from_coordinates(lat, lng) is None


def test_point_from_coordinates_parses_strings():
    point = point_from_coordinates("7.0900", " 125.6070 ")
    assert point == GeoPoint(lat=7.09, lng=125.607)


def test_geopoint_rejects_non_finite_values():
    with pytest.raises(ValueError):
        GeoPoint(lat=float("nan"), lng=125.6)
    with pytest.raises(ValueError):
        GeoPoint(lat=7.09, lng=float("-inf"))


def test_policy_rejects_empty_polygon():
    with pytest.raises(ValueError):
        BoundaryPolicy(name="empty", polygon=())


def test_filter_by_geofence_treats_non_points_as_missing(square_geofence: Geofence):
    candidates = [
        ("A", {"lat": SQUARE_CENTER.lat, "lng": SQUARE_CENTER.lng}),
        ("B", SQUARE_CENTER),
        ("C", (SQUARE_CENTER.lng, SQUARE_CENTER.lat)),
    ]
    assert square_geofence.filter_by_geofence(candidates) == ["B"]


@pytest.mark.parametrize(
    "raw, expected",
    [
        (7, 7.0),
        (7.09, 7.09),
        ("125.607", 125.607),
        (" -7.5 ", -7.5),
        (".5", 0.5),
        ("1e2", 100.0),
    ],
)
def test_parse_coordinate_accepts_decimal_forms(raw, expected):
    assert parse_coordinate(raw) == pytest.approx(expected)


@pytest.mark.parametrize(
    "raw",
    [True, None, [7.09], "", "7.09abc", "7.0_9", "NaN", "Infinity", "0x1A", 10**400],
)
def test_parse_coordinate_rejects_everything_else(raw):
    with pytest.raises(ValueError):
        parse_coordinate(raw)
