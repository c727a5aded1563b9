"""Shared fixtures: a 500 m square campus centred on (7.0900, 125.6070)."""

from __future__ import annotations

from math import cos, pi, radians
from typing import Iterator, List, Tuple

import pytest

from campus_geofence.datatypes import BoundaryPolicy, CampusPreset, GeoPoint, ResolvedConfig
from campus_geofence.geo import EARTH_RADIUS_METERS
from campus_geofence.geofence import Geofence
from campus_geofence.service import attach_state

SQUARE_CENTER = GeoPoint(lat=7.0900, lng=125.6070)
SQUARE_HALF_SIDE_M = 250.0


def square_ring(center: GeoPoint = SQUARE_CENTER, half_side_m: float = SQUARE_HALF_SIDE_M) -> List[Tuple[float, float]]:
    """Closed (lng, lat) ring of a square with the given half side."""
    metres_per_degree = EARTH_RADIUS_METERS * pi / 180
    dlat = half_side_m / metres_per_degree
    dlng = dlat / cos(radians(center.lat))
    ring = [
        (center.lng - dlng, center.lat - dlat),
        (center.lng + dlng, center.lat - dlat),
        (center.lng + dlng, center.lat + dlat),
        (center.lng - dlng, center.lat + dlat),
    ]
    return ring + [ring[0]]


def make_config(
    client_radius_m: float = 300.0,
    polygon_buffer_m: float = 10.0,
    geofence_enforced: bool = True,
) -> ResolvedConfig:
    return ResolvedConfig(
        campus="test_square",
        preset=CampusPreset(polygon=square_ring()),
        client_radius_m=client_radius_m,
        polygon_buffer_m=polygon_buffer_m,
        exit_grace_period_s=75.0,
        location_freshness_s=90.0,
        geofence_enforced=geofence_enforced,
        log_level="INFO",
        host="127.0.0.1",
        port=8000,
    )


@pytest.fixture
def square_policy() -> BoundaryPolicy:
    return make_config().boundary_policy()


@pytest.fixture
def square_geofence(square_policy: BoundaryPolicy) -> Geofence:
    return Geofence.from_policy(square_policy)


@pytest.fixture(autouse=True)
def _detach_service_state() -> Iterator[None]:
    yield
    attach_state(None)
