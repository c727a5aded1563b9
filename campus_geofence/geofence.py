"""Geofence decisions for runner availability and assignment."""

from __future__ import annotations

from dataclasses import dataclass
from math import isfinite
from typing import Any, Iterable, List, Optional, Tuple

from .datatypes import (
    AvailabilityDecision,
    BoundaryPolicy,
    GeoPoint,
    ValidationResult,
    parse_coordinate,
)
from .geo import (
    distance_meters,
    max_distance_from_center,
    point_in_polygon,
    point_in_radius,
    polygon_centroid,
)

LOCATION_NOT_AVAILABLE = "Location not available"


def point_from_coordinates(lat: Any, lng: Any) -> Optional[GeoPoint]:
    """Build a GeoPoint from raw coordinates, or None if either is unusable."""

    if lat is None or lng is None:
        return None
    try:
        lat_value = parse_coordinate(lat)
        lng_value = parse_coordinate(lng)
    except ValueError:
        return None
    if not (isfinite(lat_value) and isfinite(lng_value)):
        return None
    if not (-90 <= lat_value <= 90 and -180 <= lng_value <= 180):
        return None
    return GeoPoint(lat=lat_value, lng=lng_value)


@dataclass(frozen=True)
class Geofence:
    """A campus boundary with its derived centroid and approximate radius.

    Build instances with :meth:`from_policy`; the derived values are computed
    once there and never recomputed per request.

    The tolerance check compares the distance to the centroid against the
    largest centroid-to-vertex distance plus the policy buffer. For irregular
    or concave boundaries this accepts points well beyond the nearest edge.
    A point-to-edge distance would give a tighter bound.
    """

    policy: BoundaryPolicy
    centroid: GeoPoint
    approx_radius_m: float

    @classmethod
    def from_policy(cls, policy: BoundaryPolicy) -> "Geofence":
        centroid = polygon_centroid(policy.polygon)
        approx_radius_m = max_distance_from_center(centroid, policy.polygon)
        return cls(policy=policy, centroid=centroid, approx_radius_m=approx_radius_m)

    @property
    def tolerance_radius_m(self) -> float:
        return self.approx_radius_m + self.policy.polygon_buffer_m

    def center_distance_m(self, point: GeoPoint) -> float:
        return distance_meters(point, self.centroid)

    def is_within_polygon(self, point: GeoPoint) -> bool:
        """Authoritative check: polygon containment with a GPS noise buffer."""

        if point_in_polygon(point, self.policy.polygon):
            return True
        return self.center_distance_m(point) <= self.tolerance_radius_m

    def is_within_radius(self, point: GeoPoint) -> bool:
        """Coarse pre-filter against the client radius around the centroid."""

        return point_in_radius(point, self.centroid, self.policy.client_radius_m)

    def validate_location(self, point: GeoPoint, use_polygon: bool = True) -> ValidationResult:
        if use_polygon:
            is_valid = self.is_within_polygon(point)
            method = "polygon"
        else:
            is_valid = self.is_within_radius(point)
            method = "radius"

        return ValidationResult(
            is_valid=is_valid,
            method=method,
            center_distance_m=self.center_distance_m(point),
        )

    def can_be_available(self, point: Optional[GeoPoint], use_polygon: bool = True) -> AvailabilityDecision:
        """Decide whether a runner at point may be marked available.

        A missing location or a point outside the fence is a normal negative
        decision, not an error.
        """

        if point is None:
            return AvailabilityDecision(allowed=False, reason=LOCATION_NOT_AVAILABLE)

        validation = self.validate_location(point, use_polygon)
        if not validation.is_valid:
            return AvailabilityDecision(
                allowed=False,
                reason=f"Location is outside geofence ({validation.center_distance_m:.0f}m from center)",
            )

        return AvailabilityDecision(allowed=True)

    def is_eligible_for_assignment(
        self,
        point: Optional[GeoPoint],
        use_polygon: bool = True,
    ) -> AvailabilityDecision:
        """Same rule as :meth:`can_be_available`, for the assignment flow."""

        return self.can_be_available(point, use_polygon)

    def filter_by_geofence(
        self,
        candidates: Iterable[Tuple[str, Optional[GeoPoint]]],
        use_polygon: bool = True,
    ) -> List[str]:
        """Return ids of candidates allowed by the geofence, in input order.

        Candidates are ``(id, point)`` pairs. A point that is not a GeoPoint
        counts as a missing location.
        """

        allowed: List[str] = []
        for candidate_id, point in candidates:
            if not isinstance(point, GeoPoint):
                point = None
            if self.can_be_available(point, use_polygon).allowed:
                allowed.append(candidate_id)
        return allowed
