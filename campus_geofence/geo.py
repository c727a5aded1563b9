"""Geometry primitives for campus geofencing.

Polygons are rings of ``(longitude, latitude)`` pairs in GeoJSON order. Every
polygon computation in this module works in that space (x = longitude,
y = latitude); points are always passed as :class:`GeoPoint`.
"""

from __future__ import annotations

from math import asin, atan2, cos, degrees, radians, sin, sqrt
from typing import List, Sequence, Tuple

from .datatypes import GeoPoint

EARTH_RADIUS_METERS = 6_371_000.0

Vertex = Tuple[float, float]
Polygon = Sequence[Vertex]


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in metres (Haversine)."""
    dlat = radians(b.lat - a.lat)
    dlng = radians(b.lng - a.lng)
    lat1 = radians(a.lat)
    lat2 = radians(b.lat)

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * asin(sqrt(min(h, 1.0)))


def point_in_radius(point: GeoPoint, center: GeoPoint, radius_m: float) -> bool:
    """Return True if point lies within radius_m of center (boundary inclusive)."""
    return distance_meters(point, center) <= radius_m


def open_ring(polygon: Polygon) -> List[Vertex]:
    """Return the polygon vertices with a duplicate closing vertex removed."""

    vertices = [(float(lng), float(lat)) for lng, lat in polygon]
    if len(vertices) > 1 and vertices[0] == vertices[-1]:
        vertices.pop()
    return vertices


def point_in_polygon(point: GeoPoint, polygon: Polygon) -> bool:
    """Even-odd ray casting test in (longitude, latitude) space.

    Degenerate polygons (fewer than three vertices) never contain anything.
    Points lying exactly on an edge or vertex may be reported either way.
    """

    vertices = open_ring(polygon)
    if len(vertices) < 3:
        return False

    x, y = point.as_lng_lat()
    inside = False
    j = len(vertices) - 1
    for i, (xi, yi) in enumerate(vertices):
        xj, yj = vertices[j]

        if (yi > y) != (yj > y):
            intersection_x = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < intersection_x:
                inside = not inside
        j = i

    return inside


def polygon_centroid(polygon: Polygon) -> GeoPoint:
    """Vertex-average centroid (not area weighted)."""

    vertices = open_ring(polygon)
    if not vertices:
        raise ValueError("Cannot compute the centroid of an empty polygon")

    sum_lng = sum(lng for lng, _ in vertices)
    sum_lat = sum(lat for _, lat in vertices)
    return GeoPoint(lat=sum_lat / len(vertices), lng=sum_lng / len(vertices))


def max_distance_from_center(center: GeoPoint, polygon: Polygon) -> float:
    """Largest distance in metres from center to any polygon vertex."""

    return max(
        (distance_meters(center, GeoPoint(lat=lat, lng=lng)) for lng, lat in open_ring(polygon)),
        default=0.0,
    )


def destination_point(origin: GeoPoint, bearing_deg: float, distance_m: float) -> GeoPoint:
    """Point reached by travelling distance_m from origin on the given initial bearing."""

    lat1 = radians(origin.lat)
    lng1 = radians(origin.lng)
    bearing = radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_METERS

    lat2 = asin(sin(lat1) * cos(angular) + cos(lat1) * sin(angular) * cos(bearing))
    lng2 = lng1 + atan2(
        sin(bearing) * sin(angular) * cos(lat1),
        cos(angular) - sin(lat1) * sin(lat2),
    )

    lng_deg = (degrees(lng2) + 540.0) % 360.0 - 180.0
    return GeoPoint(lat=degrees(lat2), lng=lng_deg)
