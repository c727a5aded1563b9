"""Runner filters built on the geofence decision."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from .datatypes import GeoPoint, RunnerLocation
from .geofence import Geofence, point_from_coordinates
from .logging_utils import get_logger

logger = get_logger("campus_geofence.filters")

CandidateType = Union[RunnerLocation, Mapping[str, Any]]


def is_location_fresh(
    updated_at: Optional[datetime],
    now: datetime,
    threshold_s: float,
) -> bool:
    """Return True if the location is recent enough to trust.

    A runner that never reported a timestamp is not treated as stale.
    """

    if updated_at is None:
        return True
    age_s = (_as_utc(now) - _as_utc(updated_at)).total_seconds()
    return age_s <= threshold_s


def exit_grace_expired(
    outside_since: Optional[datetime],
    now: datetime,
    grace_s: float,
) -> bool:
    """Return True once a runner has been outside the fence longer than grace_s.

    No endpoint tracks exit times, so this is a helper for callers that keep
    their own outside-since timestamps. Pass the policy's exit_grace_period_s
    as grace_s.
    """

    if outside_since is None:
        return False
    elapsed_s = (_as_utc(now) - _as_utc(outside_since)).total_seconds()
    return elapsed_s > grace_s


def filter_runners(
    candidates: Iterable[CandidateType],
    geofence: Geofence,
    *,
    use_polygon: bool = True,
    now: Optional[datetime] = None,
    freshness_s: Optional[float] = None,
) -> List[str]:
    """Return ids of runners inside the geofence, preserving input order.

    When ``now`` is given, locations older than ``freshness_s`` (default: the
    policy's location freshness) are excluded before the geofence check.
    """

    threshold_s = freshness_s if freshness_s is not None else geofence.policy.location_freshness_s

    pairs: List[Tuple[str, Optional[GeoPoint]]] = []
    stale = 0
    for candidate in candidates:
        runner_id, point, updated_at = _extract_candidate(candidate)
        if runner_id is None:
            continue
        if now is not None and not is_location_fresh(updated_at, now, threshold_s):
            stale += 1
            continue
        pairs.append((runner_id, point))

    eligible = geofence.filter_by_geofence(pairs, use_polygon)
    logger.info(
        "runners_filtered",
        extra={
            "event": "runners_filtered",
            "candidates": len(pairs) + stale,
            "stale": stale,
            "eligible": len(eligible),
            "method": "polygon" if use_polygon else "radius",
        },
    )
    return eligible


def _extract_candidate(
    candidate: CandidateType,
) -> Tuple[Optional[str], Optional[GeoPoint], Optional[datetime]]:
    if isinstance(candidate, RunnerLocation):
        return (
            candidate.id,
            point_from_coordinates(candidate.latitude, candidate.longitude),
            candidate.location_updated_at,
        )

    if not isinstance(candidate, Mapping):
        return (None, None, None)

    runner_id = candidate.get("id")
    updated_at = candidate.get("location_updated_at")
    if not isinstance(updated_at, datetime):
        updated_at = None
    return (
        str(runner_id) if runner_id is not None else None,
        _coerce_point(candidate),
        updated_at,
    )


def _coerce_point(value: Mapping[str, Any]) -> Optional[GeoPoint]:
    point = value.get("point")
    if isinstance(point, GeoPoint):
        return point

    for lat_key, lng_key in (
        ("lat", "lng"),
        ("latitude", "longitude"),
        ("Latitude", "Longitude"),
    ):
        if lat_key in value or lng_key in value:
            return point_from_coordinates(value.get(lat_key), value.get(lng_key))

    if isinstance(point, Mapping):
        return _coerce_point(point)

    return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
