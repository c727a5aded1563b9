"""Typed models for the campus geofence service."""

from __future__ import annotations

import re
from datetime import datetime
from math import isfinite
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _require_finite(value: float, label: str) -> float:
    if not isfinite(value):
        msg = f"{label} must be a finite number; got {value}"
        raise ValueError(msg)
    return value


_DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


def parse_coordinate(value: Any) -> float:
    """Convert a raw JSON coordinate to float.

    Accepts numbers and plain decimal strings. Raises ValueError for anything
    else, including booleans and integers too large for a float.
    """

    if isinstance(value, bool):
        raise ValueError("Boolean is not a coordinate")
    if isinstance(value, str):
        text = value.strip()
        if not _DECIMAL_PATTERN.fullmatch(text):
            raise ValueError(f"Not a decimal number: {value!r}")
        value = text
    elif not isinstance(value, (int, float)):
        raise ValueError(f"Unsupported coordinate type: {type(value).__name__}")
    try:
        return float(value)
    except OverflowError:
        raise ValueError("Coordinate is too large") from None


class GeoPoint(BaseModel):
    """Latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @field_validator("lat")
    @classmethod
    def _validate_lat(cls, value: float) -> float:  # noqa: D401, N805
        """Ensure latitude is finite and within valid bounds."""
        _require_finite(value, "Latitude")
        if not -90 <= value <= 90:
            msg = f"Latitude must be between -90 and 90 degrees; got {value}"
            raise ValueError(msg)
        return value

    @field_validator("lng")
    @classmethod
    def _validate_lng(cls, value: float) -> float:  # noqa: D401, N805
        """Ensure longitude is finite and within valid bounds."""
        _require_finite(value, "Longitude")
        if not -180 <= value <= 180:
            msg = f"Longitude must be between -180 and 180 degrees; got {value}"
            raise ValueError(msg)
        return value

    def as_lng_lat(self) -> Tuple[float, float]:
        """Return the point in polygon (longitude, latitude) order."""
        return (self.lng, self.lat)


class BoundaryPolicy(BaseModel):
    """Immutable geofence policy for a single campus."""

    model_config = ConfigDict(frozen=True)

    name: str
    polygon: Tuple[Tuple[float, float], ...]
    client_radius_m: float = 650.0
    polygon_buffer_m: float = 10.0
    exit_grace_period_s: float = 75.0
    location_freshness_s: float = 90.0

    @field_validator("polygon")
    @classmethod
    def _validate_polygon(cls, value: Tuple[Tuple[float, float], ...]) -> Tuple[Tuple[float, float], ...]:
        """Vertices are (longitude, latitude) pairs in range."""
        if not value:
            raise ValueError("Boundary polygon must contain at least one vertex")
        for lng, lat in value:
            GeoPoint(lat=lat, lng=lng)
        return value

    @model_validator(mode="after")
    def _validate_distances(self) -> "BoundaryPolicy":  # noqa: D401
        """Ensure distance and time settings are usable."""
        if self.client_radius_m <= 0:
            raise ValueError("client_radius_m must be positive")
        if self.polygon_buffer_m < 0:
            raise ValueError("polygon_buffer_m cannot be negative")
        if self.exit_grace_period_s < 0:
            raise ValueError("exit_grace_period_s cannot be negative")
        if self.location_freshness_s <= 0:
            raise ValueError("location_freshness_s must be positive")
        return self


class CampusPreset(BaseModel):
    """Configuration payload for a preset campus boundary."""

    model_config = ConfigDict(frozen=True)

    polygon: List[Tuple[float, float]]
    client_radius_m: Optional[float] = None
    polygon_buffer_m: Optional[float] = None
    description: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of a single geofence validation."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    method: Literal["polygon", "radius"]
    center_distance_m: Optional[float] = None


class AvailabilityDecision(BaseModel):
    """Whether a runner may go available (or be assigned) at a location."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: Optional[str] = None

    def as_response(self) -> Dict[str, Any]:
        """Response body with the reason omitted when there is none."""
        return self.model_dump(exclude_none=True)


class RunnerLocation(BaseModel):
    """Last reported location of a runner."""

    model_config = ConfigDict(frozen=True)

    id: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_updated_at: Optional[datetime] = None

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _drop_unparseable(cls, value: Any) -> Optional[float]:  # noqa: N805
        # An unusable coordinate excludes the runner instead of failing the batch.
        if value is None:
            return None
        try:
            return parse_coordinate(value)
        except ValueError:
            return None


class EligibleRunnersRequest(BaseModel):
    """Request body for batch eligibility checks."""

    runners: List[RunnerLocation] = Field(default_factory=list)
    use_polygon: bool = True


class ResolvedConfig(BaseModel):
    """Runtime configuration resolved from presets/env/CLI."""

    model_config = ConfigDict(frozen=True)

    campus: str
    preset: CampusPreset
    client_radius_m: float
    polygon_buffer_m: float
    exit_grace_period_s: float
    location_freshness_s: float
    geofence_enforced: bool
    log_level: str
    host: str
    port: int
    raw_cli: Dict[str, Any] = Field(default_factory=dict)
    raw_env: Dict[str, Any] = Field(default_factory=dict)

    def boundary_policy(self) -> BoundaryPolicy:
        """Build the immutable policy consumed by the geofence."""
        return BoundaryPolicy(
            name=self.campus,
            polygon=tuple(tuple(vertex) for vertex in self.preset.polygon),
            client_radius_m=self.client_radius_m,
            polygon_buffer_m=self.polygon_buffer_m,
            exit_grace_period_s=self.exit_grace_period_s,
            location_freshness_s=self.location_freshness_s,
        )

    def redacted_dict(self) -> Dict[str, Any]:
        """Return a sanitized dict for logging."""
        return {
            "campus": self.campus,
            "polygon_vertices": len(self.preset.polygon),
            "client_radius_m": self.client_radius_m,
            "polygon_buffer_m": self.polygon_buffer_m,
            "exit_grace_period_s": self.exit_grace_period_s,
            "location_freshness_s": self.location_freshness_s,
            "geofence_enforced": self.geofence_enforced,
            "log_level": self.log_level,
            "host": self.host,
            "port": self.port,
        }


class AvailabilityRequest(BaseModel):
    """Parsed body of an availability validation request."""

    model_config = ConfigDict(frozen=True)

    runner_id: str
    point: GeoPoint
