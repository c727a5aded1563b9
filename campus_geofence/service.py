"""FastAPI surface for geofence availability checks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from math import isfinite
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .datatypes import (
    AvailabilityRequest,
    EligibleRunnersRequest,
    GeoPoint,
    ResolvedConfig,
    parse_coordinate,
)
from .filters import filter_runners
from .geo import open_ring
from .geofence import Geofence
from .logging_utils import get_logger

logger = get_logger("campus_geofence.service")

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
OUTSIDE_CAMPUS_REASON = "You must be inside the campus to go online."

app = FastAPI(title="Campus Geofence", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=CORS_ALLOW_HEADERS,
)


class InvalidRequest(ValueError):
    """Request body failed validation before reaching the geofence."""

    def __init__(self, error: str, details: str) -> None:
        super().__init__(f"{error}: {details}")
        self.error = error
        self.details = details


@dataclass(frozen=True)
class ServiceState:
    """Immutable runtime state shared by request handlers."""

    config: ResolvedConfig
    geofence: Geofence

    @classmethod
    def from_config(cls, config: ResolvedConfig) -> "ServiceState":
        return cls(config=config, geofence=Geofence.from_policy(config.boundary_policy()))

    @property
    def enforced(self) -> bool:
        return self.config.geofence_enforced


def attach_state(state: Optional[ServiceState]) -> None:
    """Attach the runtime state to the FastAPI app."""

    app.state.runtime = state


def get_state() -> Optional[ServiceState]:
    """Return the attached runtime state if available."""

    return getattr(app.state, "runtime", None)


def _require_state() -> ServiceState:
    state = get_state()
    if state is None:
        raise HTTPException(status_code=503, detail="Service state not initialised")
    return state


def _error(status_code: int, error: str, details: Any = None) -> JSONResponse:
    content: Dict[str, Any] = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def parse_availability_request(body: Any) -> AvailabilityRequest:
    """Validate a raw request body; raises InvalidRequest with a client-facing message."""

    if not isinstance(body, dict):
        raise InvalidRequest("Invalid JSON body", "Request body must be a JSON object")

    runner_id = body.get("runner_id")
    if runner_id is None or str(runner_id).strip() == "":
        raise InvalidRequest("runner_id is required", "runner_id must be a non-empty string")

    latitude = body.get("latitude")
    longitude = body.get("longitude")
    if latitude is None or longitude is None:
        raise InvalidRequest(
            "Invalid GPS coordinates",
            "latitude and longitude are required and cannot be null",
        )

    try:
        lat = parse_coordinate(latitude)
        lng = parse_coordinate(longitude)
    except ValueError:
        raise InvalidRequest(
            "Invalid GPS coordinates",
            "latitude and longitude must be valid numbers",
        ) from None

    if not (isfinite(lat) and isfinite(lng)):
        raise InvalidRequest(
            "Invalid GPS coordinates",
            "latitude and longitude must be finite numbers",
        )

    try:
        point = GeoPoint(lat=lat, lng=lng)
    except ValidationError as exc:
        raise InvalidRequest("Invalid GPS coordinates", exc.errors()[0]["msg"]) from None

    return AvailabilityRequest(runner_id=str(runner_id), point=point)


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request body", jsonable_encoder(exc.errors()))


@app.post("/validate-availability")
async def validate_availability(request: Request) -> JSONResponse:
    """Decide whether a runner may go available at the reported location.

    Both outcomes of the geofence decision are HTTP 200; only malformed input
    (400) and unexpected failures (500) are errors.
    """

    state = _require_state()
    try:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Invalid JSON body", "Request body must be valid JSON")

        try:
            parsed = parse_availability_request(body)
        except InvalidRequest as exc:
            logger.info(
                "availability_invalid_request",
                extra={"event": "availability_invalid_request", "error": exc.error, "details": exc.details},
            )
            return _error(400, exc.error, exc.details)

        if not state.enforced:
            logger.warning(
                "geofence_bypassed",
                extra={"event": "geofence_bypassed", "runner_id": parsed.runner_id},
            )
            return JSONResponse(status_code=200, content={"allowed": True})

        decision = state.geofence.can_be_available(parsed.point, use_polygon=True)
        logger.info(
            "availability_decision",
            extra={
                "event": "availability_decision",
                "runner_id": parsed.runner_id,
                "allowed": decision.allowed,
                "reason": decision.reason,
            },
        )

        if decision.allowed:
            return JSONResponse(status_code=200, content={"allowed": True})
        return JSONResponse(
            status_code=200,
            content={"allowed": False, "reason": decision.reason or OUTSIDE_CAMPUS_REASON},
        )
    except Exception as exc:
        logger.exception(
            "availability_unhandled_exception",
            extra={"event": "availability_unhandled_exception", "error": str(exc)},
        )
        return _error(500, "Unhandled exception", str(exc))


@app.api_route("/validate-availability", methods=["GET", "PUT", "PATCH", "DELETE"])
async def validate_availability_wrong_method() -> JSONResponse:
    return _error(405, "Method not allowed. Use POST.")


@app.post("/eligible-runners")
async def eligible_runners(payload: EligibleRunnersRequest) -> Dict[str, object]:
    """Return ids of runners with a fresh location inside the geofence."""

    state = _require_state()
    runner_ids = filter_runners(
        payload.runners,
        state.geofence,
        use_polygon=payload.use_polygon,
        now=datetime.now(tz=timezone.utc),
    )
    return {"runner_ids": runner_ids}


@app.get("/healthz")
async def healthz() -> Dict[str, object]:
    state = get_state()
    if state is None:
        return {"status": "initializing"}
    return {"status": "ok", "campus": state.config.campus}


@app.get("/geofence")
async def geofence_snapshot() -> Dict[str, object]:
    """Describe the active boundary and its derived tolerance values."""

    state = _require_state()
    geofence = state.geofence
    return {
        "campus": geofence.policy.name,
        "vertices": len(open_ring(geofence.policy.polygon)),
        "centroid": geofence.centroid.model_dump(),
        "approx_radius_m": round(geofence.approx_radius_m, 1),
        "tolerance_radius_m": round(geofence.tolerance_radius_m, 1),
        "client_radius_m": geofence.policy.client_radius_m,
        "polygon_buffer_m": geofence.policy.polygon_buffer_m,
        "exit_grace_period_s": geofence.policy.exit_grace_period_s,
        "location_freshness_s": geofence.policy.location_freshness_s,
        "enforced": state.enforced,
    }
