"""Campus geofence validation package."""

from . import (
    config,
    datatypes,
    filters,
    geo,
    geofence,
    logging_utils,
    service,
)

__all__ = [
    "config",
    "datatypes",
    "filters",
    "geo",
    "geofence",
    "logging_utils",
    "service",
]
