"""Structured JSON logging for the geofence service."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any, Dict, Set

from .datatypes import ResolvedConfig

STANDARD_LOG_RECORD_KEYS: Set[str] = set(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record; ``extra`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in STANDARD_LOG_RECORD_KEYS:
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default, ensure_ascii=False)


def configure_logging(level: str = "INFO") -> None:
    """Route the root logger and uvicorn's loggers through the JSON formatter."""

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": "campus_geofence.logging_utils.JsonLogFormatter"}},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                }
            },
            "loggers": {
                "uvicorn": {"handlers": ["default"], "level": level.upper(), "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": level.upper(), "propagate": False},
            },
            "root": {
                "handlers": ["default"],
                "level": level.upper(),
            },
        }
    )


def get_logger(name: str = "campus_geofence") -> logging.Logger:
    """Return a namespaced logger."""

    return logging.getLogger(name)


_logged_config_digests: Set[str] = set()


def log_config_snapshot(config: ResolvedConfig) -> None:
    """Emit the resolved configuration once per distinct configuration."""

    digest = json.dumps(config.redacted_dict(), sort_keys=True)
    if digest in _logged_config_digests:
        return
    _logged_config_digests.add(digest)

    get_logger("campus_geofence.config").info(
        "resolved_config",
        extra={
            "event": "resolved_config",
            "config": config.redacted_dict(),
        },
    )
