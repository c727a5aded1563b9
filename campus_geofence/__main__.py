"""Entry point for running the campus geofence service."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import uvicorn

from .config import resolve_runtime_config
from .datatypes import ResolvedConfig
from .logging_utils import configure_logging, get_logger, log_config_snapshot
from .service import ServiceState, app as fastapi_app, attach_state


async def _run_application(config: ResolvedConfig) -> None:
    configure_logging(config.log_level)
    log_config_snapshot(config)
    logger = get_logger("campus_geofence.runtime")

    state = ServiceState.from_config(config)
    attach_state(state)
    logger.info(
        "geofence_ready",
        extra={
            "event": "geofence_ready",
            "campus": config.campus,
            "centroid": state.geofence.centroid,
            "approx_radius_m": round(state.geofence.approx_radius_m, 1),
            "enforced": state.enforced,
        },
    )
    if not state.enforced:
        logger.warning("geofence_enforcement_disabled", extra={"event": "geofence_enforcement_disabled"})

    server_config = uvicorn.Config(
        fastapi_app,
        host=config.host,
        port=config.port,
        loop="asyncio",
        log_level=config.log_level.lower(),
        log_config=None,
    )
    server = uvicorn.Server(server_config)

    try:
        await server.serve()
    except Exception as exc:  # pragma: no cover - logged before re-raising
        logger.exception("runtime_exception", extra={"event": "runtime_exception", "error": str(exc)})
        raise
    finally:
        attach_state(None)
        logger.info("server_stopped", extra={"event": "server_stopped"})


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point."""

    config, _ = resolve_runtime_config(argv)
    asyncio.run(_run_application(config))


if __name__ == "__main__":  # pragma: no cover
    main()
