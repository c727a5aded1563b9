"""Configuration assembly for the campus geofence service."""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Sequence, Tuple

import yaml

from .datatypes import CampusPreset, ResolvedConfig

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
DEFAULT_PRESETS_FILE = PROJECT_ROOT / "presets" / "campuses.yml"

DEFAULT_CAMPUS = "um_matina"

# Policy defaults, metres and seconds
CLIENT_RADIUS_METERS = 650.0
POLYGON_BUFFER_METERS = 10.0
GEOFENCE_EXIT_GRACE_PERIOD_SECONDS = 75.0
LOCATION_FRESHNESS_THRESHOLD_SECONDS = 90.0

DEFAULTS: Dict[str, Any] = {
    "client_radius_m": CLIENT_RADIUS_METERS,
    "polygon_buffer_m": POLYGON_BUFFER_METERS,
    "exit_grace_period_s": GEOFENCE_EXIT_GRACE_PERIOD_SECONDS,
    "location_freshness_s": LOCATION_FRESHNESS_THRESHOLD_SECONDS,
    "geofence_enforced": True,
    "log_level": "INFO",
    "host": "0.0.0.0",
    "port": 8000,
}

FALLBACK_PRESETS: Dict[str, Dict[str, Any]] = {
    DEFAULT_CAMPUS: {
        "description": "University of Mindanao, Matina campus",
        "polygon": [
            [125.6037, 7.0921],
            [125.6066, 7.0931],
            [125.6094, 7.0918],
            [125.6098, 7.0884],
            [125.6071, 7.0869],
            [125.6040, 7.0878],
            [125.6037, 7.0921],
        ],
    }
}

ENV_CASTERS: Dict[str, Any] = {
    "CAMPUS": str,
    "CLIENT_RADIUS_M": float,
    "POLYGON_BUFFER_M": float,
    "EXIT_GRACE_PERIOD_S": float,
    "LOCATION_FRESHNESS_S": float,
    "GEOFENCE_ENFORCED": "bool",
    "LOG_LEVEL": str,
    "HOST": str,
    "PORT": int,
}


def build_cli() -> argparse.ArgumentParser:
    """Construct the top-level CLI for the geofence service."""

    parser = argparse.ArgumentParser(description="Campus geofence validation service")

    parser.add_argument(
        "--campus",
        type=str,
        help="Named campus preset to load (e.g. um_matina)",
    )
    parser.add_argument(
        "--client-radius-m",
        type=float,
        help="Radius in metres for the fast radius-only check",
    )
    parser.add_argument(
        "--polygon-buffer-m",
        type=float,
        help="Tolerance in metres added around the polygon for GPS noise",
    )
    parser.add_argument(
        "--exit-grace-period-s",
        type=float,
        help="Seconds a runner may stay outside the fence before going offline",
    )
    parser.add_argument(
        "--location-freshness-s",
        type=float,
        help="Maximum age in seconds of a location used for assignment",
    )
    parser.add_argument(
        "--geofence-enforced",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enforce the geofence on availability requests",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Logging level for the structured logger",
    )
    parser.add_argument("--host", type=str, help="Interface for the HTTP server")
    parser.add_argument("--port", type=int, help="Port for the HTTP server")
    parser.add_argument(
        "--env-file",
        type=str,
        default=None,
        help="Path to a .env file (defaults to project root .env)",
    )
    parser.add_argument(
        "--presets-file",
        type=str,
        default=None,
        help="Path to YAML file containing campus presets",
    )

    return parser


def load_presets(path: Optional[Path] = None) -> Dict[str, CampusPreset]:
    """Load campus presets from YAML with Python fallback."""

    effective_path = path or DEFAULT_PRESETS_FILE
    loaded: MutableMapping[str, Any] = {}
    if effective_path and effective_path.exists():
        content = effective_path.read_text(encoding="utf-8")
        data = yaml.safe_load(content) or {}
        if not isinstance(data, Mapping):
            raise ValueError("Presets file must contain a mapping of campuses")
        loaded.update({str(key).lower(): value for key, value in data.items()})

    for key, value in FALLBACK_PRESETS.items():
        loaded.setdefault(key.lower(), value)

    return {name: CampusPreset.model_validate(value) for name, value in loaded.items()}


def load_env_file(path: Optional[Path]) -> Dict[str, str]:
    """Parse a dotenv-style file into a dictionary."""

    env: Dict[str, str] = {}
    if not path or not path.exists():
        return env

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        env[key.strip()] = value.strip().strip("'\"")
    return env


def load_environment(env_path: Optional[Path] = None) -> Dict[str, str]:
    """Combine .env values with process environment variables."""

    combined = load_env_file(env_path)
    for key in ENV_CASTERS:
        if key in os.environ:
            combined[key] = os.environ[key]
    return combined


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    msg = f"Unable to parse boolean value from '{value}'"
    raise ValueError(msg)


def normalise_environment(raw_env: Mapping[str, str]) -> Dict[str, Any]:
    """Coerce environment values to their expected Python types."""

    typed: Dict[str, Any] = {}
    for key, caster in ENV_CASTERS.items():
        if key not in raw_env:
            continue
        value = raw_env[key]
        if caster == "bool":
            typed[key] = _parse_bool(value)
        else:
            typed[key] = caster(value)
    return typed


def _cli_or_env(
    cli_value: Any,
    env: Mapping[str, Any],
    env_key: str,
    default: Any,
) -> Any:
    """Resolution helper obeying CLI > env > default."""

    if cli_value is not None:
        return cli_value
    if env_key in env:
        return env[env_key]
    return default


def resolve_config(
    args: argparse.Namespace,
    env: Mapping[str, Any],
    presets: Mapping[str, CampusPreset],
) -> ResolvedConfig:
    """Build a ResolvedConfig using precedence rules (CLI > env > preset > defaults)."""

    campus_key = str(_cli_or_env(getattr(args, "campus", None), env, "CAMPUS", DEFAULT_CAMPUS)).lower()
    if campus_key not in presets:
        available = ", ".join(sorted(presets))
        msg = f"Campus preset '{campus_key}' was not found. Available presets: {available}"
        raise KeyError(msg)

    preset = presets[campus_key]

    client_radius_m = float(
        _cli_or_env(
            getattr(args, "client_radius_m", None),
            env,
            "CLIENT_RADIUS_M",
            preset.client_radius_m if preset.client_radius_m is not None else DEFAULTS["client_radius_m"],
        )
    )

    polygon_buffer_m = float(
        _cli_or_env(
            getattr(args, "polygon_buffer_m", None),
            env,
            "POLYGON_BUFFER_M",
            preset.polygon_buffer_m if preset.polygon_buffer_m is not None else DEFAULTS["polygon_buffer_m"],
        )
    )

    exit_grace_period_s = float(
        _cli_or_env(
            getattr(args, "exit_grace_period_s", None),
            env,
            "EXIT_GRACE_PERIOD_S",
            DEFAULTS["exit_grace_period_s"],
        )
    )

    location_freshness_s = float(
        _cli_or_env(
            getattr(args, "location_freshness_s", None),
            env,
            "LOCATION_FRESHNESS_S",
            DEFAULTS["location_freshness_s"],
        )
    )

    geofence_enforced = bool(
        _cli_or_env(
            getattr(args, "geofence_enforced", None),
            env,
            "GEOFENCE_ENFORCED",
            DEFAULTS["geofence_enforced"],
        )
    )

    log_level = str(
        _cli_or_env(getattr(args, "log_level", None), env, "LOG_LEVEL", DEFAULTS["log_level"])
    ).upper()
    host = str(_cli_or_env(getattr(args, "host", None), env, "HOST", DEFAULTS["host"]))
    port = int(_cli_or_env(getattr(args, "port", None), env, "PORT", DEFAULTS["port"]))

    if client_radius_m <= 0:
        raise ValueError("client_radius_m must be positive")
    if polygon_buffer_m < 0:
        raise ValueError("polygon_buffer_m cannot be negative")
    if exit_grace_period_s < 0:
        raise ValueError("exit_grace_period_s cannot be negative")
    if location_freshness_s <= 0:
        raise ValueError("location_freshness_s must be positive")
    if not 0 < port < 65536:
        raise ValueError("port must be between 1 and 65535")

    raw_cli = {k: v for k, v in vars(args).items() if not k.startswith("_")}

    return ResolvedConfig(
        campus=campus_key,
        preset=preset,
        client_radius_m=client_radius_m,
        polygon_buffer_m=polygon_buffer_m,
        exit_grace_period_s=exit_grace_period_s,
        location_freshness_s=location_freshness_s,
        geofence_enforced=geofence_enforced,
        log_level=log_level,
        host=host,
        port=port,
        raw_cli=raw_cli,
        raw_env=dict(env),
    )


def resolve_runtime_config(
    argv: Optional[Sequence[str]] = None,
    env_path: Optional[Path] = None,
    presets_path: Optional[Path] = None,
) -> Tuple[ResolvedConfig, argparse.Namespace]:
    """End-to-end configuration resolution helper."""

    parser = build_cli()
    args = parser.parse_args(argv)

    effective_env_path = env_path or (
        Path(getattr(args, "env_file")) if getattr(args, "env_file", None) else DEFAULT_ENV_FILE
    )
    raw_env = load_environment(effective_env_path)
    typed_env = normalise_environment(raw_env)

    effective_presets_path = (
        Path(getattr(args, "presets_file"))
        if getattr(args, "presets_file", None)
        else presets_path
        or DEFAULT_PRESETS_FILE
    )
    presets = load_presets(effective_presets_path)

    config = resolve_config(args, typed_env, presets)
    return config, args
