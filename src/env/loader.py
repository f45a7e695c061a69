from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .schema import EnvProfile, PathsConfig, ReconnectConfig, SessionProfile


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_ROOT = PROJECT_ROOT / "config"

APPLICATION_ID = "bedcraft"

# Environment overrides
CONFIG_DIR_ENV_VAR = "BEDCRAFT_CONFIG_DIR"
PROFILE_ENV_VAR = "BEDCRAFT_PROFILE"
CACHE_KEY_ENV_VAR = "BEDCRAFT_CACHE_KEY"
LOG_LEVEL_ENV_VAR = "BEDCRAFT_LOG_LEVEL"

TRANSPORTS = ("raknet", "nethernet")
MOVEMENT_GOALS = ("safe_walk", "follow_player", "follow_coordinates")

DEFAULT_BEDROCK_PORT = 19132
DEFAULT_NETHERNET_PORT = 7551


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML config file, requiring a mapping at the top level."""
    if not path.exists():
        raise FileNotFoundError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at top of {path}, got {type(data)}")
    return data


def _select_profile(
    env_cfg: Dict[str, Any],
    profile_name: Optional[str],
) -> Tuple[str, Dict[str, Any]]:
    """Return (active_profile_name, active_profile_mapping)."""
    name = profile_name or env_cfg.get("profile")
    if not name:
        raise ValueError("env.yaml must define a 'profile' key.")
    profiles = env_cfg.get("profiles")
    if not isinstance(profiles, dict):
        raise ValueError("env.yaml must define a 'profiles' mapping.")
    if name not in profiles:
        raise KeyError(f"Profile '{name}' not found in env.yaml profiles.")
    profile = profiles[name]
    if not isinstance(profile, dict):
        raise ValueError(f"Profile '{name}' must be a mapping.")
    return name, profile


def _env_value(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value


def _parse_coordinates(raw: Any) -> Optional[Tuple[float, float, float]]:
    if raw is None:
        return None
    if isinstance(raw, dict):
        raw = [raw.get("x"), raw.get("y"), raw.get("z")]
    if not isinstance(raw, (list, tuple)) or len(raw) != 3:
        raise ValueError(f"follow_coordinates must be [x, y, z], got {raw!r}")
    x, y, z = (float(v) for v in raw)
    return (x, y, z)


def _build_session(raw: Dict[str, Any]) -> SessionProfile:
    transport = raw.get("transport", "raknet")
    default_port = DEFAULT_NETHERNET_PORT if transport == "nethernet" else DEFAULT_BEDROCK_PORT
    view_distance = raw.get("view_distance_chunks")
    return SessionProfile(
        host=raw.get("host"),
        port=int(raw.get("port", default_port)),
        transport=transport,
        account_name=raw.get("account_name", "default"),
        server_name=raw.get("server_name"),
        minecraft_version=raw.get("minecraft_version"),
        view_distance_chunks=int(view_distance) if view_distance is not None else None,
        movement_goal=raw.get("movement_goal", "safe_walk"),
        follow_player_name=raw.get("follow_player_name"),
        follow_coordinates=_parse_coordinates(raw.get("follow_coordinates")),
        list_players_only=bool(raw.get("list_players_only", False)),
        player_list_wait_ms=int(raw.get("player_list_wait_ms", 8000)),
        join_timeout_ms=int(raw.get("join_timeout_ms", 90000)),
        packet_codec=raw.get("packet_codec"),
        peer_connection=raw.get("peer_connection"),
    )


def _build_reconnect(raw: Dict[str, Any]) -> ReconnectConfig:
    defaults = ReconnectConfig()
    return ReconnectConfig(
        max_retries=int(raw.get("max_retries", defaults.max_retries)),
        base_delay_ms=int(raw.get("base_delay_ms", defaults.base_delay_ms)),
        max_delay_ms=int(raw.get("max_delay_ms", defaults.max_delay_ms)),
        jitter_ratio=float(raw.get("jitter_ratio", defaults.jitter_ratio)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def resolve_config_root(config_root: Optional[Path] = None) -> Path:
    """Explicit argument > BEDCRAFT_CONFIG_DIR > <project>/config."""
    if config_root is not None:
        return Path(config_root)
    override = _env_value(CONFIG_DIR_ENV_VAR)
    return Path(override) if override else CONFIG_ROOT


def load_environment(
    config_root: Optional[Path] = None,
    profile_name: Optional[str] = None,
) -> EnvProfile:
    """Main entry point: returns a fully resolved EnvProfile."""
    env_cfg = _load_yaml(resolve_config_root(config_root) / "env.yaml")

    active_name, active_profile = _select_profile(
        env_cfg, profile_name or _env_value(PROFILE_ENV_VAR)
    )

    session = _build_session(active_profile.get("session") or {})
    reconnect = _build_reconnect(
        active_profile.get("reconnect") or env_cfg.get("reconnect") or {}
    )
    paths_raw = env_cfg.get("paths") or {}
    paths = PathsConfig(
        data_root=paths_raw.get("data_root"),
        config_root=paths_raw.get("config_root"),
    )

    _validate_env(session, reconnect)

    return EnvProfile(
        name=active_name,
        application_id=env_cfg.get("application_id", APPLICATION_ID),
        session=session,
        reconnect=reconnect,
        paths=paths,
        cache_key_override=_env_value(CACHE_KEY_ENV_VAR),
        log_level=_env_value(LOG_LEVEL_ENV_VAR),
    )


def _validate_env(session: SessionProfile, reconnect: ReconnectConfig) -> None:
    """Minimal sanity checks for the environment."""
    if session.transport not in TRANSPORTS:
        raise ValueError(f"Invalid transport: {session.transport}")
    if session.transport == "raknet" and not (session.host or session.server_name):
        raise ValueError("raknet transport requires session.host or session.server_name")
    if not 0 < session.port < 65536:
        raise ValueError(f"Invalid port: {session.port}")

    if session.movement_goal not in MOVEMENT_GOALS:
        raise ValueError(f"Invalid movement_goal: {session.movement_goal}")
    if session.movement_goal == "follow_player" and not session.follow_player_name:
        raise ValueError("follow_player goal requires follow_player_name")
    if session.movement_goal == "follow_coordinates" and session.follow_coordinates is None:
        raise ValueError("follow_coordinates goal requires follow_coordinates")

    for name in ("packet_codec", "peer_connection"):
        value = getattr(session, name)
        if value is not None and ":" not in value:
            raise ValueError(f"{name} must look like 'module:factory', got {value!r}")

    if session.view_distance_chunks is not None and session.view_distance_chunks <= 0:
        raise ValueError("view_distance_chunks must be positive")

    if reconnect.max_retries < 0:
        raise ValueError("reconnect.max_retries must be >= 0")
    if reconnect.base_delay_ms < 0 or reconnect.max_delay_ms < 0:
        raise ValueError("reconnect delays must be >= 0")
