# EnvProfile, SessionProfile, ReconnectConfig dataclasses
# src/env/schema.py

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass
class SessionProfile:
    """Describes which server to join and how to behave once joined."""
    host: Optional[str]               # None -> found by server_name via LAN discovery
    port: int
    transport: str                    # "raknet" or "nethernet"
    account_name: str
    server_name: Optional[str] = None          # LAN name filter for discovery
    minecraft_version: Optional[str] = None    # protocol version override
    view_distance_chunks: Optional[int] = None
    movement_goal: str = "safe_walk"           # safe_walk / follow_player / follow_coordinates
    follow_player_name: Optional[str] = None
    follow_coordinates: Optional[Tuple[float, float, float]] = None
    list_players_only: bool = False
    player_list_wait_ms: int = 8000
    join_timeout_ms: int = 90000
    packet_codec: Optional[str] = None         # "module:factory" providing a PacketCodec
    peer_connection: Optional[str] = None      # "module:factory" providing a PeerConnection (nethernet)


@dataclass
class ReconnectConfig:
    """Caller-owned reconnect settings fed to runtime.reconnect_policy."""
    max_retries: int = 2
    base_delay_ms: int = 1000
    max_delay_ms: int = 8000
    jitter_ratio: float = 0.2


@dataclass
class PathsConfig:
    """Roots for the persisted key file and encrypted cache directory."""
    data_root: Optional[str] = None     # None -> platform default
    config_root: Optional[str] = None   # None -> platform default


@dataclass
class EnvProfile:
    """Resolved environment for one active profile."""
    name: str
    application_id: str
    session: SessionProfile
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    cache_key_override: Optional[str] = None   # from BEDCRAFT_CACHE_KEY
    log_level: Optional[str] = None            # from BEDCRAFT_LOG_LEVEL
