# src/bot_core/net/session_options.py
"""
Join options and their translation into transport client options.

JoinOptions is the superset record the CLI and runtime work with;
ClientOptions is the minimal shape a transport client needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from monitoring.logger import FieldLogger
from nethernet.lan_discovery import create_random_sender_id

from .client import PacketCodec

DEFAULT_VIEW_DISTANCE_CHUNKS = 10
DEFAULT_PLAYER_LIST_WAIT_MS = 8000
DEFAULT_JOIN_TIMEOUT_MS = 90000
AUTH_FLOW_LIVE = "live"
DEVICE_TYPE_NINTENDO = "Nintendo"

TRANSPORT_RAKNET = "raknet"
TRANSPORT_NETHERNET = "nethernet"


@dataclass(frozen=True)
class JoinOptions:
    host: str
    port: int
    account_name: str
    authflow: Any
    transport: str = TRANSPORT_RAKNET
    minecraft_version: Optional[str] = None
    view_distance_chunks: Optional[int] = None
    skip_ping: bool = False
    nethernet_server_id: Optional[int] = None
    nethernet_client_id: Optional[int] = None
    server_name: Optional[str] = None
    movement_goal: str = "safe_walk"
    follow_player_name: Optional[str] = None
    follow_coordinates: Optional[Tuple[float, float, float]] = None
    list_players_only: bool = False
    player_list_wait_ms: int = DEFAULT_PLAYER_LIST_WAIT_MS
    join_timeout_ms: int = DEFAULT_JOIN_TIMEOUT_MS
    # Collaborators; excluded from equality.
    logger: Optional[FieldLogger] = field(default=None, compare=False, repr=False)
    packet_codec: Optional[PacketCodec] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ClientOptions:
    host: str
    port: int
    username: str
    authflow: Any
    flow: str = AUTH_FLOW_LIVE
    device_type: str = DEVICE_TYPE_NINTENDO
    skip_ping: bool = False
    view_distance: int = DEFAULT_VIEW_DISTANCE_CHUNKS
    version: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        """Mapping form for client constructors; no version key without an override."""
        data: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "authflow": self.authflow,
            "flow": self.flow,
            "device_type": self.device_type,
            "skip_ping": self.skip_ping,
            "view_distance": self.view_distance,
        }
        if self.version:
            data["version"] = self.version
        return data


def to_client_options(options: JoinOptions, *, skip_ping: Optional[bool] = None) -> ClientOptions:
    return ClientOptions(
        host=options.host,
        port=options.port,
        username=options.account_name,
        authflow=options.authflow,
        skip_ping=options.skip_ping if skip_ping is None else skip_ping,
        view_distance=(
            options.view_distance_chunks
            if options.view_distance_chunks is not None
            else DEFAULT_VIEW_DISTANCE_CHUNKS
        ),
        version=options.minecraft_version or None,
    )


__all__ = [
    "ClientOptions",
    "JoinOptions",
    "to_client_options",
    "create_random_sender_id",
    "DEFAULT_VIEW_DISTANCE_CHUNKS",
    "TRANSPORT_RAKNET",
    "TRANSPORT_NETHERNET",
]
