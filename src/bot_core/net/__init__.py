# bot_core.net package
# src/bot_core/net/__init__.py
"""
Network layer for bedcraft sessions.

This package provides:
- SessionClient / PacketCodec protocols (common interface)
- RaknetClient: direct UDP transport client
- JoinOptions / ClientOptions and their translation
- create_session_client: transport selection by the options' tag

The NetherNet client lives in nethernet.client.
"""

from __future__ import annotations

from .client import EventEmitterClient, EventHandler, PacketCodec, SessionClient
from .raknet_client import RaknetClient
from .session_factory import (
    NethernetTransport,
    RaknetTransport,
    Transport,
    create_session_client,
    default_transports,
)
from .session_options import (
    ClientOptions,
    JoinOptions,
    create_random_sender_id,
    to_client_options,
)

__all__ = [
    "EventEmitterClient",
    "EventHandler",
    "PacketCodec",
    "SessionClient",
    "RaknetClient",
    "NethernetTransport",
    "RaknetTransport",
    "Transport",
    "create_session_client",
    "default_transports",
    "ClientOptions",
    "JoinOptions",
    "create_random_sender_id",
    "to_client_options",
]
