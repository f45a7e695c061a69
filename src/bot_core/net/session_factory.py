# src/bot_core/net/session_factory.py
"""
Dual-transport session construction.

create_session_client() picks a Transport by the options' transport tag and
returns a connected SessionClient. Each transport accepts an injectable
client constructor; the defaults build RaknetClient / NethernetClient.

Configuration problems (missing server id, missing codec, unknown
transport) raise SessionConfigError before any socket is opened.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional, Protocol

from monitoring.bus import default_bus
from monitoring.logger import EventBusFieldLogger, FieldLogger

from ..errors import SessionConfigError
from .client import PacketCodec, SessionClient
from .session_options import (
    TRANSPORT_NETHERNET,
    TRANSPORT_RAKNET,
    ClientOptions,
    JoinOptions,
    create_random_sender_id,
    to_client_options,
)

if TYPE_CHECKING:
    from nethernet.client import PeerConnectionFactory

log = logging.getLogger(__name__)

RaknetClientFactory = Callable[[ClientOptions], SessionClient]
NethernetClientFactory = Callable[[ClientOptions, FieldLogger, int, int], SessionClient]


class Transport(Protocol):
    def connect(self, options: JoinOptions) -> SessionClient:
        ...


def _require_codec(options: JoinOptions) -> PacketCodec:
    if options.packet_codec is None:
        raise SessionConfigError(
            code="packet_codec_missing",
            details={"transport": options.transport},
        )
    return options.packet_codec


@dataclass
class RaknetTransport:
    """Direct UDP transport."""

    client_factory: Optional[RaknetClientFactory] = None

    def connect(self, options: JoinOptions) -> SessionClient:
        factory = self.client_factory or self._default_factory(options)
        client = factory(to_client_options(options))
        client.connect()
        return client

    @staticmethod
    def _default_factory(options: JoinOptions) -> RaknetClientFactory:
        codec = _require_codec(options)
        # Lazy import keeps the transport modules independent.
        from .raknet_client import RaknetClient

        return lambda client_options: RaknetClient(client_options, codec)


@dataclass
class NethernetTransport:
    """WebRTC data-channel transport; needs a server id from LAN discovery."""

    client_factory: Optional[NethernetClientFactory] = None
    peer_factory: Optional[PeerConnectionFactory] = None

    def connect(self, options: JoinOptions) -> SessionClient:
        if options.nethernet_server_id is None:
            raise SessionConfigError(
                code="nethernet_server_id_missing",
                details={"message": "NetherNet join requires serverId from discovery"},
            )
        factory = self.client_factory or self._default_factory(options)
        logger = options.logger or EventBusFieldLogger(default_bus, module="nethernet")
        client_id = (
            options.nethernet_client_id
            if options.nethernet_client_id is not None
            else create_random_sender_id()
        )
        client = factory(
            to_client_options(options, skip_ping=True),
            logger,
            options.nethernet_server_id,
            client_id,
        )
        client.connect()
        return client

    def _default_factory(self, options: JoinOptions) -> NethernetClientFactory:
        codec = _require_codec(options)
        peer_factory = self.peer_factory
        if peer_factory is None:
            raise SessionConfigError(code="peer_connection_missing", details={"transport": options.transport})
        # Lazy import to avoid a cycle with nethernet.client.
        from nethernet.client import NethernetClient

        def build(client_options: ClientOptions, logger: FieldLogger, server_id: int, client_id: int) -> SessionClient:
            return NethernetClient(
                client_options,
                logger,
                server_id,
                client_id,
                codec=codec,
                peer_factory=peer_factory,
            )

        return build


def default_transports() -> Dict[str, Transport]:
    return {
        TRANSPORT_RAKNET: RaknetTransport(),
        TRANSPORT_NETHERNET: NethernetTransport(),
    }


def create_session_client(
    resolved_options: JoinOptions,
    transports: Optional[Mapping[str, Transport]] = None,
) -> SessionClient:
    """Build and connect a session client for resolved_options.transport."""
    registry = transports if transports is not None else default_transports()
    transport = registry.get(resolved_options.transport)
    if transport is None:
        raise SessionConfigError(
            code="unknown_transport",
            details={"transport": resolved_options.transport, "known": sorted(registry)},
        )
    log.info(
        "Creating %s session client for %s:%d",
        resolved_options.transport,
        resolved_options.host,
        resolved_options.port,
    )
    return transport.connect(resolved_options)
