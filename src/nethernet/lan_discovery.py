# src/nethernet/lan_discovery.py
"""
NetherNet LAN discovery.

Broadcasts an encrypted discovery request on the NetherNet port, to every
interface broadcast address plus 255.255.255.255, once per second and
collects host responses until the timeout elapses. Datagrams that fail
authentication or parsing are dropped.
"""

from __future__ import annotations

import logging
import secrets
import socket
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from bot_core.lan_network import DatagramSocket, get_system_broadcast_addresses

from .discovery_packets import (
    DecodedDiscoveryPacket,
    DiscoveryRequest,
    DiscoveryResponse,
    NethernetServerData,
    decode_discovery_packet,
    encode_discovery_packet,
)

log = logging.getLogger(__name__)

DEFAULT_NETHERNET_PORT = 7551
DEFAULT_DISCOVERY_TIMEOUT_MS = 5000
DISCOVERY_REQUEST_INTERVAL_MS = 1000
RECV_BUFFER_BYTES = 65535
MIN_RECV_TIMEOUT_MS = 1


@dataclass(frozen=True)
class DiscoveredNethernetServer:
    host: str
    port: int
    sender_id: int
    server_data: NethernetServerData
    last_seen_ms: float
    latency_ms: Optional[int]


@dataclass(frozen=True)
class LanDiscoveryOptions:
    timeout_ms: int = DEFAULT_DISCOVERY_TIMEOUT_MS
    port: int = DEFAULT_NETHERNET_PORT
    listen_port: int = 0
    broadcast_addresses: Optional[Sequence[str]] = None
    on_server: Optional[Callable[[DiscoveredNethernetServer], None]] = None


def create_random_sender_id() -> int:
    """Random unsigned 64-bit peer identifier."""
    return secrets.randbits(64)


def create_udp_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    return sock


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class LanDiscoveryDependencies:
    create_socket: Callable[[], DatagramSocket] = create_udp_socket
    get_broadcast_addresses: Callable[[], List[str]] = get_system_broadcast_addresses
    now_ms: Callable[[], float] = _monotonic_ms
    create_sender_id: Callable[[], int] = create_random_sender_id
    encode_packet: Callable[..., bytes] = encode_discovery_packet
    decode_packet: Callable[[bytes], Optional[DecodedDiscoveryPacket]] = decode_discovery_packet


@dataclass
class _DiscoveryRound:
    options: LanDiscoveryOptions
    now_ms: Callable[[], float]
    last_request_ms: float = 0.0
    servers: Dict[str, DiscoveredNethernetServer] = field(default_factory=dict)

    def record(self, host: str, decoded: DecodedDiscoveryPacket) -> None:
        if not isinstance(decoded.packet, DiscoveryResponse):
            return
        port = self.options.port
        key = f"{host}:{port}"
        already_seen = key in self.servers
        now = self.now_ms()
        server = DiscoveredNethernetServer(
            host=host,
            port=port,
            sender_id=decoded.sender_id,
            server_data=decoded.packet.server_data,
            last_seen_ms=now,
            latency_ms=max(0, round(now - self.last_request_ms)),
        )
        self.servers[key] = server
        if not already_seen:
            log.info("NetherNet server discovered at %s (%s)", key, server.server_data.server_name)
            if self.options.on_server is not None:
                self.options.on_server(server)


def discover_nethernet_lan_servers(
    options: Optional[LanDiscoveryOptions] = None,
    deps: Optional[LanDiscoveryDependencies] = None,
) -> List[DiscoveredNethernetServer]:
    """
    Run one blocking discovery round and return every responding host.

    Socket errors other than receive timeouts propagate to the caller after
    the socket is closed.
    """
    options = options or LanDiscoveryOptions()
    deps = deps or LanDiscoveryDependencies()

    addresses = list(options.broadcast_addresses or deps.get_broadcast_addresses())
    request = deps.encode_packet(deps.create_sender_id(), DiscoveryRequest())
    state = _DiscoveryRound(options=options, now_ms=deps.now_ms)

    sock = deps.create_socket()
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind(("", options.listen_port))

        deadline = deps.now_ms() + options.timeout_ms
        next_request = deps.now_ms()
        while True:
            now = deps.now_ms()
            if now >= deadline:
                break
            if now >= next_request:
                state.last_request_ms = now
                for address in addresses:
                    sock.sendto(request, (address, options.port))
                next_request = now + DISCOVERY_REQUEST_INTERVAL_MS

            wait_ms = max(MIN_RECV_TIMEOUT_MS, min(deadline, next_request) - now)
            sock.settimeout(wait_ms / 1000.0)
            try:
                data, remote = sock.recvfrom(RECV_BUFFER_BYTES)
            except socket.timeout:
                continue

            decoded = deps.decode_packet(data)
            if decoded is None:
                log.debug("Dropped undecodable discovery datagram from %s (%d bytes)", remote[0], len(data))
                continue
            state.record(remote[0], decoded)
    finally:
        sock.close()

    return list(state.servers.values())
