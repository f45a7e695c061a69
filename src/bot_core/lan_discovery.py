# src/bot_core/lan_discovery.py
"""
RakNet LAN discovery.

Sends one unconnected ping to every broadcast address and listens on the
Bedrock LAN port, joined to the 224.0.2.60 multicast group, until the
timeout elapses. Replies are either RakNet pongs or bare multicast
advertisement strings; both carry an "MCPE;..." advertisement. Datagrams
that parse as neither are dropped.
"""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .advertisement import LanServerAdvertisement, parse_advertisement_string
from .lan_network import (
    DatagramSocket,
    get_system_broadcast_addresses,
    get_system_ipv4_interface_addresses,
)
from .raknet_offline import (
    create_random_client_guid,
    create_unconnected_ping_packet,
    parse_unconnected_pong_packet,
)

log = logging.getLogger(__name__)

DEFAULT_BEDROCK_PORT = 19132
DEFAULT_LAN_DISCOVERY_PORT = 4445
DEFAULT_DISCOVERY_TIMEOUT_MS = 5000
BEDROCK_LAN_MULTICAST_ADDRESS_V4 = "224.0.2.60"
ANY_INTERFACE = "0.0.0.0"
RECV_BUFFER_BYTES = 65535
MIN_RECV_TIMEOUT_MS = 1


@dataclass(frozen=True)
class DiscoveredLanServer:
    host: str
    port: int
    advertisement: LanServerAdvertisement
    last_seen_ms: float


@dataclass(frozen=True)
class RaknetDiscoveryOptions:
    timeout_ms: int = DEFAULT_DISCOVERY_TIMEOUT_MS
    port: int = DEFAULT_BEDROCK_PORT
    listen_port: int = DEFAULT_LAN_DISCOVERY_PORT
    broadcast_addresses: Optional[Sequence[str]] = None
    multicast_addresses: Sequence[str] = (BEDROCK_LAN_MULTICAST_ADDRESS_V4,)
    multicast_interfaces: Optional[Sequence[str]] = None
    on_server: Optional[Callable[[DiscoveredLanServer], None]] = None


def create_udp_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    return sock


def _epoch_ms() -> float:
    return time.time() * 1000.0


@dataclass
class RaknetDiscoveryDependencies:
    create_socket: Callable[[], DatagramSocket] = create_udp_socket
    get_broadcast_addresses: Callable[[], List[str]] = get_system_broadcast_addresses
    get_multicast_interfaces: Callable[[], List[str]] = get_system_ipv4_interface_addresses
    now_ms: Callable[[], float] = _epoch_ms
    create_client_guid: Callable[[], int] = create_random_client_guid


def membership_request(group: str, interface: str) -> bytes:
    """ip_mreq for IP_ADD_MEMBERSHIP."""
    return socket.inet_aton(group) + socket.inet_aton(interface)


def _join_multicast_groups(sock: DatagramSocket, groups: Sequence[str], interfaces: Sequence[str]) -> None:
    # Broadcast discovery still works when a join fails, so failures are logged only.
    for group in groups:
        for interface in (ANY_INTERFACE, *interfaces):
            try:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership_request(group, interface))
            except OSError as exc:
                log.debug("Multicast join %s on %s failed: %s", group, interface, exc)


def parse_discovery_datagram(data: bytes) -> Optional[LanServerAdvertisement]:
    pong = parse_unconnected_pong_packet(data)
    if pong is not None:
        return parse_advertisement_string(pong.server_name)
    try:
        return parse_advertisement_string(data.decode("utf-8"))
    except UnicodeDecodeError:
        return None


@dataclass
class _DiscoveryRound:
    options: RaknetDiscoveryOptions
    now_ms: Callable[[], float]
    servers: Dict[str, DiscoveredLanServer] = field(default_factory=dict)

    def record(self, remote_host: str, remote_port: int, advertisement: LanServerAdvertisement) -> None:
        advertised = advertisement.port_v4 if advertisement.port_v4 is not None else advertisement.port_v6
        port = advertised if advertised is not None else remote_port
        key = f"{remote_host}:{port}"
        already_seen = key in self.servers
        server = DiscoveredLanServer(
            host=remote_host,
            port=port,
            advertisement=advertisement,
            last_seen_ms=self.now_ms(),
        )
        self.servers[key] = server
        if not already_seen:
            log.info("LAN server discovered at %s (%s)", key, advertisement.motd)
            if self.options.on_server is not None:
                self.options.on_server(server)


def discover_lan_servers(
    options: Optional[RaknetDiscoveryOptions] = None,
    deps: Optional[RaknetDiscoveryDependencies] = None,
) -> List[DiscoveredLanServer]:
    """Run one blocking RakNet discovery round; socket errors propagate after close."""
    options = options or RaknetDiscoveryOptions()
    deps = deps or RaknetDiscoveryDependencies()

    broadcast = list(options.broadcast_addresses or deps.get_broadcast_addresses())
    interfaces = list(
        options.multicast_interfaces if options.multicast_interfaces is not None else deps.get_multicast_interfaces()
    )
    ping = create_unconnected_ping_packet(int(deps.now_ms()), deps.create_client_guid())
    state = _DiscoveryRound(options=options, now_ms=deps.now_ms)

    sock = deps.create_socket()
    try:
        sock.bind(("", options.listen_port))
        _join_multicast_groups(sock, options.multicast_addresses, interfaces)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        for address in broadcast:
            sock.sendto(ping, (address, options.port))

        deadline = deps.now_ms() + options.timeout_ms
        while True:
            now = deps.now_ms()
            if now >= deadline:
                break
            sock.settimeout(max(MIN_RECV_TIMEOUT_MS, deadline - now) / 1000.0)
            try:
                data, remote = sock.recvfrom(RECV_BUFFER_BYTES)
            except socket.timeout:
                continue
            advertisement = parse_discovery_datagram(data)
            if advertisement is None:
                log.debug("Dropped non-advertisement datagram from %s (%d bytes)", remote[0], len(data))
                continue
            state.record(remote[0], remote[1], advertisement)
    finally:
        sock.close()

    return list(state.servers.values())
