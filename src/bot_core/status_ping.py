# src/bot_core/status_ping.py
"""Unconnected-ping status query for one RakNet server."""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .advertisement import LanServerAdvertisement, parse_advertisement_string
from .errors import SessionError
from .lan_discovery import DEFAULT_BEDROCK_PORT, RECV_BUFFER_BYTES
from .lan_network import DatagramSocket
from .raknet_offline import create_random_client_guid, create_unconnected_ping_packet, parse_unconnected_pong_packet

log = logging.getLogger(__name__)

# Slightly above the RakNet default to reduce false timeouts.
DEFAULT_PING_TIMEOUT_MS = 1500
# Pause between pings when scanning several servers.
DEFAULT_PING_THROTTLE_MS = 200


@dataclass(frozen=True)
class ServerStatus:
    host: str
    port: int
    advertisement: LanServerAdvertisement
    latency_ms: int


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class StatusPingDependencies:
    create_socket: Callable[[], DatagramSocket] = lambda: socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    resolve_host: Callable[[str], str] = socket.gethostbyname
    now_ms: Callable[[], float] = _monotonic_ms
    create_client_guid: Callable[[], int] = create_random_client_guid


def ping_server_status(
    host: str,
    port: int = DEFAULT_BEDROCK_PORT,
    timeout_ms: int = DEFAULT_PING_TIMEOUT_MS,
    deps: Optional[StatusPingDependencies] = None,
) -> ServerStatus:
    """
    Ping host:port and return its advertisement and round-trip latency.

    Raises SessionError("ping_timeout") when no valid pong arrives in time.
    Datagrams from other senders and unparseable pongs are ignored. Name
    resolution errors (socket.gaierror) propagate.
    """
    deps = deps or StatusPingDependencies()
    address = deps.resolve_host(host)
    sock = deps.create_socket()
    try:
        start = deps.now_ms()
        deadline = start + timeout_ms
        sock.sendto(create_unconnected_ping_packet(int(start), deps.create_client_guid()), (address, port))
        while True:
            now = deps.now_ms()
            if now >= deadline:
                raise SessionError(code="ping_timeout", details={"host": host, "port": port, "timeoutMs": timeout_ms})
            sock.settimeout(max(1.0, deadline - now) / 1000.0)
            try:
                data, remote = sock.recvfrom(RECV_BUFFER_BYTES)
            except socket.timeout:
                continue
            if remote[0] != address:
                continue
            pong = parse_unconnected_pong_packet(data)
            advertisement = parse_advertisement_string(pong.server_name) if pong is not None else None
            if advertisement is None:
                log.debug("Ignoring invalid pong from %s:%d", host, port)
                continue
            return ServerStatus(
                host=host,
                port=port,
                advertisement=advertisement,
                latency_ms=round(deps.now_ms() - start),
            )
    finally:
        sock.close()
