# tests/test_lan_discovery.py
"""
Tests for nethernet.lan_discovery with a fake UDP socket and clock.

Covers:
- request broadcast and periodic resend
- response collection keyed by host, on_server once per host
- undecodable datagrams are ignored
- socket closed on exit
- default targets: every interface broadcast address plus 255.255.255.255
"""

from __future__ import annotations

import socket
from collections import namedtuple
from typing import List, Optional, Tuple

import pytest

from bot_core import lan_network
from nethernet.discovery_packets import (
    DiscoveryRequest,
    DiscoveryResponse,
    NethernetServerData,
    decode_discovery_packet,
    encode_discovery_packet,
)
from nethernet.lan_discovery import (
    DiscoveredNethernetServer,
    LanDiscoveryDependencies,
    LanDiscoveryOptions,
    discover_nethernet_lan_servers,
)

SERVER_DATA = NethernetServerData(
    nethernet_version=3,
    server_name="Creative Build",
    level_name="Flatland",
    game_type=1,
    players_online=1,
    players_max=8,
    editor_world=False,
    transport_layer=2,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeSocket:
    """Serves queued datagrams; when empty, jumps the clock by the timeout and raises."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.incoming: List[Tuple[float, bytes, Tuple[str, int]]] = []
        self.sent: List[Tuple[bytes, Tuple[str, int]]] = []
        self.bound: Optional[Tuple[str, int]] = None
        self.options: List[Tuple[int, int, int]] = []
        self.timeout: Optional[float] = None
        self.closed = False

    def setsockopt(self, level: int, option: int, value: int) -> None:
        self.options.append((level, option, value))

    def bind(self, address: Tuple[str, int]) -> None:
        self.bound = address

    def settimeout(self, value: Optional[float]) -> None:
        self.timeout = value

    def sendto(self, data: bytes, address: Tuple[str, int]) -> int:
        self.sent.append((data, address))
        return len(data)

    def recvfrom(self, bufsize: int) -> Tuple[bytes, Tuple[str, int]]:
        ready = [item for item in self.incoming if item[0] <= self.clock.now]
        if ready:
            item = ready[0]
            self.incoming.remove(item)
            return item[1], item[2]
        self.clock.now += (self.timeout or 0) * 1000.0
        raise socket.timeout()

    def close(self) -> None:
        self.closed = True


def make_deps(sock: FakeSocket, clock: FakeClock) -> LanDiscoveryDependencies:
    return LanDiscoveryDependencies(
        create_socket=lambda: sock,
        get_broadcast_addresses=lambda: ["192.168.1.255"],
        now_ms=clock,
        create_sender_id=lambda: 1234,
    )


def test_collects_responses_and_closes_socket() -> None:
    clock = FakeClock()
    sock = FakeSocket(clock)
    response = encode_discovery_packet(777, DiscoveryResponse(SERVER_DATA))
    sock.incoming.append((0.0, b"garbage" * 10, ("192.168.1.9", 7551)))
    sock.incoming.append((0.0, response, ("192.168.1.20", 7551)))
    sock.incoming.append((1500.0, response, ("192.168.1.20", 7551)))
    seen: List[DiscoveredNethernetServer] = []

    servers = discover_nethernet_lan_servers(
        LanDiscoveryOptions(timeout_ms=3000, on_server=seen.append),
        make_deps(sock, clock),
    )

    assert sock.closed
    assert sock.bound == ("", 0)
    assert (socket.SOL_SOCKET, socket.SO_BROADCAST, 1) in sock.options
    assert len(servers) == 1
    server = servers[0]
    assert (server.host, server.port, server.sender_id) == ("192.168.1.20", 7551, 777)
    assert server.server_data == SERVER_DATA
    assert len(seen) == 1


def test_request_resent_every_second() -> None:
    clock = FakeClock()
    sock = FakeSocket(clock)

    servers = discover_nethernet_lan_servers(LanDiscoveryOptions(timeout_ms=3000, port=7551), make_deps(sock, clock))

    assert servers == []
    assert len(sock.sent) == 3
    for data, address in sock.sent:
        assert address == ("192.168.1.255", 7551)
        decoded = decode_discovery_packet(data)
        assert decoded is not None
        assert decoded.sender_id == 1234
        assert decoded.packet == DiscoveryRequest()


def test_explicit_broadcast_addresses_win() -> None:
    clock = FakeClock()
    sock = FakeSocket(clock)

    discover_nethernet_lan_servers(
        LanDiscoveryOptions(timeout_ms=500, broadcast_addresses=["10.0.0.5"]),
        make_deps(sock, clock),
    )

    assert {address for _, address in sock.sent} == {("10.0.0.5", 7551)}


def test_default_targets_include_interface_broadcasts(monkeypatch: pytest.MonkeyPatch) -> None:
    snicaddr = namedtuple("snicaddr", "family address netmask broadcast ptp")
    monkeypatch.setattr(
        lan_network.psutil,
        "net_if_addrs",
        lambda: {
            "lo": [snicaddr(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)],
            "eth0": [snicaddr(socket.AF_INET, "192.168.50.4", "255.255.255.0", None, None)],
        },
    )
    clock = FakeClock()
    sock = FakeSocket(clock)
    deps = LanDiscoveryDependencies(create_socket=lambda: sock, now_ms=clock, create_sender_id=lambda: 1)

    discover_nethernet_lan_servers(LanDiscoveryOptions(timeout_ms=500), deps)

    assert [address for _, address in sock.sent] == [("192.168.50.255", 7551), ("255.255.255.255", 7551)]
