# tests/test_raknet_discovery.py
"""
Tests for RakNet LAN discovery: bot_core.raknet_offline, bot_core.lan_network,
bot_core.lan_discovery and bot_core.status_ping.

Covers:
- unconnected ping layout and pong parsing (truncated, wrong id, bad magic)
- interface broadcast addresses from a psutil-shaped snapshot
- discovery: one ping per broadcast address, multicast joins, pongs and bare
  multicast advertisements, advertised port wins, junk dropped, socket closed
- status ping: latency, ignores other senders, timeout
"""

from __future__ import annotations

import socket
from collections import namedtuple
from typing import List, Optional, Tuple

import pytest

from bot_core import lan_network
from bot_core.errors import SessionError
from bot_core.lan_discovery import (
    BEDROCK_LAN_MULTICAST_ADDRESS_V4,
    DiscoveredLanServer,
    RaknetDiscoveryDependencies,
    RaknetDiscoveryOptions,
    discover_lan_servers,
    membership_request,
)
from bot_core.raknet_offline import (
    RAKNET_MAGIC,
    UNCONNECTED_PING_ID,
    create_unconnected_ping_packet,
    create_unconnected_pong_packet,
    parse_unconnected_pong_packet,
)
from bot_core.status_ping import StatusPingDependencies, ping_server_status

ADVERTISEMENT = "MCPE;Cave World;800;1.21.0;2;10;9876;Bedrock level;Survival;1;19140;19141;"

snicaddr = namedtuple("snicaddr", "family address netmask broadcast ptp")


# ---------------------------------------------------------------------------
# Offline packets
# ---------------------------------------------------------------------------


def test_ping_layout() -> None:
    packet = create_unconnected_ping_packet(0x0102030405060708, 0xAABBCCDDEEFF0011)
    assert packet[0] == UNCONNECTED_PING_ID
    assert packet[1:9] == bytes.fromhex("0102030405060708")
    assert packet[9:25] == RAKNET_MAGIC
    assert packet[25:] == bytes.fromhex("AABBCCDDEEFF0011")


def test_pong_parsing() -> None:
    pong = create_unconnected_pong_packet(5, 77, ADVERTISEMENT)
    parsed = parse_unconnected_pong_packet(pong)
    assert parsed is not None
    assert (parsed.timestamp, parsed.server_guid, parsed.server_name) == (5, 77, ADVERTISEMENT)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p[:-1],
        lambda p: b"\x1d" + p[1:],
        lambda p: p[:17] + b"\x00" * 16 + p[33:],
        lambda p: p[:20],
    ],
)
def test_malformed_pongs_are_rejected(mutate) -> None:
    assert parse_unconnected_pong_packet(mutate(create_unconnected_pong_packet(1, 2, ADVERTISEMENT))) is None


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


INTERFACES = {
    "lo": [snicaddr(socket.AF_INET, "127.0.0.1", "255.0.0.0", None, None)],
    "eth0": [
        snicaddr(socket.AF_INET, "192.168.1.23", "255.255.255.0", "192.168.1.255", None),
        snicaddr(socket.AF_INET6, "fe80::1", "ffff:ffff:ffff:ffff::", None, None),
    ],
    "wlan0": [snicaddr(socket.AF_INET, "10.4.7.9", "255.255.240.0", None, None)],
    "tun0": [snicaddr(socket.AF_INET, "172.16.0.2", None, None, None)],
}


def test_broadcast_addresses_per_interface() -> None:
    assert lan_network.get_broadcast_addresses(INTERFACES) == ["192.168.1.255", "10.4.15.255", "255.255.255.255"]


def test_ipv4_interface_addresses_skip_loopback() -> None:
    assert lan_network.get_ipv4_interface_addresses(INTERFACES) == ["192.168.1.23", "10.4.7.9", "172.16.0.2"]


def test_calculate_broadcast_address_rejects_garbage() -> None:
    assert lan_network.calculate_broadcast_address("192.168.1.300", "255.255.255.0") is None
    assert lan_network.calculate_broadcast_address("10.0.0.1", "255.255.0.0") == "10.0.255.255"


def test_system_addresses_come_from_psutil(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(lan_network.psutil, "net_if_addrs", lambda: INTERFACES)
    assert lan_network.get_system_broadcast_addresses()[0] == "192.168.1.255"


def test_interface_enumeration_failure_falls_back(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken():
        raise PermissionError("denied")

    monkeypatch.setattr(lan_network.psutil, "net_if_addrs", broken)
    assert lan_network.get_system_broadcast_addresses() == ["255.255.255.255"]


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeSocket:
    def __init__(self, clock: FakeClock, fail_membership_on: Optional[str] = None) -> None:
        self.clock = clock
        self.fail_membership_on = fail_membership_on
        self.incoming: List[Tuple[bytes, Tuple[str, int]]] = []
        self.sent: List[Tuple[bytes, Tuple[str, int]]] = []
        self.memberships: List[bytes] = []
        self.options: List[Tuple[int, int, object]] = []
        self.bound: Optional[Tuple[str, int]] = None
        self.timeout: Optional[float] = None
        self.closed = False

    def setsockopt(self, level: int, option: int, value) -> None:
        if option == socket.IP_ADD_MEMBERSHIP:
            if self.fail_membership_on and value == membership_request(BEDROCK_LAN_MULTICAST_ADDRESS_V4, self.fail_membership_on):
                raise OSError("no such device")
            self.memberships.append(value)
            return
        self.options.append((level, option, value))

    def bind(self, address: Tuple[str, int]) -> None:
        self.bound = address

    def settimeout(self, value: Optional[float]) -> None:
        self.timeout = value

    def sendto(self, data: bytes, address: Tuple[str, int]) -> int:
        self.sent.append((data, address))
        return len(data)

    def recvfrom(self, bufsize: int) -> Tuple[bytes, Tuple[str, int]]:
        if self.incoming:
            return self.incoming.pop(0)
        self.clock.now += (self.timeout or 0) * 1000.0
        raise socket.timeout()

    def close(self) -> None:
        self.closed = True


def make_deps(sock: FakeSocket, clock: FakeClock) -> RaknetDiscoveryDependencies:
    return RaknetDiscoveryDependencies(
        create_socket=lambda: sock,
        get_broadcast_addresses=lambda: ["192.168.1.255", "255.255.255.255"],
        get_multicast_interfaces=lambda: ["192.168.1.23", "10.4.7.9"],
        now_ms=clock,
        create_client_guid=lambda: 42,
    )


def test_discovery_collects_pongs_and_multicast_adverts() -> None:
    clock = FakeClock()
    sock = FakeSocket(clock, fail_membership_on="10.4.7.9")
    sock.incoming.append((create_unconnected_pong_packet(1, 2, ADVERTISEMENT), ("192.168.1.40", 19132)))
    sock.incoming.append((b"not an advert", ("192.168.1.41", 19132)))
    sock.incoming.append((b"MCPE;Sky Base;800;1.21.0;1;8;555;Sky;Creative;1;;", ("192.168.1.42", 51000)))
    sock.incoming.append((create_unconnected_pong_packet(3, 2, ADVERTISEMENT), ("192.168.1.40", 19132)))
    seen: List[DiscoveredLanServer] = []

    servers = discover_lan_servers(RaknetDiscoveryOptions(timeout_ms=2000, on_server=seen.append), make_deps(sock, clock))

    assert sock.closed
    assert sock.bound == ("", 4445)
    assert (socket.SOL_SOCKET, socket.SO_BROADCAST, 1) in sock.options
    assert len(sock.memberships) == 2
    assert [address for _, address in sock.sent] == [("192.168.1.255", 19132), ("255.255.255.255", 19132)]
    assert sock.sent[0][0] == create_unconnected_ping_packet(1000, 42)

    by_host = {server.host: server for server in servers}
    assert sorted(by_host) == ["192.168.1.40", "192.168.1.42"]
    assert by_host["192.168.1.40"].port == 19140
    assert by_host["192.168.1.40"].advertisement.motd == "Cave World"
    assert by_host["192.168.1.42"].port == 51000
    assert len(seen) == 2


def test_discovery_respects_explicit_addresses() -> None:
    clock = FakeClock()
    sock = FakeSocket(clock)

    servers = discover_lan_servers(
        RaknetDiscoveryOptions(timeout_ms=100, port=19200, broadcast_addresses=["10.0.0.255"], multicast_interfaces=[]),
        make_deps(sock, clock),
    )

    assert servers == []
    assert [address for _, address in sock.sent] == [("10.0.0.255", 19200)]
    assert sock.memberships == [membership_request(BEDROCK_LAN_MULTICAST_ADDRESS_V4, "0.0.0.0")]


# ---------------------------------------------------------------------------
# Status ping
# ---------------------------------------------------------------------------


class PingSocket(FakeSocket):
    def recvfrom(self, bufsize: int) -> Tuple[bytes, Tuple[str, int]]:
        self.clock.now += 7
        return super().recvfrom(bufsize)


def ping_deps(sock: FakeSocket, clock: FakeClock) -> StatusPingDependencies:
    return StatusPingDependencies(
        create_socket=lambda: sock,
        resolve_host=lambda host: "192.168.1.40" if host == "cave.lan" else host,
        now_ms=clock,
        create_client_guid=lambda: 9,
    )


def test_status_ping_reports_latency() -> None:
    clock = FakeClock()
    sock = PingSocket(clock)
    sock.incoming.append((create_unconnected_pong_packet(1, 2, ADVERTISEMENT), ("192.168.1.99", 19132)))
    sock.incoming.append((b"\x1c garbage", ("192.168.1.40", 19132)))
    sock.incoming.append((create_unconnected_pong_packet(1, 2, ADVERTISEMENT), ("192.168.1.40", 19132)))

    status = ping_server_status("cave.lan", 19132, deps=ping_deps(sock, clock))

    assert sock.sent == [(create_unconnected_ping_packet(1000, 9), ("192.168.1.40", 19132))]
    assert status.host == "cave.lan"
    assert status.advertisement.motd == "Cave World"
    assert status.latency_ms == 21
    assert sock.closed


def test_status_ping_times_out() -> None:
    clock = FakeClock()
    sock = FakeSocket(clock)

    with pytest.raises(SessionError) as excinfo:
        ping_server_status("10.0.0.8", 19132, timeout_ms=300, deps=ping_deps(sock, clock))

    assert excinfo.value.code == "ping_timeout"
    assert sock.closed
