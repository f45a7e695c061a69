# src/bot_core/lan_network.py
"""
Local IPv4 interfaces for LAN discovery.

Both discovery flavours broadcast on every non-loopback IPv4 subnet plus the
limited broadcast address; RakNet discovery also joins its multicast group
on each interface address.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

import psutil

log = logging.getLogger(__name__)

GLOBAL_BROADCAST_ADDRESS = "255.255.255.255"


class DatagramSocket(Protocol):
    """The slice of socket.socket the discovery loops use."""

    def setsockopt(self, level: int, option: int, value: Union[int, bytes]) -> None:
        ...

    def bind(self, address: Tuple[str, int]) -> None:
        ...

    def settimeout(self, value: Optional[float]) -> None:
        ...

    def sendto(self, data: bytes, address: Tuple[str, int]) -> int:
        ...

    def recvfrom(self, bufsize: int) -> Tuple[bytes, Tuple[str, int]]:
        ...

    def close(self) -> None:
        ...


# name -> psutil snicaddr-like entries (family, address, netmask, ...)
InterfaceSnapshot = Mapping[str, Sequence[object]]


def calculate_broadcast_address(address: str, netmask: str) -> Optional[str]:
    """Directed broadcast address of address/netmask, or None if either is not IPv4."""
    try:
        network = ipaddress.IPv4Network(f"{address}/{netmask}", strict=False)
    except ValueError:
        return None
    return str(network.broadcast_address)


def _ipv4_entries(interfaces: InterfaceSnapshot) -> Iterable[object]:
    for entries in interfaces.values():
        for entry in entries:
            if getattr(entry, "family", None) != socket.AF_INET:
                continue
            address = getattr(entry, "address", None)
            try:
                if not address or ipaddress.IPv4Address(address).is_loopback:
                    continue
            except ValueError:
                continue
            yield entry


def get_broadcast_addresses(interfaces: InterfaceSnapshot) -> List[str]:
    """Per-interface broadcast addresses followed by 255.255.255.255, without duplicates."""
    addresses: List[str] = []
    for entry in _ipv4_entries(interfaces):
        netmask = getattr(entry, "netmask", None)
        if not netmask:
            continue
        broadcast = calculate_broadcast_address(entry.address, netmask)
        if broadcast and broadcast not in addresses:
            addresses.append(broadcast)
    if GLOBAL_BROADCAST_ADDRESS not in addresses:
        addresses.append(GLOBAL_BROADCAST_ADDRESS)
    return addresses


def get_ipv4_interface_addresses(interfaces: InterfaceSnapshot) -> List[str]:
    addresses: List[str] = []
    for entry in _ipv4_entries(interfaces):
        if entry.address not in addresses:
            addresses.append(entry.address)
    return addresses


def _system_interfaces() -> InterfaceSnapshot:
    try:
        return psutil.net_if_addrs()
    except OSError as exc:
        log.warning("Interface enumeration failed (%s); using the limited broadcast address only", exc)
        return {}


def get_system_broadcast_addresses() -> List[str]:
    return get_broadcast_addresses(_system_interfaces())


def get_system_ipv4_interface_addresses() -> List[str]:
    return get_ipv4_interface_addresses(_system_interfaces())
