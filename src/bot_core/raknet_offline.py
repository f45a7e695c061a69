# src/bot_core/raknet_offline.py
"""
RakNet offline (unconnected) ping/pong packets.

    ping: 0x01 | u64 timestamp | magic(16) | u64 client guid
    pong: 0x1c | u64 timestamp | u64 server guid | magic(16) | u16 len | utf-8 advertisement

All integers are big-endian.
"""

from __future__ import annotations

import secrets
import struct
from dataclasses import dataclass
from typing import Optional

UNCONNECTED_PING_ID = 0x01
UNCONNECTED_PONG_ID = 0x1C
RAKNET_MAGIC = bytes(
    [0x00, 0xFF, 0xFF, 0x00, 0xFE, 0xFE, 0xFE, 0xFE, 0xFD, 0xFD, 0xFD, 0xFD, 0x12, 0x34, 0x56, 0x78]
)
LONG_LENGTH_BYTES = 8
PONG_STRING_LENGTH_BYTES = 2
PONG_MAGIC_OFFSET = 1 + LONG_LENGTH_BYTES + LONG_LENGTH_BYTES
MIN_PONG_LENGTH_BYTES = PONG_MAGIC_OFFSET + len(RAKNET_MAGIC) + PONG_STRING_LENGTH_BYTES

_U64_MASK = (1 << 64) - 1


@dataclass(frozen=True)
class UnconnectedPong:
    timestamp: int
    server_guid: int
    server_name: str


def create_random_client_guid() -> int:
    return secrets.randbits(64)


def create_unconnected_ping_packet(timestamp: int, client_guid: int) -> bytes:
    return (
        struct.pack(">BQ", UNCONNECTED_PING_ID, timestamp & _U64_MASK)
        + RAKNET_MAGIC
        + struct.pack(">Q", client_guid & _U64_MASK)
    )


def parse_unconnected_pong_packet(message: bytes) -> Optional[UnconnectedPong]:
    """Decode a pong; None for anything that is not a well-formed pong."""
    if len(message) < MIN_PONG_LENGTH_BYTES or message[0] != UNCONNECTED_PONG_ID:
        return None
    if message[PONG_MAGIC_OFFSET:PONG_MAGIC_OFFSET + len(RAKNET_MAGIC)] != RAKNET_MAGIC:
        return None
    timestamp, server_guid = struct.unpack_from(">QQ", message, 1)
    length_offset = PONG_MAGIC_OFFSET + len(RAKNET_MAGIC)
    (length,) = struct.unpack_from(">H", message, length_offset)
    start = length_offset + PONG_STRING_LENGTH_BYTES
    if len(message) < start + length:
        return None
    try:
        server_name = message[start:start + length].decode("utf-8")
    except UnicodeDecodeError:
        return None
    return UnconnectedPong(timestamp=timestamp, server_guid=server_guid, server_name=server_name)


def create_unconnected_pong_packet(timestamp: int, server_guid: int, server_name: str) -> bytes:
    """Server side of the exchange; used by the status-ping tests and LAN fakes."""
    encoded = server_name.encode("utf-8")
    return (
        struct.pack(">BQQ", UNCONNECTED_PONG_ID, timestamp & _U64_MASK, server_guid & _U64_MASK)
        + RAKNET_MAGIC
        + struct.pack(">H", len(encoded))
        + encoded
    )
