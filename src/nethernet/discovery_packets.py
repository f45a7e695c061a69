# src/nethernet/discovery_packets.py
"""
NetherNet LAN discovery packet codec.

Datagram layout:

    checksum (32)  HMAC-SHA256 over the plaintext payload
    encrypted      AES-256-ECB(payload)

Plaintext payload:

    u16 total length | u16 packet id | u64 sender id | 8 bytes padding | body

Packet bodies:
    request  (0): empty
    response (1): u32 length + hex-encoded ServerData
    message  (2): u64 recipient id + u32 length + UTF-8 text

decode_discovery_packet() returns None for anything it cannot authenticate
or parse; discovery loops drop such datagrams and carry on.
"""

from __future__ import annotations

import binascii
import struct
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .discovery_crypto import (
    CHECKSUM_LENGTH_BYTES,
    DEFAULT_DISCOVERY_CRYPTO,
    DiscoveryCrypto,
    DiscoveryCryptoError,
)

PACKET_ID_REQUEST = 0
PACKET_ID_RESPONSE = 1
PACKET_ID_MESSAGE = 2

_HEADER = struct.Struct("<HHQ8x")          # length, packet id, sender id, padding
_SERVER_DATA_TAIL = struct.Struct("<iiiBi")  # game type, online, max, editor, transport
_LEGACY_SERVER_DATA_TAIL = struct.Struct("<BiiB")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

MIN_ENCRYPTED_BYTES = 16
VARUINT32_MAX_BYTES = 5


@dataclass(frozen=True)
class NethernetServerData:
    nethernet_version: int
    server_name: str
    level_name: str
    game_type: int
    players_online: int
    players_max: int
    editor_world: bool
    transport_layer: Optional[int]


@dataclass(frozen=True)
class DiscoveryRequest:
    pass


@dataclass(frozen=True)
class DiscoveryResponse:
    server_data: NethernetServerData


@dataclass(frozen=True)
class DiscoveryMessage:
    recipient_id: int
    message: str


DiscoveryPacket = Union[DiscoveryRequest, DiscoveryResponse, DiscoveryMessage]


@dataclass(frozen=True)
class DecodedDiscoveryPacket:
    sender_id: int
    packet: DiscoveryPacket


# ---------------------------------------------------------------------------
# varuint32
# ---------------------------------------------------------------------------


def read_varuint32(buffer: bytes, offset: int) -> Optional[Tuple[int, int]]:
    """Return (value, size) or None if truncated / too long."""
    value = 0
    for index in range(VARUINT32_MAX_BYTES):
        if offset + index >= len(buffer):
            return None
        byte = buffer[offset + index]
        value |= (byte & 0x7F) << (7 * index)
        if not byte & 0x80:
            return value, index + 1
    return None


def write_varuint32(value: int) -> bytes:
    out = bytearray()
    remaining = value & 0xFFFFFFFF
    while remaining >= 0x80:
        out.append((remaining & 0x7F) | 0x80)
        remaining >>= 7
    out.append(remaining)
    return bytes(out)


# ---------------------------------------------------------------------------
# ServerData
# ---------------------------------------------------------------------------


def encode_server_data(data: NethernetServerData) -> bytes:
    if data.transport_layer is None:
        raise ValueError("Cannot encode ServerData without transport_layer")
    server_name = data.server_name.encode("utf-8")
    level_name = data.level_name.encode("utf-8")
    return b"".join(
        [
            bytes([data.nethernet_version & 0xFF]),
            write_varuint32(len(server_name)),
            server_name,
            write_varuint32(len(level_name)),
            level_name,
            _SERVER_DATA_TAIL.pack(
                data.game_type,
                data.players_online,
                data.players_max,
                1 if data.editor_world else 0,
                data.transport_layer,
            ),
        ]
    )


def _read_string(buffer: bytes, offset: int) -> Optional[Tuple[str, int]]:
    length = read_varuint32(buffer, offset)
    if length is None:
        return None
    value, size = length
    start = offset + size
    if len(buffer) < start + value:
        return None
    try:
        return buffer[start:start + value].decode("utf-8"), start + value
    except UnicodeDecodeError:
        return None


def decode_server_data(buffer: bytes) -> Optional[NethernetServerData]:
    if len(buffer) < 1:
        return None
    version = buffer[0]
    server_name = _read_string(buffer, 1)
    if server_name is None:
        return None
    level_name = _read_string(buffer, server_name[1])
    if level_name is None:
        return None
    offset = level_name[1]
    remaining = len(buffer) - offset

    if remaining >= _SERVER_DATA_TAIL.size:
        game_type, online, maximum, editor, transport = _SERVER_DATA_TAIL.unpack_from(buffer, offset)
        return NethernetServerData(
            nethernet_version=version,
            server_name=server_name[0],
            level_name=level_name[0],
            game_type=game_type,
            players_online=online,
            players_max=maximum,
            editor_world=editor != 0,
            transport_layer=transport,
        )
    # Hosts on discovery v4+ may send a one-byte game type and no transport.
    if version >= 4 and remaining >= _LEGACY_SERVER_DATA_TAIL.size:
        game_type, online, maximum, editor = _LEGACY_SERVER_DATA_TAIL.unpack_from(buffer, offset)
        return NethernetServerData(
            nethernet_version=version,
            server_name=server_name[0],
            level_name=level_name[0],
            game_type=game_type,
            players_online=online,
            players_max=maximum,
            editor_world=editor != 0,
            transport_layer=None,
        )
    return None


# ---------------------------------------------------------------------------
# Packet bodies
# ---------------------------------------------------------------------------


def _encode_body(packet: DiscoveryPacket) -> Tuple[int, bytes]:
    if isinstance(packet, DiscoveryRequest):
        return PACKET_ID_REQUEST, b""
    if isinstance(packet, DiscoveryResponse):
        hex_payload = encode_server_data(packet.server_data).hex().encode("ascii")
        return PACKET_ID_RESPONSE, _U32.pack(len(hex_payload)) + hex_payload
    if isinstance(packet, DiscoveryMessage):
        text = packet.message.encode("utf-8")
        return PACKET_ID_MESSAGE, _U64.pack(packet.recipient_id) + _U32.pack(len(text)) + text
    raise TypeError(f"Unsupported discovery packet: {packet!r}")


def _decode_response(body: bytes) -> Optional[DiscoveryResponse]:
    if len(body) < _U32.size:
        return None
    (length,) = _U32.unpack_from(body, 0)
    if len(body) < _U32.size + length:
        return None
    try:
        raw = binascii.unhexlify(body[_U32.size:_U32.size + length])
    except (binascii.Error, ValueError):
        return None
    server_data = decode_server_data(raw)
    return DiscoveryResponse(server_data) if server_data else None


def _decode_message(body: bytes) -> Optional[DiscoveryMessage]:
    header = _U64.size + _U32.size
    if len(body) < header:
        return None
    (recipient_id,) = _U64.unpack_from(body, 0)
    (length,) = _U32.unpack_from(body, _U64.size)
    if len(body) < header + length:
        return None
    try:
        text = body[header:header + length].decode("utf-8")
    except UnicodeDecodeError:
        return None
    return DiscoveryMessage(recipient_id=recipient_id, message=text)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def encode_discovery_packet(
    sender_id: int,
    packet: DiscoveryPacket,
    crypto: DiscoveryCrypto = DEFAULT_DISCOVERY_CRYPTO,
) -> bytes:
    packet_id, body = _encode_body(packet)
    payload = _HEADER.pack(_HEADER.size + len(body), packet_id, sender_id) + body
    return crypto.checksum(payload) + crypto.encrypt(payload)


def decode_discovery_packet(
    data: bytes,
    crypto: DiscoveryCrypto = DEFAULT_DISCOVERY_CRYPTO,
) -> Optional[DecodedDiscoveryPacket]:
    if len(data) < CHECKSUM_LENGTH_BYTES + MIN_ENCRYPTED_BYTES:
        return None
    checksum = data[:CHECKSUM_LENGTH_BYTES]
    try:
        payload = crypto.decrypt(data[CHECKSUM_LENGTH_BYTES:])
    except DiscoveryCryptoError:
        return None
    if not crypto.is_valid(payload, checksum):
        return None
    if len(payload) < _HEADER.size:
        return None

    length, packet_id, sender_id = _HEADER.unpack_from(payload, 0)
    if length != len(payload):
        return None
    body = payload[_HEADER.size:length]

    if packet_id == PACKET_ID_REQUEST:
        return DecodedDiscoveryPacket(sender_id, DiscoveryRequest())
    if packet_id == PACKET_ID_RESPONSE:
        response = _decode_response(body)
        return DecodedDiscoveryPacket(sender_id, response) if response else None
    if packet_id == PACKET_ID_MESSAGE:
        message = _decode_message(body)
        return DecodedDiscoveryPacket(sender_id, message) if message else None
    return None
