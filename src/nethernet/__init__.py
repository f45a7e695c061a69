# nethernet package
# src/nethernet/__init__.py
"""
NetherNet LAN transport pieces.

Exports:
    - discover_nethernet_lan_servers: broadcast discovery round
    - encode_discovery_packet / decode_discovery_packet: discovery wire codec
    - DiscoveryCrypto and the default discovery checksum/cipher helpers
    - split_payload / SegmentReassembler: data-channel segmentation

The session client lives in nethernet.client and is imported from there.
"""

from __future__ import annotations

from .discovery_crypto import (
    DiscoveryCrypto,
    DiscoveryCryptoError,
    compute_discovery_checksum,
    decrypt_discovery_payload,
    encrypt_discovery_payload,
    is_valid_discovery_checksum,
)
from .discovery_packets import (
    DecodedDiscoveryPacket,
    DiscoveryMessage,
    DiscoveryRequest,
    DiscoveryResponse,
    NethernetServerData,
    decode_discovery_packet,
    encode_discovery_packet,
)
from .lan_discovery import (
    DiscoveredNethernetServer,
    LanDiscoveryOptions,
    create_random_sender_id,
    discover_nethernet_lan_servers,
)
from .segmentation import SegmentationError, SegmentReassembler, split_payload

__all__ = [
    "DiscoveryCrypto",
    "DiscoveryCryptoError",
    "compute_discovery_checksum",
    "decrypt_discovery_payload",
    "encrypt_discovery_payload",
    "is_valid_discovery_checksum",
    "DecodedDiscoveryPacket",
    "DiscoveryMessage",
    "DiscoveryRequest",
    "DiscoveryResponse",
    "NethernetServerData",
    "decode_discovery_packet",
    "encode_discovery_packet",
    "DiscoveredNethernetServer",
    "LanDiscoveryOptions",
    "create_random_sender_id",
    "discover_nethernet_lan_servers",
    "SegmentationError",
    "SegmentReassembler",
    "split_payload",
]
