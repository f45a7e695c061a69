# src/bot_core/advertisement.py
"""
Parser for Bedrock LAN advertisement strings.

Format (semicolon separated):

    MCPE;motd;protocol;version;online;max;serverId;level;gamemode;gamemodeId;port4;port6

The trailing IPv6 port is optional. Malformed strings yield None.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

ADVERTISEMENT_HEADER = "MCPE"
MIN_ADVERTISEMENT_SEGMENTS = 11

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class LanServerAdvertisement:
    motd: str
    level_name: str
    protocol: int
    version: str
    players_online: int
    players_max: int
    server_id: str
    gamemode: str
    gamemode_id: Optional[int]
    port_v4: Optional[int]
    port_v6: Optional[int]


def _parse_int(value: Optional[str]) -> Optional[int]:
    """Leading-integer parse; "19132abc" -> 19132, "" / "x" -> None."""
    if not value:
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def parse_advertisement_string(advertisement: str) -> Optional[LanServerAdvertisement]:
    segments = advertisement.split(";")
    if len(segments) < MIN_ADVERTISEMENT_SEGMENTS or segments[0] != ADVERTISEMENT_HEADER:
        return None

    protocol = _parse_int(segments[2])
    players_online = _parse_int(segments[4])
    players_max = _parse_int(segments[5])
    if protocol is None or players_online is None or players_max is None:
        return None

    version = segments[3]
    server_id = segments[6]
    if not server_id or not version:
        return None

    return LanServerAdvertisement(
        motd=segments[1],
        level_name=segments[7],
        protocol=protocol,
        version=version,
        players_online=players_online,
        players_max=players_max,
        server_id=server_id,
        gamemode=segments[8],
        gamemode_id=_parse_int(segments[9]),
        port_v4=_parse_int(segments[10]),
        port_v6=_parse_int(segments[11]) if len(segments) > 11 else None,
    )
