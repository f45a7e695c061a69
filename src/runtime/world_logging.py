# path: src/runtime/world_logging.py

"""
Field projections for spawn and chunk-publisher packets.

ChunkPublisherUpdateLogger logs the first update at info and every later
one at debug; the packet repeats often while the player moves.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from bot_core.net.session_options import JoinOptions
from bot_core.packet_fields import Vector3, read_optional_number_field, read_packet_position
from monitoring.logger import FieldLogger


def profile_name(client: Any) -> str:
    profile = getattr(client, "profile", None)
    if isinstance(profile, Mapping):
        name = profile.get("name")
    else:
        name = getattr(profile, "name", None)
    return name if isinstance(name, str) and name else "unknown"


def to_start_game_log_fields(
    options: JoinOptions,
    client: Any,
    packet: Mapping[str, Any],
    local_runtime_entity_id: Optional[str],
    position: Optional[Vector3],
) -> Dict[str, Any]:
    game_type = read_optional_number_field(packet, "player_gamemode")
    if game_type is None:
        game_type = read_optional_number_field(packet, "game_type")
    return {
        "event": "start_game",
        "host": options.host,
        "port": options.port,
        "transport": options.transport,
        "serverName": options.server_name,
        "serverId": str(options.nethernet_server_id) if options.nethernet_server_id is not None else None,
        "playerName": profile_name(client),
        "dimension": packet.get("dimension"),
        "position": position,
        "runtimeEntityId": local_runtime_entity_id,
        "levelId": packet.get("level_id"),
        "worldName": packet.get("world_name"),
        "blockNetworkIdsAreHashes": packet.get("block_network_ids_are_hashes"),
        "gameType": game_type,
        "difficulty": read_optional_number_field(packet, "difficulty"),
        "generator": read_optional_number_field(packet, "generator"),
        "seed": read_optional_number_field(packet, "seed"),
        "gameRules": packet.get("gamerules"),
    }


def to_chunk_publisher_update_log_fields(packet: Any) -> Dict[str, Any]:
    return {
        "event": "chunk_publisher_update",
        "chunkPublisherCenter": read_packet_position(packet, "coordinates"),
        "chunkPublisherRadiusBlocks": read_optional_number_field(packet, "radius"),
    }


class ChunkPublisherUpdateLogger:
    def __init__(self, logger: FieldLogger) -> None:
        self._logger = logger
        self._logged = False

    def __call__(self, packet: Any) -> None:
        fields = to_chunk_publisher_update_log_fields(packet)
        if self._logged:
            self._logger.debug(fields, "Updated chunk publisher")
            return
        self._logged = True
        self._logger.info(fields, "Received network chunk publisher update")
