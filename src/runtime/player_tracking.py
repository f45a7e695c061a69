# path: src/runtime/player_tracking.py

"""
Player bookkeeping fed by inbound packets.

PlayerTracker follows player entities (add_player / remove_entity /
move_player) and resolves the follow target's live position.
PlayerListState tracks the names announced by player_list and add_player
and reports sorted snapshots on every change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from bot_core.packet_fields import (
    Vector3,
    read_optional_string_field,
    read_packet_id,
    read_packet_position,
)
from monitoring.logger import FieldLogger


def normalize_player_name(name: str) -> str:
    return name.casefold()


@dataclass
class TrackedPlayer:
    username: str
    position: Optional[Vector3]

    @property
    def normalized(self) -> str:
        return normalize_player_name(self.username)


class PlayerTracker:
    def __init__(self, logger: FieldLogger, follow_player_name: Optional[str] = None) -> None:
        self._logger = logger
        self._follow_name = follow_player_name
        self._follow_normalized = normalize_player_name(follow_player_name) if follow_player_name else None
        self._players: Dict[str, TrackedPlayer] = {}
        self.local_runtime_entity_id: Optional[str] = None
        self.follow_target_runtime_entity_id: Optional[str] = None

    def handle_add_player(self, packet: Mapping[str, Any]) -> None:
        runtime_id = read_packet_id(packet, ("runtime_id", "runtime_entity_id"))
        username = read_optional_string_field(packet, "username")
        if not runtime_id or not username:
            return
        self._players[runtime_id] = TrackedPlayer(username, read_packet_position(packet, "position"))
        self._logger.info({"event": "player_seen", "username": username, "runtimeEntityId": runtime_id}, "Tracked player entity")
        if runtime_id == self.local_runtime_entity_id:
            return
        if self._follow_normalized and normalize_player_name(username) == self._follow_normalized:
            self._acquire(runtime_id, username)

    def handle_remove_entity(self, packet: Mapping[str, Any]) -> None:
        runtime_id = read_packet_id(packet, ("runtime_id", "runtime_entity_id", "entity_id"))
        if not runtime_id:
            return
        self._players.pop(runtime_id, None)
        if self.follow_target_runtime_entity_id != runtime_id:
            return
        self.follow_target_runtime_entity_id = None
        self._logger.info({"event": "follow_target_lost", "runtimeEntityId": runtime_id}, "Follow target entity left tracking range")

    def handle_move_player(self, packet: Mapping[str, Any], on_local_position: Callable[[Vector3], None]) -> None:
        runtime_id = read_packet_id(packet, ("runtime_id", "runtime_entity_id"))
        position = read_packet_position(packet, "position")
        if not runtime_id or position is None:
            return
        if self.local_runtime_entity_id is None or runtime_id == self.local_runtime_entity_id:
            on_local_position(position)
        tracked = self._players.get(runtime_id)
        if tracked is not None:
            tracked.position = position

    def resolve_follow_target_position(self) -> Optional[Vector3]:
        if not self._follow_normalized:
            return None
        for runtime_id, tracked in self._players.items():
            if runtime_id == self.local_runtime_entity_id or tracked.normalized != self._follow_normalized:
                continue
            if self.follow_target_runtime_entity_id != runtime_id:
                self._acquire(runtime_id, tracked.username)
            return tracked.position

        if self.follow_target_runtime_entity_id is not None:
            self.follow_target_runtime_entity_id = None
            self._logger.info(
                {"event": "follow_target_missing", "followPlayerName": self._follow_name},
                "Follow target is not visible in tracked entities",
            )
        return None

    def _acquire(self, runtime_id: str, username: str) -> None:
        self.follow_target_runtime_entity_id = runtime_id
        self._logger.info(
            {"event": "follow_target_acquired", "followPlayerName": username, "runtimeEntityId": runtime_id},
            "Acquired follow target",
        )


class PlayerListState:
    def __init__(self, on_update: Optional[Callable[[List[str]], None]] = None) -> None:
        self._on_update = on_update
        self._names: Set[str] = set()
        self._names_by_uuid: Dict[str, str] = {}

    def snapshot(self) -> List[str]:
        return sorted(self._names)

    def handle_player_list(self, packet: Mapping[str, Any]) -> None:
        payload = packet.get("records") if isinstance(packet, Mapping) else None
        if not isinstance(payload, Mapping):
            return
        kind = payload.get("type")
        records = payload.get("records")
        if kind not in ("add", "remove") or not isinstance(records, list):
            return

        for record in records:
            uuid = str(record.get("uuid") or "") if isinstance(record, Mapping) else ""
            if kind == "add":
                username = read_optional_string_field(record, "username")
                if not username:
                    continue
                self._add(username)
                if uuid:
                    self._names_by_uuid[uuid] = username
            else:
                username = self._names_by_uuid.pop(uuid, None) if uuid else read_optional_string_field(record, "username")
                if username:
                    self._remove(username)

    def handle_add_player(self, packet: Mapping[str, Any]) -> None:
        username = read_optional_string_field(packet, "username")
        if username:
            self._add(username)

    def _add(self, name: str) -> None:
        if name in self._names:
            return
        self._names.add(name)
        self._emit()

    def _remove(self, name: str) -> None:
        if name not in self._names:
            return
        self._names.discard(name)
        self._emit()

    def _emit(self) -> None:
        if self._on_update is not None:
            self._on_update(self.snapshot())
