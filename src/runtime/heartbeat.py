# path: src/runtime/heartbeat.py

"""Runtime heartbeat record projection."""

from __future__ import annotations

import math
from typing import Any, Dict, Optional, Sequence, Union

from bot_core.packet_fields import Vector3

from .movement_goal import MOVEMENT_GOAL_FOLLOW_COORDINATES

DEFAULT_HEARTBEAT_INTERVAL_MS = 10000

Coordinates = Union[Vector3, Sequence[float]]


def _xz(point: Coordinates) -> tuple:
    if isinstance(point, dict):
        return point["x"], point["z"]
    return point[0], point[2]


def horizontal_distance(position: Optional[Vector3], target: Optional[Coordinates]) -> Optional[float]:
    """Distance on the x/z plane; the vertical axis is ignored."""
    if position is None or target is None:
        return None
    px, pz = _xz(position)
    tx, tz = _xz(target)
    return math.hypot(tx - px, tz - pz)


def to_runtime_heartbeat_log_fields(
    *,
    chunk_packets: int,
    unique_chunks: int,
    dimension: Any,
    position: Optional[Vector3],
    simulated_position: Optional[Vector3],
    movement_goal: str,
    follow_coordinates: Optional[Coordinates] = None,
) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "event": "runtime_heartbeat",
        "chunkPackets": chunk_packets,
        "uniqueChunks": unique_chunks,
        "dimension": dimension,
        "position": position,
        "simulatedPosition": simulated_position,
    }
    if movement_goal == MOVEMENT_GOAL_FOLLOW_COORDINATES:
        distance = horizontal_distance(simulated_position, follow_coordinates)
        if distance is not None:
            fields["followCoordinatesDistanceBlocks"] = distance
    return fields
