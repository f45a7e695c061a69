# src/bot_core/packet_fields.py
"""
Tolerant readers for decoded packet mappings.

Decoded packets come from an external codec, so every reader accepts
anything and returns None for missing or ill-typed fields instead of
raising.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, Mapping, Optional

Vector3 = Dict[str, float]

_INTEGER_STRING = re.compile(r"^-?\d+$")
# Largest integer a double represents exactly; larger ids are unsafe as numbers.
MAX_SAFE_INTEGER = 2 ** 53 - 1


def _field(packet: Any, name: str) -> Any:
    if not isinstance(packet, Mapping):
        return None
    return packet.get(name)


def is_vector3(value: Any) -> bool:
    return isinstance(value, Mapping) and all(axis in value for axis in ("x", "y", "z"))


def to_vector3(value: Any) -> Optional[Vector3]:
    if not is_vector3(value):
        return None
    return {"x": float(value["x"]), "y": float(value["y"]), "z": float(value["z"])}


def read_optional_string_field(packet: Any, name: str) -> Optional[str]:
    value = _field(packet, name)
    return value if isinstance(value, str) else None


def read_optional_number_field(packet: Any, name: str) -> Optional[float]:
    value = _field(packet, name)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if abs(value) <= MAX_SAFE_INTEGER else None
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def read_integer_like_id(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str) and _INTEGER_STRING.match(value):
        return value
    return None


def read_packet_id(packet: Any, names: Iterable[str]) -> Optional[str]:
    for name in names:
        identifier = read_integer_like_id(_field(packet, name))
        if identifier:
            return identifier
    return None


def read_packet_position(packet: Any, name: str = "position") -> Optional[Vector3]:
    return to_vector3(_field(packet, name))
