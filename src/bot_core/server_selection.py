# src/bot_core/server_selection.py
"""Pick one discovered server by a user-supplied name fragment."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")

# Section-sign formatting codes: colours 0-9/a-f plus k-o and r.
_FORMATTING_CODE = re.compile("§[0-9A-FK-OR]", re.IGNORECASE)


@dataclass
class ServerSelectionResult(Generic[T]):
    selected: Optional[T]
    matches: List[T] = field(default_factory=list)


def normalize_server_name(name: str) -> str:
    return _FORMATTING_CODE.sub("", name).strip().lower()


def display_name(server: Any) -> str:
    """
    Name shown for a discovered server.

    RakNet LAN servers carry an advertisement motd; NetherNet servers carry
    a server_data.server_name.
    """
    advertisement = getattr(server, "advertisement", None)
    if advertisement is not None:
        return advertisement.motd
    server_data = getattr(server, "server_data", None)
    if server_data is not None:
        return server_data.server_name
    raise TypeError(f"Cannot determine a display name for {server!r}")


def select_server_by_name(
    servers: Sequence[T],
    name: str,
    *,
    name_of: Callable[[T], str] = display_name,
) -> ServerSelectionResult[T]:
    """Select only when exactly one normalized name contains the normalized target."""
    target = normalize_server_name(name)
    matches = [server for server in servers if target in normalize_server_name(name_of(server))]
    return ServerSelectionResult(
        selected=matches[0] if len(matches) == 1 else None,
        matches=matches,
    )
