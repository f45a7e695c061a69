# src/cli/join_target.py
"""
Resolve where to connect before the join loop starts.

RakNet profiles either name a host or are found on the LAN by server name
through unconnected-ping discovery. NetherNet profiles need the host's
server id, which only LAN discovery can provide: either ask a known host
directly, or broadcast and pick the one server whose name matches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from bot_core.errors import SessionConfigError, SessionError
from bot_core.lan_discovery import DiscoveredLanServer, RaknetDiscoveryOptions, discover_lan_servers
from bot_core.server_selection import select_server_by_name
from env.schema import SessionProfile
from monitoring.logger import FieldLogger
from nethernet.lan_discovery import (
    DEFAULT_DISCOVERY_TIMEOUT_MS,
    DiscoveredNethernetServer,
    LanDiscoveryOptions,
    discover_nethernet_lan_servers,
)

log = logging.getLogger(__name__)

Discover = Callable[[LanDiscoveryOptions], List[DiscoveredNethernetServer]]
DiscoverRaknet = Callable[[RaknetDiscoveryOptions], List[DiscoveredLanServer]]


@dataclass(frozen=True)
class ResolvedTarget:
    host: str
    port: int
    server_name: Optional[str] = None
    nethernet_server_id: Optional[int] = None


def resolve_raknet_target(
    session: SessionProfile,
    logger: FieldLogger,
    *,
    timeout_ms: int = DEFAULT_DISCOVERY_TIMEOUT_MS,
    discover: DiscoverRaknet = discover_lan_servers,
) -> ResolvedTarget:
    if session.host:
        return ResolvedTarget(host=session.host, port=session.port, server_name=session.server_name)
    if not session.server_name:
        raise SessionConfigError(code="host_missing", details={"transport": session.transport})

    name = session.server_name
    logger.info(
        {"event": "discover", "timeoutMs": timeout_ms, "transport": "raknet", "serverName": name},
        "Searching for LAN server by name",
    )
    servers = discover(RaknetDiscoveryOptions(timeout_ms=timeout_ms))
    selection = select_server_by_name(servers, name)
    if selection.selected is None:
        raise SessionError(
            code="server_name_ambiguous" if selection.matches else "server_name_unmatched",
            details={"serverName": name, "matches": [server.advertisement.motd for server in selection.matches]},
        )
    match = selection.selected
    log.debug("Resolved RakNet target %s:%d (%s)", match.host, match.port, match.advertisement.motd)
    return ResolvedTarget(host=match.host, port=match.port, server_name=match.advertisement.motd)


def resolve_nethernet_target(
    session: SessionProfile,
    logger: FieldLogger,
    *,
    timeout_ms: int = DEFAULT_DISCOVERY_TIMEOUT_MS,
    discover: Discover = discover_nethernet_lan_servers,
) -> ResolvedTarget:
    if session.host:
        logger.info(
            {"event": "discover", "timeoutMs": timeout_ms, "transport": "nethernet", "host": session.host, "port": session.port},
            "Requesting NetherNet server id",
        )
        servers = discover(
            LanDiscoveryOptions(timeout_ms=timeout_ms, port=session.port, broadcast_addresses=[session.host])
        )
        if len(servers) != 1:
            raise SessionError(
                code="nethernet_host_ambiguous" if servers else "nethernet_host_silent",
                details={"host": session.host, "responses": len(servers)},
            )
        match = servers[0]
    else:
        name = session.server_name or ""
        logger.info(
            {"event": "discover", "timeoutMs": timeout_ms, "transport": "nethernet", "serverName": name},
            "Searching for LAN server by name",
        )
        servers = discover(LanDiscoveryOptions(timeout_ms=timeout_ms, port=session.port))
        selection = select_server_by_name(servers, name)
        if selection.selected is None:
            raise SessionError(
                code="server_name_ambiguous" if selection.matches else "server_name_unmatched",
                details={
                    "serverName": name,
                    "matches": [server.server_data.server_name for server in selection.matches],
                },
            )
        match = selection.selected

    log.debug("Resolved NetherNet target %s:%d id=%d", match.host, match.port, match.sender_id)
    return ResolvedTarget(
        host=match.host,
        port=match.port,
        server_name=match.server_data.server_name,
        nethernet_server_id=match.sender_id,
    )
