# src/cli/main.py
"""
bedcraft command line.

    bedcraft join [--profile NAME] [--list-players] [--force-refresh]
    bedcraft scan [--transport raknet|nethernet] [--timeout-ms MS] [--port PORT] [--name FILTER]

`join` loads the env.yaml profile, signs in through the encrypted credential
cache, resolves the target (LAN discovery for NetherNet) and runs one session
under the reconnect policy. `scan` lists LAN servers: NetherNet hosts from
encrypted discovery, or RakNet hosts from unconnected-ping discovery followed
by a status ping each.
"""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
import time
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.table import Table

from auth.auth_flow import AuthFlowOptions, create_auth_flow
from auth.device_code import DeviceCodeChallenge
from bot_core.errors import SessionConfigError, SessionError
from bot_core.hardware_profile import resolve_default_chunk_radius_soft_cap
from bot_core.lan_discovery import DEFAULT_BEDROCK_PORT, DiscoveredLanServer, RaknetDiscoveryOptions, discover_lan_servers
from bot_core.net.session_factory import NethernetTransport, RaknetTransport, create_session_client
from bot_core.net.session_options import TRANSPORT_NETHERNET, TRANSPORT_RAKNET, JoinOptions
from bot_core.server_selection import normalize_server_name
from bot_core.status_ping import DEFAULT_PING_THROTTLE_MS, ServerStatus, ping_server_status
from env.loader import load_environment
from env.paths import resolve_cache_paths
from env.schema import EnvProfile
from monitoring.bus import default_bus
from monitoring.events import EventType
from monitoring.logger import EventBusFieldLogger, FieldLogger, JsonFileLogger, log_event
from monitoring.logging_config import configure_logging, resolve_log_level
from nethernet.lan_discovery import (
    DEFAULT_DISCOVERY_TIMEOUT_MS,
    DEFAULT_NETHERNET_PORT,
    DiscoveredNethernetServer,
    LanDiscoveryOptions,
    discover_nethernet_lan_servers,
)
from runtime.join_runner import run_with_reconnect
from runtime.reconnect_policy import ReconnectPolicy
from runtime.scheduler import ThreadingScheduler
from runtime.session_runtime import SessionRuntime, resolve_chunk_radius

from .join_target import ResolvedTarget, resolve_nethernet_target, resolve_raknet_target

log = logging.getLogger(__name__)

# Client pump period; 20 Hz matches the game tick.
PUMP_INTERVAL_S = 0.05

console = Console()


def resolve_factory(path: str) -> Callable[..., Any]:
    """Import "package.module:callable" and return the callable."""
    module_name, _, attr = path.partition(":")
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise SessionConfigError(code="factory_import_failed", details={"factory": path, "error": str(exc)}) from exc
    if not callable(factory):
        raise SessionConfigError(code="factory_not_callable", details={"factory": path})
    return factory


def print_device_code(challenge: DeviceCodeChallenge) -> None:
    console.print(
        f"[bold]Sign in:[/bold] open [cyan]{challenge.verification_uri}[/cyan] "
        f"and enter code [bold yellow]{challenge.user_code}[/bold yellow]"
    )


def print_players(players: List[str]) -> None:
    console.print(f"Players online ({len(players)}): " + (", ".join(players) if players else "-"))


def publish_connection_state(state: str, reason: str) -> None:
    log_event(
        bus=default_bus,
        module="runtime.session",
        event_type=EventType.CONNECTION_STATE,
        message=f"Connection {state}",
        payload={"state": state, "reason": reason},
    )


def publish_lan_server_discovered(server: DiscoveredLanServer) -> None:
    log_event(
        bus=default_bus,
        module="bot_core.lan_discovery",
        event_type=EventType.SERVER_DISCOVERED,
        message=f"Discovered {server.advertisement.motd}",
        payload={
            "host": server.host,
            "port": server.port,
            "serverId": server.advertisement.server_id,
            "serverName": server.advertisement.motd,
        },
    )


def publish_server_discovered(server: DiscoveredNethernetServer) -> None:
    log_event(
        bus=default_bus,
        module="nethernet",
        event_type=EventType.SERVER_DISCOVERED,
        message=f"Discovered {server.server_data.server_name}",
        payload={
            "host": server.host,
            "port": server.port,
            "serverId": str(server.sender_id),
            "serverName": server.server_data.server_name,
            "latencyMs": server.latency_ms,
        },
    )


# ---------------------------------------------------------------------------
# join
# ---------------------------------------------------------------------------


def build_join_options(
    env: EnvProfile,
    target: ResolvedTarget,
    authflow: Any,
    logger: FieldLogger,
    *,
    list_players_only: bool = False,
) -> JoinOptions:
    session = env.session
    codec = resolve_factory(session.packet_codec)() if session.packet_codec else None
    return JoinOptions(
        host=target.host,
        port=target.port,
        account_name=session.account_name,
        authflow=authflow,
        transport=session.transport,
        minecraft_version=session.minecraft_version,
        view_distance_chunks=session.view_distance_chunks,
        nethernet_server_id=target.nethernet_server_id,
        server_name=target.server_name,
        movement_goal=session.movement_goal,
        follow_player_name=session.follow_player_name,
        follow_coordinates=session.follow_coordinates,
        list_players_only=list_players_only or session.list_players_only,
        player_list_wait_ms=session.player_list_wait_ms,
        join_timeout_ms=session.join_timeout_ms,
        logger=logger,
        packet_codec=codec,
    )


def run_session(
    options: JoinOptions,
    transports: Any,
    scheduler: ThreadingScheduler,
    logger: FieldLogger,
    *,
    chunk_radius: int,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Connect once and pump the client until the session ends; raises on failure."""
    client = create_session_client(options, transports)
    runtime = SessionRuntime(
        client,
        options,
        logger,
        scheduler,
        chunk_radius=chunk_radius,
        on_player_list_update=print_players if options.list_players_only else None,
        on_connection_state=publish_connection_state,
    )
    with scheduler.lock:
        runtime.attach()
    try:
        while not runtime.done:
            with scheduler.lock:
                client.tick()
            sleep(PUMP_INTERVAL_S)
    except KeyboardInterrupt:
        with scheduler.lock:
            runtime.request_shutdown("SIGINT")
    finally:
        with scheduler.lock:
            runtime.cleanup()
            client.disconnect("session ended")
    runtime.result()


def cmd_join(args: argparse.Namespace) -> int:
    env = load_environment(Path(args.config_dir) if args.config_dir else None, args.profile)
    configure_logging(resolve_log_level(args.log_level or env.log_level))
    logger = EventBusFieldLogger(default_bus, module="session", correlation_id=env.name)
    json_logger = JsonFileLogger(Path(args.json_log), default_bus) if args.json_log else None

    try:
        paths = resolve_cache_paths(
            env.application_id,
            data_root=env.paths.data_root,
            config_root=env.paths.config_root,
        )
        auth = create_auth_flow(
            AuthFlowOptions(
                account_name=env.session.account_name,
                cache_directory=paths.cache_directory,
                key_file_path=paths.key_file_path,
                device_code_callback=print_device_code,
                environment_key=env.cache_key_override,
                force_refresh=args.force_refresh,
            )
        )
        logger.info({"event": "auth_ready", "keySource": auth.key_source}, "Credential cache ready")

        if env.session.transport == TRANSPORT_NETHERNET:
            target = resolve_nethernet_target(env.session, logger, timeout_ms=args.discovery_timeout_ms)
        else:
            target = resolve_raknet_target(env.session, logger, timeout_ms=args.discovery_timeout_ms)

        options = build_join_options(env, target, auth.authflow, logger, list_players_only=args.list_players)
        peer_factory = resolve_factory(env.session.peer_connection) if env.session.peer_connection else None
        transports = {
            TRANSPORT_RAKNET: RaknetTransport(),
            TRANSPORT_NETHERNET: NethernetTransport(peer_factory=peer_factory),
        }
        scheduler = ThreadingScheduler()
        chunk_radius = resolve_chunk_radius(options, resolve_default_chunk_radius_soft_cap())
        policy = ReconnectPolicy(
            max_retries=env.reconnect.max_retries,
            base_delay_ms=env.reconnect.base_delay_ms,
            max_delay_ms=env.reconnect.max_delay_ms,
            jitter_ratio=env.reconnect.jitter_ratio,
        )

        def join_once(attempt: int) -> None:
            logger.info({"event": "join_attempt", "attempt": attempt + 1}, "Starting join attempt")
            run_session(options, transports, scheduler, logger, chunk_radius=chunk_radius)

        run_with_reconnect(join_once, policy, logger=logger)
    except SessionError as exc:
        console.print(f"[bold red]Join failed:[/bold red] {exc}")
        return 1
    finally:
        if json_logger is not None:
            json_logger.close()
    return 0


# ---------------------------------------------------------------------------
# scan
# ---------------------------------------------------------------------------


def render_servers(servers: Sequence[DiscoveredNethernetServer]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name")
    table.add_column("Level")
    table.add_column("Address")
    table.add_column("Server id", justify="right")
    table.add_column("Players", justify="right")
    table.add_column("Latency", justify="right")
    for server in servers:
        data = server.server_data
        table.add_row(
            data.server_name,
            data.level_name,
            f"{server.host}:{server.port}",
            str(server.sender_id),
            f"{data.players_online}/{data.players_max}",
            f"{server.latency_ms} ms" if server.latency_ms is not None else "-",
        )
    return table


def render_raknet_servers(rows: Sequence[Tuple[DiscoveredLanServer, Optional[ServerStatus]]]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name")
    table.add_column("Level")
    table.add_column("Address")
    table.add_column("Version")
    table.add_column("Players", justify="right")
    table.add_column("Latency", justify="right")
    for server, status in rows:
        ad = status.advertisement if status is not None else server.advertisement
        table.add_row(
            ad.motd,
            ad.level_name,
            f"{server.host}:{server.port}",
            f"{ad.version} ({ad.protocol})",
            f"{ad.players_online}/{ad.players_max}",
            f"{status.latency_ms} ms" if status is not None else "-",
        )
    return table


def _name_matches(name_filter: Optional[str], name: str) -> bool:
    return not name_filter or normalize_server_name(name_filter) in normalize_server_name(name)


def scan_nethernet(args: argparse.Namespace) -> int:
    servers = discover_nethernet_lan_servers(
        LanDiscoveryOptions(
            timeout_ms=args.timeout_ms,
            port=args.port or DEFAULT_NETHERNET_PORT,
            on_server=publish_server_discovered,
        )
    )
    servers = [s for s in servers if _name_matches(args.name, s.server_data.server_name)]
    if not servers:
        console.print("No NetherNet servers found.")
        return 0
    console.print(render_servers(servers))
    return 0


def scan_raknet(args: argparse.Namespace) -> int:
    servers = discover_lan_servers(
        RaknetDiscoveryOptions(
            timeout_ms=args.timeout_ms,
            port=args.port or DEFAULT_BEDROCK_PORT,
            on_server=publish_lan_server_discovered,
        )
    )
    servers = [s for s in servers if _name_matches(args.name, s.advertisement.motd)]
    if not servers:
        console.print("No RakNet servers found.")
        return 0

    rows: List[Tuple[DiscoveredLanServer, Optional[ServerStatus]]] = []
    for index, server in enumerate(servers):
        if index:
            time.sleep(DEFAULT_PING_THROTTLE_MS / 1000.0)
        try:
            status: Optional[ServerStatus] = ping_server_status(server.host, server.port)
        except (SessionError, OSError) as exc:
            log.warning("Status ping to %s:%d failed: %s", server.host, server.port, exc)
            status = None
        rows.append((server, status))
    console.print(render_raknet_servers(rows))
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    configure_logging(resolve_log_level(args.log_level))
    if args.transport == TRANSPORT_RAKNET:
        return scan_raknet(args)
    return scan_nethernet(args)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bedcraft", description="Bedrock LAN bot client.")
    parser.add_argument("--log-level", default=None, help="debug, info, warning or error")
    sub = parser.add_subparsers(dest="command", required=True)

    join = sub.add_parser("join", help="Join the server named by an env.yaml profile")
    join.add_argument("--profile", default=None, help="Profile name (defaults to env.yaml 'profile')")
    join.add_argument("--config-dir", default=None, help="Directory holding env.yaml")
    join.add_argument("--list-players", action="store_true", help="Print the player list and disconnect")
    join.add_argument("--force-refresh", action="store_true", help="Ignore cached tokens and sign in again")
    join.add_argument("--json-log", default=None, help="Also write session records to this JSONL file")
    join.add_argument("--discovery-timeout-ms", type=int, default=DEFAULT_DISCOVERY_TIMEOUT_MS)
    join.set_defaults(func=cmd_join)

    scan = sub.add_parser("scan", help="List Bedrock servers on the LAN")
    scan.add_argument("--transport", choices=(TRANSPORT_NETHERNET, TRANSPORT_RAKNET), default=TRANSPORT_NETHERNET)
    scan.add_argument("--timeout-ms", type=int, default=DEFAULT_DISCOVERY_TIMEOUT_MS)
    scan.add_argument("--port", type=int, default=None, help="Defaults to 7551 (NetherNet) or 19132 (RakNet)")
    scan.add_argument("--name", default=None, help="Only show servers whose name contains this")
    scan.set_defaults(func=cmd_scan)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
