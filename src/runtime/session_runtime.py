# path: src/runtime/session_runtime.py

"""
Per-session event wiring.

SessionRuntime subscribes to a live SessionClient and drives everything that
happens between login and disconnect:

- join timeout (cleared by the first chunk, or by login in list-players mode)
- post-join packets (client_cache_status, delayed request_chunk_radius,
  resource pack responses)
- start_game / chunk publisher logging
- player tracking and the player-list settle probe
- the movement loop after spawn and the runtime heartbeat after the first chunk

The session ends exactly once, either finished (done, no error) or failed
(done, error set). Either way cleanup() cancels every timer it armed.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, List, Mapping, Optional, Set, Tuple

from bot_core.errors import SessionError
from bot_core.hardware_profile import resolve_default_chunk_radius_soft_cap
from bot_core.net.client import SessionClient
from bot_core.net.session_options import JoinOptions
from bot_core.packet_fields import (
    Vector3,
    read_optional_number_field,
    read_optional_string_field,
    read_packet_id,
    read_packet_position,
    to_vector3,
)
from monitoring.logger import FieldLogger

from .heartbeat import DEFAULT_HEARTBEAT_INTERVAL_MS, to_runtime_heartbeat_log_fields
from .movement_goal import MovementGoalRequest, MovementHandle, start_movement_for_goal
from .player_list_probe import DEFAULT_PLAYER_LIST_SETTLE_MS, PlayerListProbe
from .player_tracking import PlayerListState, PlayerTracker
from .scheduler import Scheduler, TimerHandle
from .world_logging import ChunkPublisherUpdateLogger, profile_name, to_start_game_log_fields

log = logging.getLogger(__name__)

DEFAULT_REQUEST_CHUNK_RADIUS_DELAY_MS = 500
DEFAULT_CHUNK_PROGRESS_LOG_INTERVAL = 64
MAX_CHUNK_RADIUS_REQUEST_CHUNKS = 255
CORRECTION_LOG_INTERVAL_MS = 2000

_RECOVERABLE_READ_ERROR = re.compile(r"^Read error for ")

MovementStarter = Callable[..., MovementHandle]
PlayerListCallback = Callable[[List[str]], None]
# (state, reason): "connecting" | "online" | "offline"
ConnectionStateCallback = Callable[[str, str], None]


def is_recoverable_read_error(error: BaseException) -> bool:
    return bool(_RECOVERABLE_READ_ERROR.match(str(error)))


def resolve_chunk_radius(options: JoinOptions, soft_cap: Optional[int] = None) -> int:
    """Requested chunk radius: explicit view distance, else the hardware soft cap."""
    if options.view_distance_chunks is not None:
        radius = options.view_distance_chunks
    else:
        radius = soft_cap if soft_cap is not None else resolve_default_chunk_radius_soft_cap()
    return max(1, min(MAX_CHUNK_RADIUS_REQUEST_CHUNKS, int(radius)))


class SessionRuntime:
    def __init__(
        self,
        client: SessionClient,
        options: JoinOptions,
        logger: FieldLogger,
        scheduler: Scheduler,
        *,
        chunk_radius: Optional[int] = None,
        on_player_list_update: Optional[PlayerListCallback] = None,
        on_connection_state: Optional[ConnectionStateCallback] = None,
        heartbeat_interval_ms: float = DEFAULT_HEARTBEAT_INTERVAL_MS,
        request_chunk_radius_delay_ms: float = DEFAULT_REQUEST_CHUNK_RADIUS_DELAY_MS,
        start_movement: MovementStarter = start_movement_for_goal,
    ) -> None:
        self.client = client
        self.options = options
        self.logger = logger
        self.scheduler = scheduler
        self.chunk_radius = chunk_radius if chunk_radius is not None else resolve_chunk_radius(options)
        self.heartbeat_interval_ms = heartbeat_interval_ms
        self.request_chunk_radius_delay_ms = request_chunk_radius_delay_ms
        self._start_movement = start_movement
        self._on_player_list_update = on_player_list_update
        self._on_connection_state = on_connection_state

        self.done = False
        self.error: Optional[BaseException] = None
        self.authenticated_player_name: Optional[str] = None
        self.position: Optional[Vector3] = None
        self.server_position: Optional[Vector3] = None
        self.dimension: Any = None
        self.input_tick = 0
        self.chunk_packets = 0
        self.loaded_chunks: Set[Tuple[int, int]] = set()

        self.tracker = PlayerTracker(logger, options.follow_player_name)
        self.player_list = PlayerListState(self._handle_player_list_update)
        self.probe = PlayerListProbe(
            scheduler,
            self._on_probe_elapsed,
            enabled=options.list_players_only,
            max_wait_ms=options.player_list_wait_ms,
            settle_wait_ms=DEFAULT_PLAYER_LIST_SETTLE_MS,
        )
        self._log_chunk_publisher_update = ChunkPublisherUpdateLogger(logger)

        self._first_chunk = False
        self._shutdown_requested = False
        self._cache_status_sent = False
        self._chunk_radius_scheduled = False
        self._resource_pack_response_sent = {"resource_packs_info": False, "resource_pack_stack": False}
        self._join_timer: Optional[TimerHandle] = None
        self._chunk_radius_timer: Optional[TimerHandle] = None
        self._heartbeat_timer: Optional[TimerHandle] = None
        self._movement: Optional[MovementHandle] = None
        self._started_at_ms = 0.0
        self._last_packet_name: Optional[str] = None
        self._correction_packets = 0
        self._last_correction_log_ms: Optional[float] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Register client handlers and arm the join timeout."""
        c = self.client
        c.on("join", self._on_join)
        c.on("play_status", self._on_play_status)
        c.on("resource_packs_info", self._on_resource_packs_info)
        c.on("resource_pack_stack", self._on_resource_pack_stack)
        c.on("start_game", self._on_start_game)
        c.on("network_chunk_publisher_update", self._on_chunk_publisher_update)
        c.on("spawn", self._on_spawn)
        c.on("add_player", self._on_add_player)
        c.on("player_list", self._on_player_list)
        c.on("remove_entity", self._on_remove_entity)
        c.on("move_player", self._on_move_player)
        c.on("correct_player_move_prediction", self._on_move_correction)
        c.on("level_chunk", self._on_level_chunk)
        c.on("close", self._on_close)
        c.on("error", self._on_error)

        self._started_at_ms = self.scheduler.now_ms()
        self._join_timer = self.scheduler.call_later(self.options.join_timeout_ms, self._on_join_timeout)
        self.logger.info(
            {
                "event": "connect",
                "host": self.options.host,
                "port": self.options.port,
                "transport": self.options.transport,
                "serverName": self.options.server_name,
                "serverId": str(self.options.nethernet_server_id) if self.options.nethernet_server_id is not None else None,
                "chunkRadiusSoftCap": self.chunk_radius,
            },
            "Connecting to server",
        )
        self._notify_state("connecting", "connect_start")

    def request_shutdown(self, reason: str = "shutdown requested") -> None:
        """Disconnect on the caller's behalf; ends the session without an error."""
        if self.done:
            return
        self._shutdown_requested = True
        self.logger.info({"event": "shutdown", "reason": reason}, "Disconnecting from server")
        self.client.disconnect(reason)
        self.finish()

    def finish(self) -> None:
        if self.done:
            return
        self.done = True
        self._notify_state("offline", "session_finished")
        self.cleanup()

    def fail(self, error: BaseException) -> None:
        if self.done:
            return
        self.done = True
        self.error = error
        self._notify_state("offline", "session_failed")
        self.cleanup()

    def result(self) -> None:
        """Raise the session's failure, if any."""
        if self.error is not None:
            raise self.error

    def cleanup(self) -> None:
        """Cancel every timer and stop movement; safe to call repeatedly."""
        self._clear_join_timeout()
        self.probe.clear()
        for attr in ("_chunk_radius_timer", "_heartbeat_timer"):
            timer = getattr(self, attr)
            if timer is not None:
                timer.cancel()
                setattr(self, attr, None)
        if self._movement is not None:
            self._movement.cleanup()
            self._movement = None

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _clear_join_timeout(self) -> None:
        if self._join_timer is None:
            return
        self._join_timer.cancel()
        self._join_timer = None

    def _on_join_timeout(self) -> None:
        self._join_timer = None
        elapsed = max(0, int(self.scheduler.now_ms() - self._started_at_ms))
        self.fail(
            SessionError(
                code="join_timeout",
                details={"elapsedMs": elapsed, "lastPacket": self._last_packet_name or "none"},
            )
        )
        self.client.disconnect("join timeout")

    def _on_probe_elapsed(self) -> None:
        self.logger.info(
            {"event": "player_list_complete", "players": self.player_list.snapshot()},
            "Player list collected",
        )
        self.finish()
        self.client.disconnect("player list collected")

    def _send_chunk_radius_request(self) -> None:
        self._chunk_radius_timer = None
        self.client.queue("request_chunk_radius", {"chunk_radius": self.chunk_radius, "max_radius": self.chunk_radius})

    def _schedule_heartbeat(self) -> None:
        if self.done:
            return
        self._heartbeat_timer = self.scheduler.call_later(self.heartbeat_interval_ms, self._on_heartbeat)

    def _on_heartbeat(self) -> None:
        self._heartbeat_timer = None
        self.logger.info(
            to_runtime_heartbeat_log_fields(
                chunk_packets=self.chunk_packets,
                unique_chunks=len(self.loaded_chunks),
                dimension=self.dimension,
                position=self.server_position,
                simulated_position=self.position,
                movement_goal=self.options.movement_goal,
                follow_coordinates=self.options.follow_coordinates,
            ),
            "Bot runtime heartbeat",
        )
        self._schedule_heartbeat()

    # ------------------------------------------------------------------
    # Post-join packets
    # ------------------------------------------------------------------

    def _ensure_client_cache_status(self) -> None:
        if self._cache_status_sent:
            return
        self._cache_status_sent = True
        self.client.queue("client_cache_status", {"enabled": False})

    def _schedule_chunk_radius_request(self) -> None:
        if self._chunk_radius_scheduled:
            return
        self._chunk_radius_scheduled = True
        self._chunk_radius_timer = self.scheduler.call_later(
            self.request_chunk_radius_delay_ms, self._send_chunk_radius_request
        )

    def _send_resource_pack_response(self, trigger: str) -> None:
        if self._resource_pack_response_sent[trigger]:
            return
        self._resource_pack_response_sent[trigger] = True
        self.logger.info({"event": trigger}, "Received resource pack info")
        self.client.write("resource_pack_client_response", {"response_status": "completed", "resourcepackids": []})

    # ------------------------------------------------------------------
    # Client events
    # ------------------------------------------------------------------

    def _on_join(self) -> None:
        self._last_packet_name = "join"
        self.authenticated_player_name = profile_name(self.client)
        self.logger.info({"event": "join", "playerName": self.authenticated_player_name}, "Authenticated with server")
        self._notify_state("online", "join_authenticated")
        if self.options.list_players_only:
            self._clear_join_timeout()
            self.probe.start()
        self._ensure_client_cache_status()
        self._schedule_chunk_radius_request()

    def _on_play_status(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "play_status"
        self.logger.info({"event": "play_status", "status": read_optional_string_field(packet, "status")}, "Received play status")

    def _on_resource_packs_info(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "resource_packs_info"
        self._send_resource_pack_response("resource_packs_info")

    def _on_resource_pack_stack(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "resource_pack_stack"
        self._send_resource_pack_response("resource_pack_stack")
        self._ensure_client_cache_status()
        self._schedule_chunk_radius_request()

    def _on_start_game(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "start_game"
        local_id = read_packet_id(packet, ("runtime_entity_id", "runtime_id"))
        self.tracker.local_runtime_entity_id = local_id
        position = to_vector3(packet.get("player_position"))
        tick = read_optional_number_field(packet, "current_tick")
        if tick is not None:
            self.input_tick = int(tick)
        self.dimension = packet.get("dimension")
        self.position = position
        self.server_position = position
        self.logger.info(
            to_start_game_log_fields(self.options, self.client, packet, local_id, position),
            "Received start game",
        )

    def _on_chunk_publisher_update(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "network_chunk_publisher_update"
        self._log_chunk_publisher_update(packet)

    def _on_spawn(self) -> None:
        self._last_packet_name = "spawn"
        self.logger.info(
            {
                "event": "spawn",
                "playerName": profile_name(self.client),
                "dimension": self.dimension,
                "position": self.position,
            },
            "Spawn confirmed",
        )
        if self.options.list_players_only or self._movement is not None or self.done:
            return
        request = MovementGoalRequest(
            goal=self.options.movement_goal,
            follow_player_name=self.options.follow_player_name,
            follow_coordinates=self.options.follow_coordinates,
        )
        try:
            self._movement = self._start_movement(
                request,
                self.client,
                self.logger,
                self.scheduler,
                get_position=lambda: self.position,
                set_position=self._set_position,
                get_tick=self._next_tick,
                get_follow_target_position=self.tracker.resolve_follow_target_position,
            )
        except SessionError as exc:
            self.fail(exc)
            self.client.disconnect("movement setup failed")

    def _on_add_player(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "add_player"
        self.tracker.handle_add_player(packet)
        self.player_list.handle_add_player(packet)

    def _on_player_list(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "player_list"
        self.player_list.handle_player_list(packet)

    def _on_remove_entity(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "remove_entity"
        self.tracker.handle_remove_entity(packet)

    def _on_move_player(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "move_player"
        self.tracker.handle_move_player(packet, self._set_server_position)

    def _on_move_correction(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "correct_player_move_prediction"
        corrected = read_packet_position(packet, "position")
        if corrected is not None:
            self._set_server_position(corrected)
        self._correction_packets += 1
        now = self.scheduler.now_ms()
        if self._last_correction_log_ms is not None and now - self._last_correction_log_ms < CORRECTION_LOG_INTERVAL_MS:
            return
        self._last_correction_log_ms = now
        self.logger.info(
            {"event": "correct_player_move_prediction", "correctionPackets": self._correction_packets, "position": corrected},
            "Received local movement correction",
        )

    def _on_level_chunk(self, packet: Mapping[str, Any]) -> None:
        self._last_packet_name = "level_chunk"
        x = read_optional_number_field(packet, "x")
        z = read_optional_number_field(packet, "z")
        if x is None or z is None:
            return
        self.chunk_packets += 1
        self.loaded_chunks.add((int(x), int(z)))
        if not self._first_chunk:
            self._first_chunk = True
            self._clear_join_timeout()
            self.logger.info(
                {
                    "event": "chunk",
                    "chunkX": int(x),
                    "chunkZ": int(z),
                    "chunkPackets": self.chunk_packets,
                    "uniqueChunks": len(self.loaded_chunks),
                },
                "Received first chunk",
            )
            if not self.options.list_players_only:
                self._schedule_heartbeat()
            return
        if self.options.list_players_only or self.chunk_packets % DEFAULT_CHUNK_PROGRESS_LOG_INTERVAL:
            return
        self.logger.info(
            {"event": "chunk_progress", "chunkPackets": self.chunk_packets, "uniqueChunks": len(self.loaded_chunks)},
            "Streaming world chunks",
        )

    def _on_close(self, reason: Any = None) -> None:
        if self.done:
            return
        if self._shutdown_requested:
            self.finish()
            return
        self.fail(SessionError(code="server_closed", details={"reason": str(reason) if reason else "unknown"}))

    def _on_error(self, error: BaseException) -> None:
        if self.done:
            return
        if not self._first_chunk and is_recoverable_read_error(error):
            self.logger.info({"event": "join_error_ignored", "error": str(error)}, "Ignoring recoverable packet read error")
            return
        log.debug("Session error: %s", error)
        self.fail(error)
        self.client.disconnect("session error")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _notify_state(self, state: str, reason: str) -> None:
        if self._on_connection_state is not None:
            self._on_connection_state(state, reason)

    def _set_position(self, position: Vector3) -> None:
        self.position = position

    def _set_server_position(self, position: Vector3) -> None:
        self.server_position = position
        self.position = position

    def _next_tick(self) -> int:
        self.input_tick += 1
        return self.input_tick

    def _handle_player_list_update(self, players: List[str]) -> None:
        if self._on_player_list_update is not None:
            self._on_player_list_update(players)
        if not self.options.list_players_only:
            return
        me = self.authenticated_player_name
        if me and any(name != me for name in players):
            self.probe.complete_now()
            return
        if players:
            self.probe.note_players_observed()
