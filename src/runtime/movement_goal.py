# path: src/runtime/movement_goal.py

"""
Movement-goal selection and the default movement loop.

Goals:
- safe_walk: patrol back and forth to keep packets flowing
- follow_player: walk toward a named player's live position
- follow_coordinates: walk to fixed coordinates and hold there

start_movement_for_goal() builds a MovementLoop for the configured goal and
returns a handle whose cleanup() stops it. Pathfinding is out of scope; the
loop steps straight toward the target on the x/z plane and stops inside a
goal-specific stop distance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Tuple

from bot_core.errors import SessionConfigError, SessionError
from bot_core.net.client import SessionClient
from bot_core.packet_fields import Vector3
from monitoring.logger import FieldLogger

from .follow_target import (
    DEFAULT_FOLLOW_TARGET_ACQUIRE_TIMEOUT_MS,
    FollowTargetAcquireState,
    update_follow_target_acquire_state,
)
from .scheduler import Scheduler, TimerHandle

MOVEMENT_GOAL_SAFE_WALK = "safe_walk"
MOVEMENT_GOAL_FOLLOW_PLAYER = "follow_player"
MOVEMENT_GOAL_FOLLOW_COORDINATES = "follow_coordinates"
MOVEMENT_GOALS = (MOVEMENT_GOAL_SAFE_WALK, MOVEMENT_GOAL_FOLLOW_PLAYER, MOVEMENT_GOAL_FOLLOW_COORDINATES)

DEFAULT_MOVEMENT_LOOP_INTERVAL_MS = 100
DEFAULT_WALK_SPEED_BLOCKS_PER_SECOND = 1.1
DEFAULT_FOLLOW_PLAYER_STOP_DISTANCE_BLOCKS = 1.75
DEFAULT_FOLLOW_COORDINATES_STOP_DISTANCE_BLOCKS = 1.5
FALLBACK_FOLLOW_PLAYER_NAME = "unknown"
# Patrol turns around every 60 steps (6 s at 10 Hz).
PATROL_HALF_PERIOD_STEPS = 60

# (strafe, forward) in world x/z terms.
MovementVector = Tuple[float, float]
STILL: MovementVector = (0.0, 0.0)


class MovementHandle(Protocol):
    def cleanup(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------


def patrol_vector(step_index: int) -> MovementVector:
    if step_index % (2 * PATROL_HALF_PERIOD_STEPS) < PATROL_HALF_PERIOD_STEPS:
        return (0.0, 1.0)
    return (0.0, -1.0)


def follow_vector(position: Vector3, target: Optional[Vector3], stop_distance: float) -> Optional[MovementVector]:
    """Unit x/z vector toward target, or None when absent or already within stop_distance."""
    if target is None:
        return None
    dx = target["x"] - position["x"]
    dz = target["z"] - position["z"]
    distance = math.hypot(dx, dz)
    if distance <= stop_distance:
        return None
    return (dx / distance, dz / distance)


def yaw_from_vector(vector: MovementVector) -> float:
    if vector == STILL:
        return 0.0
    return math.degrees(math.atan2(vector[0], vector[1]))


def input_flags(vector: MovementVector) -> Dict[str, bool]:
    return {
        "up": vector[1] > 0,
        "down": vector[1] < 0,
        "left": vector[0] < 0,
        "right": vector[0] > 0,
        "jump": False,
    }


def step_delta(vector: MovementVector, speed: float, interval_ms: float) -> Vector3:
    distance = speed * interval_ms / 1000.0
    return {"x": vector[0] * distance, "y": 0.0, "z": vector[1] * distance}


def _coordinates_to_vector3(coordinates: Sequence[float]) -> Vector3:
    return {"x": float(coordinates[0]), "y": float(coordinates[1]), "z": float(coordinates[2])}


# ---------------------------------------------------------------------------
# Movement loop
# ---------------------------------------------------------------------------


class MovementLoop:
    """
    Fixed-rate stepper driven by a Scheduler.

    Every tick it picks a movement vector for the goal, queues one
    player_auth_input packet and advances the simulated position. For
    follow_player it also drives the follow-target acquire watchdog.
    """

    def __init__(
        self,
        client: SessionClient,
        logger: FieldLogger,
        scheduler: Scheduler,
        *,
        goal: str,
        get_position: Callable[[], Optional[Vector3]],
        set_position: Callable[[Vector3], None],
        get_tick: Callable[[], int],
        follow_player_name: Optional[str] = None,
        get_follow_target_position: Optional[Callable[[], Optional[Vector3]]] = None,
        follow_coordinates: Optional[Vector3] = None,
        interval_ms: float = DEFAULT_MOVEMENT_LOOP_INTERVAL_MS,
        speed_blocks_per_second: float = DEFAULT_WALK_SPEED_BLOCKS_PER_SECOND,
        acquire_timeout_ms: Optional[float] = None,
    ) -> None:
        self.client = client
        self.logger = logger
        self.scheduler = scheduler
        self.goal = goal
        self.follow_player_name = follow_player_name
        self.follow_coordinates = follow_coordinates
        self.interval_ms = interval_ms
        self.speed = speed_blocks_per_second
        self.acquire_timeout_ms = acquire_timeout_ms
        self.acquire_state = FollowTargetAcquireState()
        self._get_position = get_position
        self._set_position = set_position
        self._get_tick = get_tick
        self._get_target = get_follow_target_position or (lambda: None)
        self._step_index = 0
        self._arrival_logged = False
        self._timer: Optional[TimerHandle] = None
        self._stopped = False

    def start(self) -> None:
        fields: Dict[str, Any] = {"event": "movement_start", "mode": self.goal}
        if self.goal == MOVEMENT_GOAL_FOLLOW_PLAYER:
            fields["followPlayerName"] = self.follow_player_name
        elif self.goal == MOVEMENT_GOAL_FOLLOW_COORDINATES:
            fields["followCoordinates"] = self.follow_coordinates
        self.logger.info(fields, "Starting movement loop")
        self._schedule()

    def cleanup(self) -> None:
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        if self._stopped:
            return
        self._timer = self.scheduler.call_later(self.interval_ms, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._stopped:
            return
        self.step()
        self._schedule()

    def step(self) -> None:
        """Run one movement tick."""
        position = self._get_position()
        if position is None:
            return

        vector = self._choose_vector(position)
        self._step_index += 1
        if self._stopped:
            return

        delta = step_delta(vector, self.speed, self.interval_ms)
        next_position = {"x": position["x"] + delta["x"], "y": position["y"], "z": position["z"] + delta["z"]}
        yaw = yaw_from_vector(vector)
        move = {"x": vector[0], "z": vector[1]}
        self.client.queue(
            "player_auth_input",
            {
                "pitch": 0,
                "yaw": yaw,
                "position": next_position,
                "move_vector": move,
                "head_yaw": yaw,
                "input_data": input_flags(vector),
                "input_mode": "mouse",
                "play_mode": "normal",
                "interaction_model": "crosshair",
                "interact_rotation": {"x": 0, "z": 0},
                "tick": self._get_tick(),
                "delta": delta,
                "analogue_move_vector": move,
                "camera_orientation": {"x": 0, "y": 0, "z": 1},
                "raw_move_vector": move,
            },
        )
        self._set_position(next_position)

    def _choose_vector(self, position: Vector3) -> MovementVector:
        if self.goal == MOVEMENT_GOAL_FOLLOW_PLAYER:
            target = self._get_target()
            update_follow_target_acquire_state(
                self.acquire_state,
                self.scheduler.now_ms(),
                target is not None,
                self._on_target_wait,
                self._on_target_failure,
                self.acquire_timeout_ms,
            )
            if target is None:
                return patrol_vector(self._step_index)
            return follow_vector(position, target, DEFAULT_FOLLOW_PLAYER_STOP_DISTANCE_BLOCKS) or STILL

        if self.goal == MOVEMENT_GOAL_FOLLOW_COORDINATES:
            vector = follow_vector(position, self.follow_coordinates, DEFAULT_FOLLOW_COORDINATES_STOP_DISTANCE_BLOCKS)
            if vector is None:
                if not self._arrival_logged:
                    self._arrival_logged = True
                    self.logger.info(
                        {"event": "follow_coordinates_arrived", "followCoordinates": self.follow_coordinates},
                        "Reached target coordinates",
                    )
                return STILL
            self._arrival_logged = False
            return vector

        return patrol_vector(self._step_index)

    def _on_target_wait(self) -> None:
        self.logger.info(
            {"event": "follow_target_wait", "followPlayerName": self.follow_player_name},
            "Target player is unknown, continuing search patrol",
        )

    def _on_target_failure(self) -> None:
        timeout = self.acquire_timeout_ms
        if timeout is None:
            timeout = DEFAULT_FOLLOW_TARGET_ACQUIRE_TIMEOUT_MS
        self.logger.error(
            {"event": "follow_target_timeout", "followPlayerName": self.follow_player_name, "timeoutMs": timeout},
            "Follow target was not acquired in time",
        )
        self.client.emit(
            "error",
            SessionError(
                code="follow_target_timeout",
                details={"followPlayerName": self.follow_player_name, "timeoutMs": timeout},
            ),
        )


# ---------------------------------------------------------------------------
# Goal selection
# ---------------------------------------------------------------------------


@dataclass
class MovementGoalRequest:
    goal: str
    follow_player_name: Optional[str] = None
    follow_coordinates: Optional[Sequence[float]] = None
    acquire_timeout_ms: Optional[float] = None


LoopFactory = Callable[..., MovementLoop]


def start_movement_for_goal(
    request: MovementGoalRequest,
    client: SessionClient,
    logger: FieldLogger,
    scheduler: Scheduler,
    *,
    get_position: Callable[[], Optional[Vector3]],
    set_position: Callable[[Vector3], None],
    get_tick: Callable[[], int],
    get_follow_target_position: Optional[Callable[[], Optional[Vector3]]] = None,
    loop_factory: LoopFactory = MovementLoop,
) -> MovementHandle:
    """
    Start the movement loop for request.goal and return its cleanup handle.

    follow_player needs a live target getter; the player name is used for
    logging only. follow_coordinates without coordinates is a config error.
    """
    common = dict(
        get_position=get_position,
        set_position=set_position,
        get_tick=get_tick,
    )
    if request.goal == MOVEMENT_GOAL_FOLLOW_PLAYER:
        if get_follow_target_position is None:
            raise SessionConfigError(code="follow_target_getter_missing", details={"goal": request.goal})
        loop = loop_factory(
            client,
            logger,
            scheduler,
            goal=MOVEMENT_GOAL_FOLLOW_PLAYER,
            follow_player_name=request.follow_player_name or FALLBACK_FOLLOW_PLAYER_NAME,
            get_follow_target_position=get_follow_target_position,
            acquire_timeout_ms=request.acquire_timeout_ms,
            **common,
        )
    elif request.goal == MOVEMENT_GOAL_FOLLOW_COORDINATES:
        if request.follow_coordinates is None:
            raise SessionConfigError(code="follow_coordinates_missing", details={"goal": request.goal})
        loop = loop_factory(
            client,
            logger,
            scheduler,
            goal=MOVEMENT_GOAL_FOLLOW_COORDINATES,
            follow_coordinates=_coordinates_to_vector3(request.follow_coordinates),
            **common,
        )
    elif request.goal == MOVEMENT_GOAL_SAFE_WALK:
        loop = loop_factory(client, logger, scheduler, goal=MOVEMENT_GOAL_SAFE_WALK, **common)
    else:
        raise SessionConfigError(code="unknown_movement_goal", details={"goal": request.goal})

    logger.info(
        {"event": "planner_bootstrap", "movementGoal": request.goal, "followPlayerName": request.follow_player_name},
        "Initialized movement planner",
    )
    loop.start()
    return loop
