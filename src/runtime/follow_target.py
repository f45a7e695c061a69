# path: src/runtime/follow_target.py

"""
Follow-target acquire watchdog.

Level-triggered: call update_follow_target_acquire_state() on every
movement tick with whether the target is currently visible. While the
target is missing, on_wait fires once and, once the absence reaches the
timeout, on_failure fires once. Seeing the target again resets the state
so a later disappearance starts a fresh cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

DEFAULT_FOLLOW_TARGET_ACQUIRE_TIMEOUT_MS = 10000


@dataclass
class FollowTargetAcquireState:
    missing_since_ms: Optional[float] = None
    wait_logged: bool = False
    failure_raised: bool = False

    def reset(self) -> None:
        self.missing_since_ms = None
        self.wait_logged = False
        self.failure_raised = False


def update_follow_target_acquire_state(
    state: FollowTargetAcquireState,
    now_ms: float,
    has_target: bool,
    on_wait: Callable[[], None],
    on_failure: Callable[[], None],
    timeout_ms: Optional[float] = None,
) -> None:
    if has_target:
        state.reset()
        return

    if state.missing_since_ms is None:
        state.missing_since_ms = now_ms
    if not state.wait_logged:
        state.wait_logged = True
        on_wait()
    if state.failure_raised:
        return

    limit = DEFAULT_FOLLOW_TARGET_ACQUIRE_TIMEOUT_MS if timeout_ms is None else timeout_ms
    if now_ms - state.missing_since_ms < limit:
        return
    state.failure_raised = True
    on_failure()
