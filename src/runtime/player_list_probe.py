# path: src/runtime/player_list_probe.py

"""
Player-list settle probe.

Two timers race: a max-wait timer armed by start() and a shorter settle
timer restarted by every note_players_observed(). Whichever fires first
completes the probe; completion clears both timers and runs on_elapsed
exactly once per arm cycle.

Each arm cycle carries a generation number. Timer callbacks from an older
generation, or from a settle timer that has since been replaced, are
ignored, so clear() holds even when a timer already expired.
"""

from __future__ import annotations

from typing import Callable, Optional

from .scheduler import Scheduler, TimerHandle

DEFAULT_PLAYER_LIST_WAIT_MS = 8000
DEFAULT_PLAYER_LIST_SETTLE_MS = 100


class PlayerListProbe:
    def __init__(
        self,
        scheduler: Scheduler,
        on_elapsed: Callable[[], None],
        *,
        enabled: bool = True,
        max_wait_ms: int = DEFAULT_PLAYER_LIST_WAIT_MS,
        settle_wait_ms: int = DEFAULT_PLAYER_LIST_SETTLE_MS,
    ) -> None:
        self._scheduler = scheduler
        self._on_elapsed = on_elapsed
        self.enabled = enabled
        self.max_wait_ms = max_wait_ms
        self.settle_wait_ms = settle_wait_ms
        self._max_timer: Optional[TimerHandle] = None
        self._settle_timer: Optional[TimerHandle] = None
        self._completed = False
        self._generation = 0
        self._settle_token = 0

    @property
    def armed(self) -> bool:
        return self._max_timer is not None

    def start(self) -> None:
        """Arm the max-wait timer; no-op when disabled or already armed."""
        if not self.enabled or self._max_timer is not None:
            return
        self._completed = False
        generation = self._generation
        self._max_timer = self._scheduler.call_later(
            self.max_wait_ms, lambda: self._on_timer(generation, None)
        )

    def note_players_observed(self) -> None:
        """Restart the settle timer; the newest observation wins."""
        if not self.enabled or self._completed:
            return
        if self._settle_timer is not None:
            self._settle_timer.cancel()
        self._settle_token += 1
        generation, token = self._generation, self._settle_token
        self._settle_timer = self._scheduler.call_later(
            self.settle_wait_ms, lambda: self._on_timer(generation, token)
        )

    def complete_now(self) -> None:
        """Finish immediately; ignored once this cycle has completed."""
        self._finalize()

    def clear(self) -> None:
        """Cancel both timers; safe in any state."""
        self._generation += 1
        self._settle_token += 1
        if self._max_timer is not None:
            self._max_timer.cancel()
            self._max_timer = None
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None

    def _on_timer(self, generation: int, settle_token: Optional[int]) -> None:
        if generation != self._generation:
            return
        if settle_token is not None and settle_token != self._settle_token:
            return
        self._finalize()

    def _finalize(self) -> None:
        if self._completed:
            return
        self._completed = True
        self.clear()
        self._on_elapsed()
