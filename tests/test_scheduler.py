# tests/test_scheduler.py
"""
Tests for runtime.scheduler and the FakeScheduler test double.

Covers:
- ThreadingScheduler runs callbacks under its lock; cancel prevents firing
- cancel wins over a timer that already expired and waits on the lock
- PlayerListProbe.clear holds against an expired timer on the real scheduler
- FakeScheduler fires due timers in order, including nested ones
"""

from __future__ import annotations

import threading
import time
from typing import List

from bot_core.testing.fakes import FakeScheduler
from runtime.player_list_probe import PlayerListProbe
from runtime.scheduler import ThreadingScheduler


def test_threading_scheduler_runs_under_lock() -> None:
    scheduler = ThreadingScheduler()
    fired = threading.Event()

    with scheduler.lock:
        scheduler.call_later(10, fired.set)
        assert not fired.wait(timeout=0.2)

    assert fired.wait(timeout=2.0)


def test_threading_scheduler_cancel() -> None:
    scheduler = ThreadingScheduler()
    fired = threading.Event()
    handle = scheduler.call_later(200, fired.set)
    handle.cancel()
    assert not fired.wait(timeout=0.4)


def test_threading_scheduler_clock_in_ms() -> None:
    scheduler = ThreadingScheduler(clock=lambda: 1.5)
    assert scheduler.now_ms() == 1500.0


def test_fake_scheduler_orders_and_nests() -> None:
    scheduler = FakeScheduler()
    order: List[str] = []

    scheduler.call_later(30, lambda: order.append("c"))
    scheduler.call_later(10, lambda: (order.append("a"), scheduler.call_later(5, lambda: order.append("b"))))
    scheduler.call_later(10, lambda: order.append("a2"))
    cancelled = scheduler.call_later(20, lambda: order.append("never"))
    cancelled.cancel()

    scheduler.advance(30)

    assert order == ["a", "a2", "b", "c"]
    assert scheduler.now_ms() == 30
    assert scheduler.pending == 0


def test_threading_scheduler_cancel_after_expiry() -> None:
    scheduler = ThreadingScheduler()
    fired = threading.Event()

    with scheduler.lock:
        handle = scheduler.call_later(0, fired.set)
        time.sleep(0.1)
        handle.cancel()

    assert not fired.wait(timeout=0.3)


def test_player_list_settle_clear_after_expiry() -> None:
    scheduler = ThreadingScheduler()
    fired: List[str] = []
    settle = PlayerListProbe(scheduler, lambda: fired.append("elapsed"), max_wait_ms=0, settle_wait_ms=0)

    with scheduler.lock:
        settle.start()
        settle.note_players_observed()
        time.sleep(0.1)
        settle.clear()

    time.sleep(0.3)
    assert fired == []
