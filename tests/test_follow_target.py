# tests/test_follow_target.py
"""
Tests for runtime.follow_target.

Covers:
- wait callback once per absence
- failure exactly at the timeout, once
- reappearance resets and a later absence starts over
- a raised failure is also reset, so a second absence fails again
"""

from __future__ import annotations

from typing import List

from runtime.follow_target import FollowTargetAcquireState, update_follow_target_acquire_state


class Calls:
    def __init__(self) -> None:
        self.log: List[str] = []

    def wait(self) -> None:
        self.log.append("wait")

    def failure(self) -> None:
        self.log.append("failure")


def tick(state: FollowTargetAcquireState, calls: Calls, now: float, has_target: bool, timeout=None) -> None:
    update_follow_target_acquire_state(state, now, has_target, calls.wait, calls.failure, timeout)


def test_wait_then_failure_once() -> None:
    state, calls = FollowTargetAcquireState(), Calls()
    tick(state, calls, 0, False)
    tick(state, calls, 5000, False)
    tick(state, calls, 9999, False)
    assert calls.log == ["wait"]

    tick(state, calls, 10000, False)
    tick(state, calls, 20000, False)
    assert calls.log == ["wait", "failure"]


def test_custom_timeout() -> None:
    state, calls = FollowTargetAcquireState(), Calls()
    tick(state, calls, 100, False, timeout=250)
    tick(state, calls, 350, False, timeout=250)
    assert calls.log == ["wait", "failure"]


def test_reappearance_resets_cycle() -> None:
    state, calls = FollowTargetAcquireState(), Calls()
    tick(state, calls, 0, False)
    tick(state, calls, 4000, True)
    assert state.missing_since_ms is None

    tick(state, calls, 6000, False)
    tick(state, calls, 15000, False)
    assert calls.log == ["wait", "wait"]
    tick(state, calls, 16000, False)
    assert calls.log == ["wait", "wait", "failure"]


def test_failure_flag_resets_on_reappearance() -> None:
    state, calls = FollowTargetAcquireState(), Calls()
    tick(state, calls, 0, False)
    tick(state, calls, 10000, False)
    assert state.failure_raised

    tick(state, calls, 12000, True)
    assert not state.failure_raised

    tick(state, calls, 13000, False)
    tick(state, calls, 22999, False)
    tick(state, calls, 23000, False)
    tick(state, calls, 30000, False)

    assert calls.log == ["wait", "failure", "wait", "failure"]

def test_target_present_does_nothing() -> None:
    state, calls = FollowTargetAcquireState(), Calls()
    tick(state, calls, 0, True)
    tick(state, calls, 50000, True)
    assert calls.log == []
