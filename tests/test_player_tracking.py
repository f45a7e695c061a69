# tests/test_player_tracking.py
"""
Tests for runtime.player_tracking.

Covers:
- follow target acquired by case-insensitive name and lost on remove
- local move_player updates own position only
- player_list add/remove by uuid; snapshots emitted on change only
"""

from __future__ import annotations

from typing import List

from bot_core.testing.fakes import RecordingFieldLogger
from runtime.player_tracking import PlayerListState, PlayerTracker

POS = {"x": 1.0, "y": 64.0, "z": 2.0}


def test_follow_target_acquired_and_lost() -> None:
    logger = RecordingFieldLogger()
    tracker = PlayerTracker(logger, follow_player_name="alex")

    tracker.handle_add_player({"runtime_id": 5, "username": "Alex", "position": POS})
    assert tracker.follow_target_runtime_entity_id == "5"
    assert tracker.resolve_follow_target_position() == POS

    tracker.handle_remove_entity({"runtime_entity_id": "5"})

    assert tracker.follow_target_runtime_entity_id is None
    assert tracker.resolve_follow_target_position() is None
    assert logger.events() == ["player_seen", "follow_target_acquired", "follow_target_lost"]


def test_missing_logged_when_target_vanishes_without_remove() -> None:
    logger = RecordingFieldLogger()
    tracker = PlayerTracker(logger, follow_player_name="Alex")
    tracker.handle_add_player({"runtime_id": 5, "username": "Alex", "position": POS})
    # Re-added under a different name: the old entry is replaced.
    tracker.handle_add_player({"runtime_id": 5, "username": "Steve", "position": POS})

    assert tracker.resolve_follow_target_position() is None
    assert logger.events()[-1] == "follow_target_missing"


def test_move_player_updates_tracked_position() -> None:
    tracker = PlayerTracker(RecordingFieldLogger(), follow_player_name="Alex")
    tracker.local_runtime_entity_id = "1"
    tracker.handle_add_player({"runtime_id": 5, "username": "Alex", "position": POS})
    local: List[dict] = []

    moved = {"x": 9.0, "y": 64.0, "z": 9.0}
    tracker.handle_move_player({"runtime_id": "5", "position": moved}, local.append)
    tracker.handle_move_player({"runtime_id": 1, "position": POS}, local.append)

    assert tracker.resolve_follow_target_position() == moved
    assert local == [POS]


def test_move_player_before_start_game_counts_as_local() -> None:
    tracker = PlayerTracker(RecordingFieldLogger())
    local: List[dict] = []
    tracker.handle_move_player({"runtime_id": 99, "position": POS}, local.append)
    tracker.handle_move_player({"runtime_id": 99}, local.append)
    assert local == [POS]


def test_local_player_never_follow_target() -> None:
    tracker = PlayerTracker(RecordingFieldLogger(), follow_player_name="Bot")
    tracker.local_runtime_entity_id = "1"
    tracker.handle_add_player({"runtime_id": 1, "username": "Bot", "position": POS})
    assert tracker.follow_target_runtime_entity_id is None
    assert tracker.resolve_follow_target_position() is None


def test_player_list_add_remove() -> None:
    updates: List[List[str]] = []
    state = PlayerListState(updates.append)

    state.handle_player_list(
        {"records": {"type": "add", "records": [{"uuid": "u1", "username": "Zed"}, {"uuid": "u2", "username": "Amy"}]}}
    )
    state.handle_player_list({"records": {"type": "add", "records": [{"uuid": "u1", "username": "Zed"}]}})
    state.handle_player_list({"records": {"type": "remove", "records": [{"uuid": "u1"}]}})

    assert updates == [["Zed"], ["Amy", "Zed"], ["Amy"]]
    assert state.snapshot() == ["Amy"]


def test_player_list_ignores_malformed_packets() -> None:
    updates: List[List[str]] = []
    state = PlayerListState(updates.append)
    state.handle_player_list({})
    state.handle_player_list({"records": {"type": "update", "records": []}})
    state.handle_player_list({"records": {"type": "add", "records": "nope"}})
    state.handle_player_list({"records": {"type": "add", "records": [{"uuid": "u1"}]}})
    assert updates == []


def test_add_player_feeds_list() -> None:
    updates: List[List[str]] = []
    state = PlayerListState(updates.append)
    state.handle_add_player({"username": "Alex"})
    state.handle_add_player({"username": "Alex"})
    assert updates == [["Alex"]]
