# tests/test_world_logging.py
"""
Tests for runtime.world_logging and runtime.heartbeat.

Covers:
- start_game field projection (game type fallback, server id as string)
- chunk publisher update: first at info, later at debug
- heartbeat distance only for follow_coordinates
"""

from __future__ import annotations

import pytest

from bot_core.net.session_options import JoinOptions
from bot_core.testing.fakes import FakeSessionClient, RecordingFieldLogger
from runtime.heartbeat import horizontal_distance, to_runtime_heartbeat_log_fields
from runtime.world_logging import ChunkPublisherUpdateLogger, profile_name, to_start_game_log_fields


def test_start_game_fields() -> None:
    options = JoinOptions(
        host="10.0.0.2",
        port=7551,
        account_name="steve",
        authflow=None,
        transport="nethernet",
        nethernet_server_id=123456789,
        server_name="World",
    )
    packet = {"game_type": 1, "dimension": "overworld", "level_id": "abc", "difficulty": 2, "seed": "42"}

    fields = to_start_game_log_fields(options, FakeSessionClient("Steve"), packet, "7", {"x": 0.0, "y": 1.0, "z": 2.0})

    assert fields["event"] == "start_game"
    assert fields["serverId"] == "123456789"
    assert fields["playerName"] == "Steve"
    assert fields["gameType"] == 1
    assert fields["seed"] == 42.0
    assert fields["runtimeEntityId"] == "7"
    assert fields["generator"] is None


def test_profile_name_fallback() -> None:
    assert profile_name(object()) == "unknown"


def test_chunk_publisher_logger_levels() -> None:
    logger = RecordingFieldLogger()
    log_update = ChunkPublisherUpdateLogger(logger)
    packet = {"coordinates": {"x": 16, "y": 64, "z": 32}, "radius": 160}

    log_update(packet)
    log_update(packet)
    log_update(packet)

    assert [record.level for record in logger.records] == ["info", "debug", "debug"]
    assert logger.records[0].fields["chunkPublisherRadiusBlocks"] == 160
    assert logger.records[0].fields["chunkPublisherCenter"] == {"x": 16.0, "y": 64.0, "z": 32.0}


def test_horizontal_distance_ignores_y() -> None:
    assert horizontal_distance({"x": 0.0, "y": 0.0, "z": 0.0}, (3.0, 100.0, 4.0)) == pytest.approx(5.0)
    assert horizontal_distance(None, (1.0, 2.0, 3.0)) is None


def test_heartbeat_distance_only_for_follow_coordinates() -> None:
    position = {"x": 0.0, "y": 64.0, "z": 0.0}
    common = dict(chunk_packets=10, unique_chunks=8, dimension=0, position=position, simulated_position=position)

    walking = to_runtime_heartbeat_log_fields(movement_goal="safe_walk", follow_coordinates=(3, 0, 4), **common)
    following = to_runtime_heartbeat_log_fields(movement_goal="follow_coordinates", follow_coordinates=(3, 0, 4), **common)

    assert "followCoordinatesDistanceBlocks" not in walking
    assert following["followCoordinatesDistanceBlocks"] == pytest.approx(5.0)
    assert following["event"] == "runtime_heartbeat"
    assert following["uniqueChunks"] == 8
