# tests/test_monitoring_logger.py
"""
Tests for monitoring.logger.

Covers:
- JsonFileLogger JSON structure validity and flush behavior
- EventBusFieldLogger publishes SESSION_LOG events with severity
- EventBusFieldLogger mirrors records to the standard logging module
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List

import pytest

from monitoring.bus import EventBus
from monitoring.events import EventType, MonitoringEvent, Severity
from monitoring.logger import EventBusFieldLogger, JsonFileLogger, log_event


def test_json_file_logger_writes_valid_json(tmp_path: Path):
    bus = EventBus()
    log_path = tmp_path / "events.log"

    logger = JsonFileLogger(log_path, bus)

    log_event(
        bus=bus,
        module="runtime.session",
        event_type=EventType.CONNECTION_STATE,
        message="Connection online",
        payload={"state": "online", "serverId": 2**63},
        correlation_id="lan_direct",
    )

    # Explicit close to ensure file handle is flushed
    logger.close()

    lines = log_path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 1

    data = json.loads(lines[0])

    assert data["module"] == "runtime.session"
    assert data["event_type"] == "CONNECTION_STATE"
    assert data["severity"] == "info"
    assert data["message"] == "Connection online"
    assert data["payload"]["state"] == "online"
    assert data["payload"]["serverId"] == 2**63
    assert data["correlation_id"] == "lan_direct"
    assert isinstance(data["ts"], (int, float))


def test_logger_parent_dir_created(tmp_path: Path):
    log_path = tmp_path / "nested" / "logs" / "events.log"

    bus = EventBus()
    logger = JsonFileLogger(log_path, bus)

    log_event(bus=bus, module="test.module", event_type=EventType.LOG, message="hello")
    logger.close()

    assert log_path.exists()
    assert log_path.read_text(encoding="utf-8").strip()


def test_closed_logger_stops_receiving(tmp_path: Path):
    bus = EventBus()
    log_path = tmp_path / "events.log"
    JsonFileLogger(log_path, bus).close()

    log_event(bus=bus, module="m", event_type=EventType.LOG, message="late")

    assert log_path.read_text(encoding="utf-8") == ""


def test_field_logger_publishes_session_log():
    bus = EventBus()
    received: List[MonitoringEvent] = []
    bus.subscribe(received.append)
    logger = EventBusFieldLogger(bus, module="session", correlation_id="lan_direct")

    logger.info({"event": "connect", "host": "192.168.1.20"}, "Connecting to server")
    logger.debug({"event": "chunk_publisher_update"}, "Updated chunk publisher")
    logger.error({"event": "follow_target_timeout"}, "Follow target was not acquired in time")

    assert [event.severity for event in received] == [Severity.INFO, Severity.DEBUG, Severity.ERROR]
    assert all(event.event_type is EventType.SESSION_LOG for event in received)
    assert received[0].payload == {"event": "connect", "host": "192.168.1.20"}
    assert received[0].module == "session"
    assert received[0].correlation_id == "lan_direct"


def test_field_logger_mirrors_to_stdlib(caplog: pytest.LogCaptureFixture):
    logger = EventBusFieldLogger(EventBus(), module="session")

    with caplog.at_level(logging.DEBUG, logger="bedcraft.session"):
        logger.error({"event": "join_timeout"}, "Join timed out")

    assert caplog.records[-1].levelno == logging.ERROR
    assert "Join timed out" in caplog.records[-1].getMessage()
    assert "join_timeout" in caplog.records[-1].getMessage()
