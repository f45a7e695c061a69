# path: src/monitoring/events.py
"""
Event schemas for session monitoring.

This module defines:
- Severity (structured log levels understood by the sink)
- EventType enum
- MonitoringEvent (structured session events)

All events are JSON-serializable via `.to_dict()` and are intended
for use with monitoring.bus.EventBus and monitoring.logger.JsonFileLogger.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum, auto
from typing import Any, Dict, Optional


# ============================================================
# Event Types
# ============================================================

class Severity(str, Enum):
    """Severities accepted by the structured log sink."""

    DEBUG = "debug"
    INFO = "info"
    ERROR = "error"


class EventType(Enum):
    """Typed monitoring events emitted by the session layer."""

    # Structured session log record (connect, start_game, heartbeat, ...)
    SESSION_LOG = auto()

    # Connection lifecycle transitions (connecting / online / offline)
    CONNECTION_STATE = auto()

    # LAN / NetherNet discovery results
    SERVER_DISCOVERED = auto()

    # Generic log messages
    LOG = auto()


# ============================================================
# Monitoring Event Structure
# ============================================================

@dataclass
class MonitoringEvent:
    """
    Runtime event emitted by the session client, runtime monitors or
    discovery.

    All fields must be JSON-safe.
    """

    ts: float                   # UNIX timestamp (seconds)
    module: str                 # Source module string ("runtime.session", "auth", ...)
    event_type: EventType       # Enum describing the event class
    severity: Severity          # debug / info / error
    message: str                # Short human-readable description
    payload: Dict[str, Any]     # Structured field record
    correlation_id: Optional[str] = None  # Groups events per session attempt

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dict for loggers."""
        data = asdict(self)
        data["event_type"] = self.event_type.name  # store name, not enum
        data["severity"] = self.severity.value
        return data
