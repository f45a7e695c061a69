# JSON logger subscribing to EventBus
"""
Structured logging for the session layer.

Provides:
- FieldLogger: protocol for structured field-record sinks (info/debug/error).
- EventBusFieldLogger: FieldLogger that publishes MonitoringEvents on an
  EventBus and mirrors them to the standard logging module.
- JsonFileLogger: subscribes to an EventBus and writes MonitoringEvents as JSONL.
- log_event: convenience helper for publishing MonitoringEvents via the EventBus.

Usage patterns:

    from pathlib import Path
    from monitoring.bus import EventBus
    from monitoring.logger import EventBusFieldLogger, JsonFileLogger

    bus = EventBus()
    sink = JsonFileLogger(Path("logs/session.log"), bus)
    logger = EventBusFieldLogger(bus, module="runtime.session")

    logger.info({"event": "connect", "host": "192.168.1.20"}, "Connecting to server")
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from .bus import EventBus
from .events import EventType, MonitoringEvent, Severity


_STDLIB_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.ERROR: logging.ERROR,
}


# ============================================================
# Field logger protocol
# ============================================================

class FieldLogger(Protocol):
    """
    Sink for structured session records.

    Every record is a mapping of JSON-safe fields plus a short message.
    By convention the mapping carries an "event" key naming the record.
    """

    def info(self, fields: Mapping[str, Any], message: str) -> None:
        ...

    def debug(self, fields: Mapping[str, Any], message: str) -> None:
        ...

    def error(self, fields: Mapping[str, Any], message: str) -> None:
        ...


class EventBusFieldLogger:
    """
    FieldLogger backed by the monitoring EventBus.

    Each record becomes a SESSION_LOG MonitoringEvent; the same record is
    also forwarded to a standard logger so console output keeps working
    when no bus subscriber is attached.
    """

    def __init__(
        self,
        bus: EventBus,
        *,
        module: str = "session",
        correlation_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._bus = bus
        self._module = module
        self._correlation_id = correlation_id
        self._log = logger or logging.getLogger(f"bedcraft.{module}")

    def info(self, fields: Mapping[str, Any], message: str) -> None:
        self._emit(Severity.INFO, fields, message)

    def debug(self, fields: Mapping[str, Any], message: str) -> None:
        self._emit(Severity.DEBUG, fields, message)

    def error(self, fields: Mapping[str, Any], message: str) -> None:
        self._emit(Severity.ERROR, fields, message)

    def _emit(self, severity: Severity, fields: Mapping[str, Any], message: str) -> None:
        payload = dict(fields)
        self._log.log(_STDLIB_LEVELS[severity], "%s %s", message, payload)
        log_event(
            bus=self._bus,
            module=self._module,
            event_type=EventType.SESSION_LOG,
            message=message,
            payload=payload,
            severity=severity,
            correlation_id=self._correlation_id,
        )


# ============================================================
# JSONL File Logger
# ============================================================

class JsonFileLogger:
    """
    JSON-lines logger for MonitoringEvent instances.

    - Subscribes to an EventBus and writes one JSON object per line.
    - Ensures UTF-8 encoding.
    - Ensures parent directory exists.
    """

    def __init__(self, path: Path, bus: EventBus) -> None:
        self._path = path
        self._bus = bus
        self._ensure_parent_dir(path)
        self._file = path.open("a", encoding="utf-8")
        bus.subscribe(self._on_event)

    @staticmethod
    def _ensure_parent_dir(path: Path) -> None:
        """Create parent directories for `path` if they don't exist."""
        parent = path.parent
        if not parent.exists():
            parent.mkdir(parents=True, exist_ok=True)

    def _on_event(self, event: MonitoringEvent) -> None:
        # default=str keeps 64-bit ids and other non-JSON scalars readable.
        line = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
        try:
            self._file.write(line + "\n")
            self._file.flush()
        except (OSError, ValueError):
            # Disk full or closed handle: logging must not crash the session.
            pass

    def close(self) -> None:
        """Unsubscribe and close the underlying file handle."""
        self._bus.unsubscribe(self._on_event)
        self._file.close()


# ============================================================
# Convenience helper for emitting events
# ============================================================

def log_event(
    bus: EventBus,
    module: str,
    event_type: EventType,
    message: str,
    payload: Optional[Dict[str, Any]] = None,
    severity: Severity = Severity.INFO,
    correlation_id: Optional[str] = None,
) -> None:
    """
    Create and publish a MonitoringEvent.

    Parameters
    ----------
    bus:
        EventBus instance to publish the event to.
    module:
        String identifying the source module ("runtime.session", "nethernet").
    event_type:
        EventType enum member describing what kind of event this is.
    message:
        Short human-readable description.
    payload:
        Structured JSON-safe data attached to this event.
    severity:
        Severity of the record.
    correlation_id:
        Optional ID linking related events (per session attempt).
    """
    event = MonitoringEvent(
        ts=time.time(),
        module=module,
        event_type=event_type,
        severity=severity,
        message=message,
        payload=payload or {},
        correlation_id=correlation_id,
    )
    bus.publish(event)
