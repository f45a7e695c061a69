# path: src/runtime/__init__.py

"""
Session runtime package for bedcraft.

Holds the pieces that run once a session client is connected:
- reconnect policy and the caller-owned join runner
- timer-driven monitors (player-list probe, follow-target watchdog, heartbeat)
- the movement loop and goal selection
- SessionRuntime, which wires all of the above to a live client
"""

from .join_runner import run_with_reconnect
from .reconnect_policy import ReconnectPolicy, calculate_reconnect_delay_ms
from .scheduler import Scheduler, ThreadingScheduler
from .session_runtime import SessionRuntime

__all__ = [
    "ReconnectPolicy",
    "calculate_reconnect_delay_ms",
    "run_with_reconnect",
    "Scheduler",
    "ThreadingScheduler",
    "SessionRuntime",
]
