# src/bot_core/errors.py
"""
Domain errors for bedcraft sessions.

SessionConfigError is raised while building a session, before any network
I/O. SessionError covers failures of a live or connecting session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SessionError(RuntimeError):
    """
    Transport or session failure surfaced to the caller.

    Examples:
        - socket errors while connecting or sending
        - join timeout elapsed before spawn
        - follow target never appeared
    """

    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, details={self.details!r})"


@dataclass
class SessionConfigError(SessionError):
    """Options are inconsistent or incomplete; nothing was sent on the wire."""
