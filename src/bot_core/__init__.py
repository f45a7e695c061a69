# bot_core package
# src/bot_core/__init__.py
"""
bedcraft session core.

Exports:
    - SessionError: transport/session failures surfaced to callers
    - SessionConfigError: invalid options detected before any network I/O
"""

from __future__ import annotations

from .errors import SessionConfigError, SessionError

__all__ = [
    "SessionError",
    "SessionConfigError",
]
