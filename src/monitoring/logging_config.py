# src/monitoring/logging_config.py
"""
Central logging configuration for the bedcraft runtime.

Call configure_logging() from your main entrypoint once, for example:

    from monitoring.logging_config import configure_logging
    configure_logging()

The level can be overridden with the BEDCRAFT_LOG_LEVEL environment variable
("debug", "info", "error", ...).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

LOG_LEVEL_ENV_VAR = "BEDCRAFT_LOG_LEVEL"


def resolve_log_level(value: Optional[str], default: int = logging.INFO) -> int:
    """Map a level name such as "debug" to a logging constant."""
    if not value or not value.strip():
        return default
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(level: Optional[int] = None) -> None:
    """
    Configure root logging if no handlers are attached yet.

    Args:
        level: explicit level; when None the BEDCRAFT_LOG_LEVEL environment
            variable is consulted, falling back to logging.INFO.
    """
    root = logging.getLogger()

    # Don't duplicate handlers if someone already configured logging.
    if root.handlers:
        return

    if level is None:
        level = resolve_log_level(os.getenv(LOG_LEVEL_ENV_VAR))

    handler = logging.StreamHandler(stream=sys.stdout)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(level)
