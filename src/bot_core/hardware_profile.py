# src/bot_core/hardware_profile.py
"""Hardware-derived defaults."""

from __future__ import annotations

import logging
import os
from typing import Optional

log = logging.getLogger(__name__)

GIGABYTE_BYTES = 1024 ** 3

# (upper bound in GiB inclusive, chunk radius)
CHUNK_RADIUS_BREAKPOINTS = (
    (4, 8),
    (8, 10),
    (12, 12),
    (16, 14),
)
MAX_CHUNK_RADIUS_SOFT_CAP = 16


def total_memory_bytes() -> Optional[int]:
    """Physical memory via sysconf, or None where it is unavailable."""
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        log.debug("sysconf memory query unavailable on this platform")
        return None


def resolve_default_chunk_radius_soft_cap(memory_bytes: Optional[int] = None) -> int:
    if memory_bytes is None:
        memory_bytes = total_memory_bytes()
    if memory_bytes is None:
        return CHUNK_RADIUS_BREAKPOINTS[0][1]
    for limit_gib, radius in CHUNK_RADIUS_BREAKPOINTS:
        if memory_bytes <= limit_gib * GIGABYTE_BYTES:
            return radius
    return MAX_CHUNK_RADIUS_SOFT_CAP
