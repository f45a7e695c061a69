# tests/test_hardware_profile.py
"""
Tests for bot_core.hardware_profile.

Covers:
- memory breakpoints -> chunk radius soft cap
- unknown memory falls back to the smallest radius
"""

from __future__ import annotations

import pytest

from bot_core import hardware_profile
from bot_core.hardware_profile import GIGABYTE_BYTES, resolve_default_chunk_radius_soft_cap


@pytest.mark.parametrize(
    "gib, radius",
    [(2, 8), (4, 8), (6, 10), (8, 10), (12, 12), (16, 14), (32, 16), (128, 16)],
)
def test_breakpoints(gib: int, radius: int) -> None:
    assert resolve_default_chunk_radius_soft_cap(gib * GIGABYTE_BYTES) == radius


def test_unknown_memory_uses_smallest_radius(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(hardware_profile, "total_memory_bytes", lambda: None)
    assert resolve_default_chunk_radius_soft_cap() == 8


def test_detected_memory_is_used(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(hardware_profile, "total_memory_bytes", lambda: 16 * GIGABYTE_BYTES)
    assert resolve_default_chunk_radius_soft_cap() == 14
