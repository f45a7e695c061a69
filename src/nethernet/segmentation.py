# src/nethernet/segmentation.py
"""
Message segmentation for NetherNet data channels.

Each segment carries a one-byte header holding the number of segments still
to follow, so a payload can span at most 256 segments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

MAX_SEGMENT_BYTES = 10000
SEGMENT_HEADER_BYTES = 1
MAX_REMAINING_SEGMENTS = 255


@dataclass
class SegmentationError(ValueError):
    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"SegmentationError(code={self.code!r}, details={self.details!r})"


def split_payload(payload: bytes, max_segment_bytes: int = MAX_SEGMENT_BYTES) -> List[bytes]:
    if max_segment_bytes <= 0:
        raise SegmentationError(
            code="invalid_segment_size",
            details={"max_segment_bytes": max_segment_bytes},
        )
    segment_count = max(1, -(-len(payload) // max_segment_bytes))
    if segment_count - 1 > MAX_REMAINING_SEGMENTS:
        raise SegmentationError(
            code="too_many_segments",
            details={"payload_bytes": len(payload), "segments": segment_count},
        )

    segments: List[bytes] = []
    for index in range(segment_count):
        start = index * max_segment_bytes
        remaining = segment_count - index - 1
        segments.append(bytes([remaining]) + payload[start:start + max_segment_bytes])
    return segments


class SegmentReassembler:
    """
    Rebuilds payloads from segments received in order on one channel.

    consume() returns the complete payload once the final segment arrives,
    otherwise None.
    """

    def __init__(self) -> None:
        self._expected_remaining: Optional[int] = None
        self._buffer = bytearray()

    def consume(self, message: bytes) -> Optional[bytes]:
        if len(message) < SEGMENT_HEADER_BYTES:
            raise SegmentationError(code="missing_header")
        remaining = message[0]
        expected = self._expected_remaining
        if expected is not None and expected > 0 and expected - 1 != remaining:
            raise SegmentationError(
                code="order_mismatch",
                details={"expected": expected - 1, "received": remaining},
            )

        self._expected_remaining = remaining
        self._buffer.extend(message[SEGMENT_HEADER_BYTES:])
        if remaining > 0:
            return None

        completed = bytes(self._buffer)
        self.reset()
        return completed

    def reset(self) -> None:
        self._expected_remaining = None
        self._buffer = bytearray()
