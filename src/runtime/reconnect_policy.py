# path: src/runtime/reconnect_policy.py

"""
Exponential backoff with jitter for reconnect attempts.

The policy is stateless; the caller owns the attempt counter.
"""

from __future__ import annotations

import math
import random as _random
from dataclasses import dataclass
from typing import Callable

DEFAULT_RECONNECT_MAX_RETRIES = 2
DEFAULT_RECONNECT_BASE_DELAY_MS = 1000
DEFAULT_RECONNECT_MAX_DELAY_MS = 8000
DEFAULT_RECONNECT_JITTER_RATIO = 0.2

RandomSource = Callable[[], float]


def calculate_reconnect_delay_ms(
    attempt: int,
    base_delay_ms: int = DEFAULT_RECONNECT_BASE_DELAY_MS,
    max_delay_ms: int = DEFAULT_RECONNECT_MAX_DELAY_MS,
    jitter_ratio: float = DEFAULT_RECONNECT_JITTER_RATIO,
    random: RandomSource = _random.random,
) -> int:
    """
    min(max, base * 2**attempt) plus up to jitter_ratio of that as jitter.

    Negative attempts and negative jitter ratios clamp to zero.
    """
    capped = min(max_delay_ms, base_delay_ms * 2 ** max(0, attempt))
    jitter = math.floor(capped * max(0.0, jitter_ratio) * random())
    return int(capped + jitter)


@dataclass(frozen=True)
class ReconnectPolicy:
    max_retries: int = DEFAULT_RECONNECT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_RECONNECT_BASE_DELAY_MS
    max_delay_ms: int = DEFAULT_RECONNECT_MAX_DELAY_MS
    jitter_ratio: float = DEFAULT_RECONNECT_JITTER_RATIO

    def delay_ms(self, attempt: int, random: RandomSource = _random.random) -> int:
        return calculate_reconnect_delay_ms(
            attempt,
            self.base_delay_ms,
            self.max_delay_ms,
            self.jitter_ratio,
            random,
        )
