# path: src/runtime/join_runner.py

"""
Caller-owned reconnect loop.

run_with_reconnect() calls join_once(attempt) until it returns normally or
the retry budget is spent, sleeping for the reconnect policy's delay in
between. SessionConfigError is never retried: a bad configuration will not
fix itself.
"""

from __future__ import annotations

import logging
import random as _random
import time
from typing import Callable, Optional

from bot_core.errors import SessionConfigError
from monitoring.logger import FieldLogger

from .reconnect_policy import RandomSource, ReconnectPolicy

log = logging.getLogger(__name__)

JoinOnce = Callable[[int], None]


def run_with_reconnect(
    join_once: JoinOnce,
    policy: ReconnectPolicy = ReconnectPolicy(),
    *,
    sleep: Callable[[float], None] = time.sleep,
    random: RandomSource = _random.random,
    logger: Optional[FieldLogger] = None,
) -> int:
    """
    Run join_once until success; returns the zero-based attempt that succeeded.

    The last failure is re-raised once attempt == policy.max_retries.
    """
    attempt = 0
    while True:
        try:
            join_once(attempt)
            return attempt
        except SessionConfigError:
            raise
        except Exception as exc:
            if attempt >= policy.max_retries:
                log.error("Join failed after %d attempt(s): %s", attempt + 1, exc)
                raise
            delay_ms = policy.delay_ms(attempt, random)
            fields = {
                "event": "reconnect_retry",
                "attempt": attempt + 1,
                "maxRetries": policy.max_retries,
                "delayMs": delay_ms,
                "error": str(exc),
            }
            if logger is not None:
                logger.info(fields, "Join failed, retrying")
            else:
                log.info("Join attempt %d failed (%s); retrying in %d ms", attempt + 1, exc, delay_ms)
            sleep(delay_ms / 1000.0)
            attempt += 1
