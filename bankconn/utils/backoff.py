"""Retry delays for channel jobs that failed on bank I/O.

A failed FETCH or DELIVER job is put back on the connectivity queue with a
delay from ``compute_backoff_seconds`` until ``should_retry`` says the
attempt budget in ``BACKOFF_POLICY`` is spent. Jitter spreads retries of
several companies hitting the same bank outage.
"""
from __future__ import annotations

import random
from typing import Optional

from bankconn.config import BACKOFF_POLICY


def _policy(name: str, override: Optional[float]) -> float:
    return float(BACKOFF_POLICY[name] if override is None else override)


def compute_backoff_seconds(
    attempt: int,
    *,
    base: Optional[float] = None,
    factor: Optional[float] = None,
    max_seconds: Optional[float] = None,
    jitter_pct: Optional[float] = None,
) -> float:
    """Seconds to wait before channel retry ``attempt`` (1 is the first retry).

    Grows by ``factor`` from ``base``, stops growing at ``max_seconds``, then
    moves up or down by at most ``jitter_pct`` of itself. Never negative.
    """
    retry = max(attempt, 1)
    ceiling = _policy("max_seconds", max_seconds)
    delay = min(_policy("base_seconds", base) * _policy("factor", factor) ** (retry - 1), ceiling)
    spread = delay * _policy("jitter_pct", jitter_pct)
    if spread > 0:
        delay += random.uniform(-spread, spread)
    return max(delay, 0.0)


def should_retry(attempt: int, *, max_attempts: Optional[int] = None) -> bool:
    """True while ``attempt`` (attempts already made) is below the policy ceiling."""
    return attempt < int(_policy("max_attempts", max_attempts))


__all__ = ["compute_backoff_seconds", "should_retry"]
