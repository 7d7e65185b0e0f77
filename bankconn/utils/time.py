"""Time utilities (UTC now, elapsed ms)."""
from __future__ import annotations
import time
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def elapsed_ms(started: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - started) * 1000

__all__ = ["utc_now", "elapsed_ms"]
