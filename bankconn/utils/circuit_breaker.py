"""In-memory circuit breaker for bank channels (process-local).

Keyed by channel key (``company_id:bank_code``) so one unreachable bank does
not stop polling of the others.
"""
from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict

from bankconn.config import CIRCUIT_BREAKER


class BreakerPhase(str, enum.Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class BreakerState:
    failures: int = 0
    phase: BreakerPhase = BreakerPhase.CLOSED
    opened_at: datetime | None = None
    half_open_probes: int = 0
    last_error: str | None = None


def channel_key(company_id: str, bank_code: str) -> str:
    return f"{company_id}:{bank_code}"


class CircuitBreaker:
    def __init__(self):
        self._states: Dict[str, BreakerState] = {}
        self._lock = threading.Lock()

    def _get(self, key: str) -> BreakerState:
        return self._states.setdefault(key, BreakerState())

    def allow_call(self, key: str) -> tuple[bool, str | None]:
        with self._lock:
            st = self._get(key)
            if st.phase == BreakerPhase.OPEN:
                cooldown = float(CIRCUIT_BREAKER["open_cooldown_seconds"])
                if st.opened_at and datetime.now(timezone.utc) - st.opened_at >= timedelta(seconds=cooldown):
                    st.phase = BreakerPhase.HALF_OPEN
                    st.half_open_probes = 0
                else:
                    return False, "circuit_open"
            if st.phase == BreakerPhase.HALF_OPEN:
                if st.half_open_probes >= int(CIRCUIT_BREAKER["half_open_probe_count"]):
                    return False, "half_open_probe_exhausted"
                st.half_open_probes += 1
            return True, None

    def record_success(self, key: str) -> None:
        with self._lock:
            st = self._get(key)
            st.failures = 0
            st.last_error = None
            st.phase = BreakerPhase.CLOSED
            st.opened_at = None
            st.half_open_probes = 0

    def record_failure(self, key: str, error: str | None = None) -> None:
        with self._lock:
            st = self._get(key)
            st.failures += 1
            st.last_error = error
            threshold = int(CIRCUIT_BREAKER["failure_threshold"])
            if st.phase == BreakerPhase.HALF_OPEN or (st.phase == BreakerPhase.CLOSED and st.failures >= threshold):
                st.phase = BreakerPhase.OPEN
                st.opened_at = datetime.now(timezone.utc)

    def reset(self) -> None:
        with self._lock:
            self._states.clear()

    def snapshot(self) -> dict[str, dict[str, object]]:
        with self._lock:
            return {
                k: {
                    "failures": v.failures,
                    "state": v.phase.value,
                    "opened_at": v.opened_at.isoformat() if v.opened_at else None,
                    "half_open_probes": v.half_open_probes,
                    "last_error": v.last_error,
                }
                for k, v in self._states.items()
            }


GLOBAL_CIRCUIT_BREAKER = CircuitBreaker()

__all__ = ["CircuitBreaker", "BreakerPhase", "GLOBAL_CIRCUIT_BREAKER", "channel_key"]
