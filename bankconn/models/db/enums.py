"""Central Enum definitions for connectivity domain states.

Statuses are explicit enums with transition tables in
``bankconn.services.state_machine``; no module compares raw strings.
"""
from __future__ import annotations
import enum


class ChannelKind(str, enum.Enum):
    SFTP = "SFTP"
    API = "API"


class InboundChannel(str, enum.Enum):
    """Inbound document families a bank publishes."""
    PAIN002 = "pain002"   # payment status report (receipt / rejection)
    CAMT054 = "camt054"   # debit notification (settlement)


class RunStatus(str, enum.Enum):
    APPROVED = "APPROVED"          # upstream only, never accepted here
    EXPORTED = "EXPORTED"
    DISPATCHED = "DISPATCHED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


class LineStatus(str, enum.Enum):
    SELECTED = "SELECTED"
    DISPATCHED = "DISPATCHED"
    PAID = "PAID"
    FAILED = "FAILED"


class DispatchStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    CONFIRMED = "CONFIRMED"


class CanonicalStatus(str, enum.Enum):
    ACK = "ACK"
    EXEC_OK = "EXEC_OK"
    EXEC_FAIL = "EXEC_FAIL"
    PENDING = "PENDING"

    @classmethod
    def parse(cls, value: str | None) -> "CanonicalStatus | None":
        """Return the member for ``value`` (case-insensitive) or None if not canonical."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class JobKind(str, enum.Enum):
    DISPATCH = "DISPATCH"
    FETCH = "FETCH"
    RECONCILE = "RECONCILE"
    DELIVER = "DELIVER"


__all__ = [
    "ChannelKind",
    "InboundChannel",
    "RunStatus",
    "LineStatus",
    "DispatchStatus",
    "CanonicalStatus",
    "JobKind",
]
