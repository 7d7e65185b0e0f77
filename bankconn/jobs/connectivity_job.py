"""Connectivity job payload structure."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class JobAction(str, enum.Enum):
    FETCH = "FETCH"        # poll a bank's inbound channels
    APPLY = "APPLY"        # reconcile pending ack mappings for a company
    DELIVER = "DELIVER"    # push QUEUED outbox rows


@dataclass(slots=True)
class ConnectivityJob:
    action: JobAction
    company_id: str
    bank_code: Optional[str] = None
    channel: Optional[str] = None
    priority: str = "normal"
    attempt: int = 0
    correlation_id: Optional[str] = None

    def key(self) -> str:
        # Attempts are excluded so a retry coalesces with a fresh trigger
        return ":".join(p for p in (self.action.value, self.company_id, self.bank_code or "", self.channel or "") if p)


__all__ = ["ConnectivityJob", "JobAction"]
