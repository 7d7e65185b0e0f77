"""Bank transport contract and the shared guard around every channel call."""
from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from bankconn.config import CHANNEL_SETTINGS
from bankconn.exceptions import ChannelIO
from bankconn.models.db import InboundChannel
from bankconn.utils import get_logger
from bankconn.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER, CircuitBreaker, channel_key

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class InboundDocument:
    channel: InboundChannel
    filename: str
    payload: bytes
    # Transport-specific handle used to archive/acknowledge the document later
    remote_ref: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)


def resolve_secret(ref: str) -> str:
    """Resolve a credential reference.

    ``file:/path`` reads the file; ``env:NAME`` (or a bare name) reads the
    environment variable ``NAME``. Credentials never live in profile config.
    """
    if ref.startswith("file:"):
        with open(ref[5:], "r", encoding="utf-8") as fh:
            return fh.read()
    name = ref[4:] if ref.startswith("env:") else ref
    value = os.getenv(name)
    if value is None:
        raise ValueError(f"secret reference '{ref}' is not set")
    return value


class BankTransport(ABC):
    """One bank channel for one company.

    Implementations raise ChannelIO for every transport-level failure; the
    caller never sees library-specific exceptions.
    """

    kind: str = "ABSTRACT"

    def __init__(self, company_id: str, bank_code: str, *, breaker: CircuitBreaker | None = None):
        self.company_id = company_id
        self.bank_code = bank_code
        self.breaker = breaker or GLOBAL_CIRCUIT_BREAKER
        self.logger = get_logger(f"channels.{self.kind.lower()}").bind(company_id=company_id, bank_code=bank_code)

    @property
    def breaker_key(self) -> str:
        return channel_key(self.company_id, self.bank_code)

    @abstractmethod
    async def deliver(self, filename: str, payload: bytes) -> None:
        """Upload one outbound document."""

    @abstractmethod
    async def list_pending(self, channel: InboundChannel, max_documents: int) -> list[InboundDocument]:
        """Return up to ``max_documents`` documents waiting on ``channel``."""

    async def mark_processed(self, document: InboundDocument) -> None:
        """Tell the bank side a document has been stored. No-op by default."""
        return None

    async def guarded(self, operation: str, call: Callable[[], Awaitable[T]], *, timeout: float | None = None) -> T:
        """Run ``call`` under the circuit breaker and a hard timeout."""
        allowed, reason = self.breaker.allow_call(self.breaker_key)
        if not allowed:
            raise ChannelIO(self.bank_code, operation, reason or "circuit_open")
        limit = float(timeout if timeout is not None else CHANNEL_SETTINGS["fetch_timeout_seconds"])
        try:
            result = await asyncio.wait_for(call(), timeout=limit)
        except ChannelIO as exc:
            self.breaker.record_failure(self.breaker_key, exc.cause)
            raise
        except asyncio.TimeoutError as exc:
            self.breaker.record_failure(self.breaker_key, "timeout")
            raise ChannelIO(self.bank_code, operation, f"timed out after {limit:.0f}s") from exc
        except (OSError, ConnectionError) as exc:
            self.breaker.record_failure(self.breaker_key, str(exc))
            raise ChannelIO(self.bank_code, operation, str(exc)) from exc
        self.breaker.record_success(self.breaker_key)
        return result


__all__ = ["BankTransport", "InboundDocument", "resolve_secret"]
