"""Send QUEUED outbox rows to their bank and track confirmation.

Rows are read, then the transaction is released before any upload. A
channel failure leaves the row QUEUED with ``attempts`` incremented and
``last_error`` recorded; the remaining rows for that bank are left for the
next pass so a down bank is not hammered within one batch.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bankconn.channels import BankTransport, transport_for_profile
from bankconn.config import OUTBOX_SETTINGS
from bankconn.exceptions import ChannelIO, IllegalTransition, ProfileUnavailable
from bankconn.models.db import ConnectivityProfile, DispatchStatus, JobKind, OutboundDispatch
from bankconn.services.job_log import log_job
from bankconn.services.profile_store import require_active_profile
from bankconn.utils import get_logger, log_business_event, log_performance
from bankconn.utils.time import elapsed_ms, utc_now

logger = get_logger(__name__)

TransportFactory = Callable[[ConnectivityProfile], BankTransport]


@dataclass(slots=True)
class DeliveryResult:
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"sent": self.sent, "failed": self.failed, "errors": list(self.errors)}


@dataclass(slots=True)
class _Pending:
    id: str
    run_id: str
    bank_code: str
    filename: str
    payload: bytes


def _record_failure(session: Session, company_id: str, item: _Pending, message: str) -> None:
    session.execute(
        update(OutboundDispatch)
        .where(OutboundDispatch.id == item.id, OutboundDispatch.status == DispatchStatus.QUEUED)
        .values(attempts=OutboundDispatch.attempts + 1, last_error=message)
    )
    session.commit()
    log_job(
        session,
        company_id,
        item.bank_code,
        JobKind.DELIVER,
        f"Delivery of {item.filename} failed: {message}",
        payload={"dispatch_id": item.id, "run_id": item.run_id},
        success=False,
    )


async def deliver_queued(
    session: Session,
    company_id: str,
    transport_for: Optional[TransportFactory] = None,
    limit: Optional[int] = None,
) -> DeliveryResult:
    started = time.perf_counter()
    transport_for = transport_for or transport_for_profile
    limit = int(limit or OUTBOX_SETTINGS["delivery_batch_size"])

    rows = session.scalars(
        select(OutboundDispatch)
        .where(OutboundDispatch.company_id == company_id, OutboundDispatch.status == DispatchStatus.QUEUED)
        .order_by(OutboundDispatch.created_at, OutboundDispatch.id)
        .limit(limit)
    ).all()
    pending = [_Pending(r.id, r.run_id, r.bank_code, r.filename, r.payload) for r in rows]

    result = DeliveryResult()
    transports: dict[str, BankTransport] = {}
    unavailable: dict[str, str] = {}
    for bank_code in sorted({p.bank_code for p in pending}):
        try:
            transports[bank_code] = transport_for(require_active_profile(session, company_id, bank_code))
        except ProfileUnavailable as exc:
            unavailable[bank_code] = exc.message
    session.commit()

    for item in pending:
        if item.bank_code in unavailable:
            result.errors.append(f"{item.filename}: {unavailable[item.bank_code]}")
            continue
        try:
            await transports[item.bank_code].deliver(item.filename, item.payload)
        except ChannelIO as exc:
            logger.warning("Outbox delivery failed", company_id=company_id, dispatch_id=item.id, bank_code=item.bank_code, error=exc.message)
            _record_failure(session, company_id, item, exc.message)
            result.failed += 1
            result.errors.append(f"{item.filename}: {exc.message}")
            unavailable[item.bank_code] = f"skipped after earlier failure for {item.bank_code}"
            continue

        session.execute(
            update(OutboundDispatch)
            .where(OutboundDispatch.id == item.id, OutboundDispatch.status == DispatchStatus.QUEUED)
            .values(status=DispatchStatus.SENT, sent_at=utc_now(), attempts=OutboundDispatch.attempts + 1, last_error=None)
        )
        session.commit()
        result.sent += 1
        logger.info("Outbox document delivered", company_id=company_id, dispatch_id=item.id, bank_code=item.bank_code, filename=item.filename)
        log_job(
            session,
            company_id,
            item.bank_code,
            JobKind.DELIVER,
            f"Delivered {item.filename}",
            payload={"dispatch_id": item.id, "run_id": item.run_id},
        )

    if result.sent:
        log_business_event("bank_files_delivered", result.as_dict(), company_id=company_id)
    log_performance("deliver_queued", elapsed_ms(started), {"company_id": company_id, "batch": len(pending)})
    return result


def confirm_dispatch(session: Session, company_id: str, dispatch_id: str) -> OutboundDispatch:
    """SENT -> CONFIRMED. Confirming twice returns the row unchanged."""
    session.execute(
        update(OutboundDispatch)
        .where(
            OutboundDispatch.id == dispatch_id,
            OutboundDispatch.company_id == company_id,
            OutboundDispatch.status == DispatchStatus.SENT,
        )
        .values(status=DispatchStatus.CONFIRMED, confirmed_at=utc_now())
    )
    session.commit()
    row = session.scalar(
        select(OutboundDispatch).where(OutboundDispatch.id == dispatch_id, OutboundDispatch.company_id == company_id)
    )
    if row is None:
        raise IllegalTransition("OutboundDispatch", dispatch_id, DispatchStatus.SENT.value, "MISSING")
    if row.status != DispatchStatus.CONFIRMED:
        raise IllegalTransition("OutboundDispatch", dispatch_id, DispatchStatus.SENT.value, row.status.value)
    return row


def confirm_sent_for_run(session: Session, run_id: str) -> int:
    """Confirm every SENT dispatch of a run once the bank reports on it. Does not commit."""
    result = session.execute(
        update(OutboundDispatch)
        .where(OutboundDispatch.run_id == run_id, OutboundDispatch.status == DispatchStatus.SENT)
        .values(status=DispatchStatus.CONFIRMED, confirmed_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


__all__ = ["DeliveryResult", "deliver_queued", "confirm_dispatch", "confirm_sent_for_run"]
