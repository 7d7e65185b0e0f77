"""Apply parsed bank acknowledgments to payment runs and lines.

Single public function ``apply(session, company_id)`` walks every
unconsumed mapping of the company in arrival order. Each mapping is claimed
with a conditional ``consumed_at IS NULL`` update and applied in its own
transaction, so a second pass (or a concurrent one) never applies it again.

Status semantics:
* ACK        stamps ``acknowledged_at`` once (first receipt wins).
* PENDING    recorded, no state change.
* EXEC_OK    marks the line PAID; the run becomes EXECUTED once every line
             is paid, otherwise a DISPATCHED run moves to ACKNOWLEDGED.
* EXEC_FAIL  marks the line FAILED (a paid line stays paid) and fails the
             whole run with the bank's reason; an already failed run keeps
             its first reason.

Mappings that cannot be applied (unknown run or line, illegal transition)
are consumed with ``apply_error`` set and reported, never retried.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from bankconn.exceptions import IllegalTransition
from bankconn.models.db import (
    AckMapping,
    CanonicalStatus,
    InboundAcknowledgment,
    JobKind,
    LineStatus,
    PaymentLine,
    PaymentRun,
    RunStatus,
)
from bankconn.services.job_log import log_job
from bankconn.services.outbox_delivery import confirm_sent_for_run
from bankconn.services.reason_normalizer import normalize, normalized_label
from bankconn.services.state_machine import transition_line, transition_run
from bankconn.utils import get_logger, log_business_event, log_performance
from bankconn.utils.time import elapsed_ms, utc_now

logger = get_logger(__name__)

DEFAULT_FAILURE_REASON = "Bank rejection"

# Run statuses in which the bank can meaningfully report on a run
_REPORTABLE = frozenset({RunStatus.DISPATCHED, RunStatus.ACKNOWLEDGED, RunStatus.EXECUTED, RunStatus.FAILED})
_TERMINAL_LINES = frozenset({LineStatus.PAID, LineStatus.FAILED})


class MappingUnresolvable(Exception):
    """The mapping references something that does not exist for this company."""


@dataclass(slots=True)
class ApplyResult:
    applied: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"applied": self.applied, "skipped": self.skipped, "errors": list(self.errors)}


def _pending_mappings(session: Session, company_id: str) -> list[tuple[str, str]]:
    stmt = (
        select(AckMapping.id, InboundAcknowledgment.bank_code)
        .join(InboundAcknowledgment, AckMapping.ack_id == InboundAcknowledgment.id)
        .where(InboundAcknowledgment.company_id == company_id, AckMapping.consumed_at.is_(None))
        .order_by(InboundAcknowledgment.received_at, InboundAcknowledgment.id, AckMapping.seq)
    )
    return [(row[0], row[1]) for row in session.execute(stmt)]


def _claim(session: Session, mapping_id: str, now: datetime, apply_error: Optional[str] = None) -> bool:
    values: dict = {"consumed_at": now}
    if apply_error is not None:
        values["apply_error"] = apply_error
    result = session.execute(
        update(AckMapping)
        .where(AckMapping.id == mapping_id, AckMapping.consumed_at.is_(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def resolve_status(session: Session, bank_code: str, mapping: AckMapping) -> CanonicalStatus:
    """Canonical status for a mapping; raw bank codes go through the normalizer."""
    status = CanonicalStatus.parse(mapping.status)
    if status is not None:
        return status
    # Reason code wins, then the raw status code, then ACK
    fallback = normalize(session, bank_code, mapping.status, CanonicalStatus.ACK.value)
    normalized = normalize(session, bank_code, mapping.reason_code, fallback)
    return CanonicalStatus.parse(normalized) or CanonicalStatus.ACK


def failure_reason(session: Session, bank_code: str, mapping: AckMapping) -> str:
    """Label for a rejection: the bank's own text, then the mapped label of the reason or status code."""
    if mapping.reason_label:
        return mapping.reason_label
    for code in (mapping.reason_code, mapping.status):
        label = normalized_label(session, bank_code, code)
        if label:
            return label
    return DEFAULT_FAILURE_REASON


def _stamp_ack(now: datetime) -> dict:
    return {"acknowledged_at": func.coalesce(PaymentRun.acknowledged_at, now)}


def _find_line(session: Session, run_id: str, ref: str) -> PaymentLine | None:
    return session.scalar(
        select(PaymentLine)
        .where(PaymentLine.run_id == run_id, or_(PaymentLine.id == ref, PaymentLine.bank_ref == ref))
        .order_by(PaymentLine.id)
        .limit(1)
    )


def _apply_exec_ok(session: Session, run: PaymentRun, line: PaymentLine, now: datetime) -> None:
    transition_line(session, line, LineStatus.PAID)
    if run.status not in (RunStatus.DISPATCHED, RunStatus.ACKNOWLEDGED):
        return
    unpaid = session.scalar(
        select(func.count(PaymentLine.id)).where(PaymentLine.run_id == run.id, PaymentLine.status != LineStatus.PAID)
    )
    if not unpaid:
        transition_run(session, run.id, RunStatus.EXECUTED, **_stamp_ack(now))
    elif run.status == RunStatus.DISPATCHED:
        # Execution of any line implies the bank received the file
        transition_run(session, run.id, RunStatus.ACKNOWLEDGED, **_stamp_ack(now))
    else:
        session.execute(update(PaymentRun).where(PaymentRun.id == run.id).values(**_stamp_ack(now)))


def _apply_exec_fail(session: Session, bank_code: str, run: PaymentRun, line: PaymentLine | None, mapping: AckMapping) -> None:
    if run.status == RunStatus.EXECUTED:
        raise IllegalTransition("PaymentRun", run.id, [RunStatus.DISPATCHED.value, RunStatus.ACKNOWLEDGED.value], run.status.value)
    # Lines never go backwards; a return on a paid line still fails the run
    if line is not None and line.status not in _TERMINAL_LINES:
        transition_line(session, line, LineStatus.FAILED)
    if run.status == RunStatus.FAILED:
        return
    transition_run(session, run.id, RunStatus.FAILED, failed_reason=failure_reason(session, bank_code, mapping))


def _apply_mapping(session: Session, company_id: str, bank_code: str, mapping: AckMapping, now: datetime) -> bool:
    """Apply one claimed mapping; returns False when it caused no state change."""
    run = session.scalar(select(PaymentRun).where(PaymentRun.id == mapping.run_id, PaymentRun.company_id == company_id))
    if run is None:
        raise MappingUnresolvable(f"run {mapping.run_id} not found")

    line: PaymentLine | None = None
    if mapping.line_id:
        line = _find_line(session, run.id, mapping.line_id)
        if line is None:
            raise MappingUnresolvable(f"line {mapping.line_id} not in run {run.id}")

    status = resolve_status(session, bank_code, mapping)
    if status == CanonicalStatus.PENDING:
        return False
    if run.status not in _REPORTABLE:
        raise IllegalTransition("PaymentRun", run.id, sorted(s.value for s in _REPORTABLE), run.status.value)

    if status == CanonicalStatus.ACK:
        session.execute(update(PaymentRun).where(PaymentRun.id == run.id).values(**_stamp_ack(now)))
    elif status == CanonicalStatus.EXEC_OK:
        if line is None:
            raise MappingUnresolvable(f"EXEC_OK for run {run.id} carries no line reference")
        _apply_exec_ok(session, run, line, now)
    else:
        _apply_exec_fail(session, bank_code, run, line, mapping)
    # Any report on the run proves the bank holds the file
    confirm_sent_for_run(session, run.id)
    return True


def apply(session: Session, company_id: str) -> ApplyResult:
    started = time.perf_counter()
    pending = _pending_mappings(session, company_id)
    session.commit()

    result = ApplyResult()
    banks: set[str] = set()
    for mapping_id, bank_code in pending:
        banks.add(bank_code)
        now = utc_now()
        if not _claim(session, mapping_id, now):
            # Consumed by a concurrent pass
            session.rollback()
            continue
        mapping = session.get(AckMapping, mapping_id)
        try:
            changed = _apply_mapping(session, company_id, bank_code, mapping, now)
            session.commit()
        except (MappingUnresolvable, IllegalTransition) as exc:
            session.rollback()
            message = exc.message if isinstance(exc, IllegalTransition) else str(exc)
            _claim(session, mapping_id, now, apply_error=message)
            session.commit()
            logger.warning("Ack mapping skipped", company_id=company_id, mapping_id=mapping_id, run_id=mapping.run_id, error=message)
            result.skipped += 1
            result.errors.append(f"mapping {mapping_id}: {message}")
            continue
        if changed:
            result.applied += 1
            logger.info("Ack mapping applied", company_id=company_id, mapping_id=mapping_id, run_id=mapping.run_id, line_id=mapping.line_id, status=mapping.status)
        else:
            result.skipped += 1

    audit_bank = next(iter(banks)) if len(banks) == 1 else "*"
    log_job(
        session,
        company_id,
        audit_bank,
        JobKind.RECONCILE,
        f"Applied {result.applied}, skipped {result.skipped} mapping(s)",
        payload=result.as_dict(),
        success=not result.errors,
    )
    if result.applied:
        log_business_event("bank_acks_applied", result.as_dict(), company_id=company_id)
    log_performance("apply_acks", elapsed_ms(started), {"company_id": company_id, "mappings": len(pending)})
    return result


__all__ = ["ApplyResult", "apply", "resolve_status", "failure_reason", "DEFAULT_FAILURE_REASON"]
