"""Dispatch an exported payment run to a bank, at most once per content.

Single public function ``dispatch(session, company_id, run_id, bank_code)``:
1. Loads the run (scoped to the company) and the active bank profile.
2. Renders the outbound document and fingerprints it.
3. Returns the existing outbox row when the same content was already
   dispatched to the same bank (a replay, no state change).
4. Requires the run to be EXPORTED.
5. Inserts a QUEUED outbox row and advances run and lines to DISPATCHED in
   one transaction. A concurrent caller losing the unique (run, fingerprint)
   race is answered as a replay, or refused when the winner went to
   another bank.

Every outcome is written to the job audit log. Transport happens later in
``outbox_delivery``; nothing here touches the network.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankconn.exceptions import ConnectivityError, IllegalTransition, RunNotFound
from bankconn.models.db import (
    DispatchStatus,
    JobKind,
    OutboundDispatch,
    PaymentRun,
    RunStatus,
)
from bankconn.services.job_log import log_job
from bankconn.services.outbound_builder import RenderedFile, render
from bankconn.services.profile_store import require_active_profile
from bankconn.services.state_machine import advance_selected_lines, transition_run
from bankconn.utils import get_logger, log_business_event, log_performance
from bankconn.utils.time import elapsed_ms

logger = get_logger(__name__)


@dataclass(slots=True)
class DispatchOutcome:
    dispatch: OutboundDispatch
    replayed: bool
    dry_run: bool
    rendered: RenderedFile


def _find_existing(session: Session, run_id: str, fingerprint: str) -> OutboundDispatch | None:
    return session.scalar(
        select(OutboundDispatch).where(
            OutboundDispatch.run_id == run_id,
            OutboundDispatch.fingerprint == fingerprint,
        )
    )


def _audit(
    session: Session,
    company_id: str,
    bank_code: str,
    detail: str,
    payload: dict[str, Any],
    success: bool = True,
) -> None:
    log_job(session, company_id, bank_code, JobKind.DISPATCH, detail, payload=payload, success=success)


def _replay(session: Session, company_id: str, bank_code: str, existing: OutboundDispatch, rendered: RenderedFile, actor: Optional[str]) -> DispatchOutcome:
    logger.info("Dispatch replayed", run_id=existing.run_id, bank_code=bank_code, dispatch_id=existing.id)
    _audit(
        session,
        company_id,
        bank_code,
        f"Replay of run {existing.run_id} returned existing dispatch {existing.id}",
        {"run_id": existing.run_id, "dispatch_id": existing.id, "fingerprint": existing.fingerprint, "replayed": True, "actor": actor},
    )
    return DispatchOutcome(dispatch=existing, replayed=True, dry_run=False, rendered=rendered)


def dispatch(
    session: Session,
    company_id: str,
    run_id: str,
    bank_code: str,
    dry_run: bool = False,
    actor: Optional[str] = None,
) -> DispatchOutcome:
    started = time.perf_counter()
    try:
        run = session.scalar(
            select(PaymentRun).where(PaymentRun.id == run_id, PaymentRun.company_id == company_id)
        )
        if run is None:
            raise RunNotFound(run_id)
        require_active_profile(session, company_id, bank_code)

        rendered = render(run, run.lines)

        existing = _find_existing(session, run.id, rendered.fingerprint)
        if existing is not None and existing.bank_code == bank_code:
            return _replay(session, company_id, bank_code, existing, rendered, actor)

        if run.status != RunStatus.EXPORTED:
            raise IllegalTransition("PaymentRun", run.id, RunStatus.EXPORTED.value, run.status.value)

        if dry_run:
            preview = OutboundDispatch(
                company_id=company_id,
                run_id=run.id,
                bank_code=bank_code,
                filename=rendered.filename,
                payload=rendered.payload,
                fingerprint=rendered.fingerprint,
                status=DispatchStatus.QUEUED,
                attempts=0,
            )
            _audit(
                session,
                company_id,
                bank_code,
                f"Dry run for run {run.id}: {rendered.filename}",
                {"run_id": run.id, "filename": rendered.filename, "fingerprint": rendered.fingerprint, "dry_run": True, "actor": actor},
            )
            return DispatchOutcome(dispatch=preview, replayed=False, dry_run=True, rendered=rendered)

        row = OutboundDispatch(
            company_id=company_id,
            run_id=run.id,
            bank_code=bank_code,
            filename=rendered.filename,
            payload=rendered.payload,
            fingerprint=rendered.fingerprint,
            status=DispatchStatus.QUEUED,
            attempts=0,
        )
        try:
            session.add(row)
            session.flush()
            transition_run(session, run.id, RunStatus.DISPATCHED, sources=[RunStatus.EXPORTED])
            lines_moved = advance_selected_lines(session, run.id)
            session.commit()
        except IntegrityError:
            # Another caller inserted the same (run, fingerprint) first
            session.rollback()
            existing = _find_existing(session, run_id, rendered.fingerprint)
            if existing is not None and existing.bank_code == bank_code:
                return _replay(session, company_id, bank_code, existing, rendered, actor)
            # Same content went to another bank; the run has left EXPORTED
            current = session.scalar(select(PaymentRun.status).where(PaymentRun.id == run_id))
            actual = current.value if current is not None else "MISSING"
            raise IllegalTransition("PaymentRun", run_id, RunStatus.EXPORTED.value, actual)
        except IllegalTransition:
            session.rollback()
            raise

        session.refresh(row)
        logger.info(
            "Dispatch queued",
            company_id=company_id,
            run_id=run.id,
            bank_code=bank_code,
            dispatch_id=row.id,
            filename=row.filename,
            lines=lines_moved,
        )
        _audit(
            session,
            company_id,
            bank_code,
            f"Queued {row.filename} for run {run.id}",
            {"run_id": run.id, "dispatch_id": row.id, "filename": row.filename, "fingerprint": row.fingerprint, "lines": lines_moved, "actor": actor},
        )
        log_business_event(
            "payment_run_dispatched",
            {"run_id": run.id, "bank_code": bank_code, "dispatch_id": row.id, "lines": lines_moved},
            company_id=company_id,
        )
        return DispatchOutcome(dispatch=row, replayed=False, dry_run=False, rendered=rendered)
    except ConnectivityError as exc:
        if session.in_transaction():
            session.rollback()
        logger.warning("Dispatch refused", company_id=company_id, run_id=run_id, bank_code=bank_code, error=exc.message)
        _audit(
            session,
            company_id,
            bank_code,
            f"Dispatch of run {run_id} refused: {exc.message}",
            {"run_id": run_id, "error_code": exc.error_code.value, "actor": actor},
            success=False,
        )
        raise
    finally:
        log_performance("dispatch", elapsed_ms(started), {"run_id": run_id, "bank_code": bank_code})


__all__ = ["DispatchOutcome", "dispatch"]
