"""Run and line status transition tables.

Transitions are applied with conditional UPDATEs (``WHERE status = <from>``)
so two writers racing on the same row cannot both win; the loser sees a
rowcount of 0 and reports an IllegalTransition against the fresh status.
"""
from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bankconn.exceptions import IllegalTransition
from bankconn.models.db import PaymentRun, PaymentLine, RunStatus, LineStatus

RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.EXPORTED: frozenset({RunStatus.DISPATCHED}),
    RunStatus.DISPATCHED: frozenset({RunStatus.ACKNOWLEDGED, RunStatus.EXECUTED, RunStatus.FAILED}),
    RunStatus.ACKNOWLEDGED: frozenset({RunStatus.EXECUTED, RunStatus.FAILED}),
}

LINE_TRANSITIONS: dict[LineStatus, frozenset[LineStatus]] = {
    LineStatus.SELECTED: frozenset({LineStatus.DISPATCHED, LineStatus.PAID, LineStatus.FAILED}),
    LineStatus.DISPATCHED: frozenset({LineStatus.PAID, LineStatus.FAILED}),
}


def run_sources(target: RunStatus) -> list[RunStatus]:
    """Statuses a run may be in to move to ``target``."""
    return sorted((src for src, dests in RUN_TRANSITIONS.items() if target in dests), key=lambda s: s.value)


def line_sources(target: LineStatus) -> list[LineStatus]:
    return sorted((src for src, dests in LINE_TRANSITIONS.items() if target in dests), key=lambda s: s.value)


def can_transition_run(current: RunStatus, target: RunStatus) -> bool:
    return target in RUN_TRANSITIONS.get(current, frozenset())


def can_transition_line(current: LineStatus, target: LineStatus) -> bool:
    return target in LINE_TRANSITIONS.get(current, frozenset())


def _current_run_status(session: Session, run_id: str) -> str:
    status = session.scalar(select(PaymentRun.status).where(PaymentRun.id == run_id))
    return status.value if status is not None else "MISSING"


def transition_run(
    session: Session,
    run_id: str,
    target: RunStatus,
    *,
    sources: Iterable[RunStatus] | None = None,
    **values: Any,
) -> None:
    """Move a run to ``target`` from any allowed source, or raise IllegalTransition.

    ``sources`` narrows the legal origins further (dispatch only accepts
    EXPORTED). Extra keyword values are written in the same UPDATE. Does not
    commit.
    """
    allowed = set(run_sources(target))
    if sources is not None:
        allowed &= set(sources)
    result = session.execute(
        update(PaymentRun)
        .where(PaymentRun.id == run_id, PaymentRun.status.in_(allowed))
        .values(status=target, **values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise IllegalTransition(
            "PaymentRun",
            run_id,
            [s.value for s in allowed],
            _current_run_status(session, run_id),
        )


def transition_line(session: Session, line: PaymentLine, target: LineStatus) -> bool:
    """Move one line to ``target``.

    Returns False when the line is already there (a duplicate report), raises
    IllegalTransition when the move would go backwards. Does not commit.
    """
    if line.status == target:
        return False
    sources = line_sources(target)
    result = session.execute(
        update(PaymentLine)
        .where(PaymentLine.id == line.id, PaymentLine.status.in_(sources))
        .values(status=target)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        session.refresh(line)
        if line.status == target:
            return False
        raise IllegalTransition("PaymentLine", line.id, [s.value for s in sources], line.status.value)
    return True


def advance_selected_lines(session: Session, run_id: str) -> int:
    """SELECTED -> DISPATCHED for every line of a run; returns rows moved."""
    result = session.execute(
        update(PaymentLine)
        .where(PaymentLine.run_id == run_id, PaymentLine.status == LineStatus.SELECTED)
        .values(status=LineStatus.DISPATCHED)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


__all__ = [
    "RUN_TRANSITIONS",
    "LINE_TRANSITIONS",
    "run_sources",
    "line_sources",
    "can_transition_run",
    "can_transition_line",
    "transition_run",
    "transition_line",
    "advance_selected_lines",
]
