"""Bank-specific reason codes -> canonical status vocabulary.

Banks report outcomes in their own codes; the reconciler only understands
ACK, EXEC_OK, EXEC_FAIL and PENDING. Unknown codes fall back to the status
the caller supplies, unchanged.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bankconn.models.db import ReasonNormEntry, CanonicalStatus
from bankconn.utils import get_logger
from bankconn.utils.time import utc_now

logger = get_logger(__name__)


def lookup(session: Session, bank_code: str, raw_code: Optional[str]) -> ReasonNormEntry | None:
    if not raw_code:
        return None
    return session.get(ReasonNormEntry, (bank_code, raw_code.strip()))


def normalize(session: Session, bank_code: str, raw_code: Optional[str], fallback_status: str) -> str:
    entry = lookup(session, bank_code, raw_code)
    if entry is None:
        logger.debug("Reason code not mapped; using fallback", bank_code=bank_code, code=raw_code, fallback=fallback_status)
        return fallback_status
    return entry.norm_status.value


def normalized_label(session: Session, bank_code: str, raw_code: Optional[str]) -> Optional[str]:
    entry = lookup(session, bank_code, raw_code)
    return entry.norm_label if entry is not None else None


def upsert_reason_norm(
    session: Session,
    bank_code: str,
    code: str,
    norm_status: CanonicalStatus | str,
    norm_label: str,
) -> ReasonNormEntry:
    status = CanonicalStatus(norm_status)
    code = code.strip()
    entry = session.get(ReasonNormEntry, (bank_code, code))
    if entry is None:
        entry = ReasonNormEntry(bank_code=bank_code, code=code)
        session.add(entry)
    entry.norm_status = status
    entry.norm_label = norm_label
    entry.updated_at = utc_now()
    session.commit()
    session.refresh(entry)
    logger.info("Reason code mapping saved", bank_code=bank_code, code=code, norm_status=status.value)
    return entry


def list_reason_norms(session: Session, bank_code: Optional[str] = None) -> list[ReasonNormEntry]:
    stmt = select(ReasonNormEntry)
    if bank_code:
        stmt = stmt.where(ReasonNormEntry.bank_code == bank_code)
    return list(session.scalars(stmt.order_by(ReasonNormEntry.bank_code, ReasonNormEntry.code)))


__all__ = ["normalize", "normalized_label", "lookup", "upsert_reason_norm", "list_reason_norms"]
