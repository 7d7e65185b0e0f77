"""Append-only audit trail of connectivity jobs.

``log_job`` commits its own row so an entry survives a caller that rolls
back afterwards (a failed dispatch still leaves its audit record).
"""
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from bankconn.models.db import JobLogEntry, JobKind
from bankconn.utils import get_logger

logger = get_logger(__name__)

DEFAULT_LOG_LIMIT = 50
MAX_LOG_LIMIT = 500


def log_job(
    session: Session,
    company_id: str,
    bank_code: str,
    kind: JobKind,
    detail: str,
    payload: Optional[dict[str, Any]] = None,
    success: bool = True,
) -> JobLogEntry:
    entry = JobLogEntry(
        company_id=company_id,
        bank_code=bank_code,
        kind=kind,
        detail=detail,
        payload=payload,
        success=success,
    )
    session.add(entry)
    session.commit()
    log = logger.info if success else logger.warning
    log("Job audited", company_id=company_id, bank_code=bank_code, kind=kind.value, detail=detail, success=success)
    return entry


def get_job_logs(
    session: Session,
    company_id: str,
    bank_code: Optional[str] = None,
    kind: Optional[JobKind] = None,
    limit: int = DEFAULT_LOG_LIMIT,
) -> list[JobLogEntry]:
    limit = max(1, min(int(limit), MAX_LOG_LIMIT))
    stmt = select(JobLogEntry).where(JobLogEntry.company_id == company_id)
    if bank_code:
        stmt = stmt.where(JobLogEntry.bank_code == bank_code)
    if kind is not None:
        stmt = stmt.where(JobLogEntry.kind == kind)
    # id breaks timestamp ties deterministically
    stmt = stmt.order_by(JobLogEntry.created_at.desc(), JobLogEntry.id.desc()).limit(limit)
    return list(session.scalars(stmt))


__all__ = ["log_job", "get_job_logs", "DEFAULT_LOG_LIMIT"]
