"""
Dependencies for database sessions, caller context and background plumbing.
"""
from dataclasses import dataclass
from typing import Generator, Optional
from fastapi import Header, HTTPException, Request, status
from sqlalchemy.orm import Session
from bankconn.database import SessionLocal
from bankconn.jobs.queue import PriorityDelayQueue
from bankconn.services.outbox_delivery import TransportFactory
from bankconn.utils import get_logger

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"

def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()

@dataclass(frozen=True)
class CallerContext:
    company_id: str
    actor: str
    request_id: str

def get_caller(
    request: Request,
    x_company_id: Optional[str] = Header(None, alias="X-Company-ID"),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> CallerContext:
    """Resolve the tenant and acting user from request headers.

    Every connectivity operation is company-scoped; a request without a
    company header is refused before any query runs.

    Raises:
        HTTPException: 400 if X-Company-ID is missing or blank
    """
    request_id = getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID", "unknown")
    company_id = (x_company_id or "").strip()
    if not company_id:
        logger.warning("Request rejected: missing company context", request_id=request_id, path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Company-ID header is required",
        )
    actor = (x_user_id or "").strip() or SYSTEM_ACTOR
    return CallerContext(company_id=company_id, actor=actor, request_id=request_id)

def get_queue(request: Request) -> PriorityDelayQueue:
    queue = getattr(request.app.state, "connectivity_queue", None)
    if queue is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Connectivity queue not available")
    return queue

def get_transport_factory() -> Optional[TransportFactory]:
    """Transport factory for channel I/O; None selects the profile's own transport.

    Overridden in tests to route channel calls to an in-memory bank.
    """
    return None
