from __future__ import annotations
"""SQLAlchemy model for the outbound dispatch outbox."""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, Integer, DateTime, Enum, ForeignKey, LargeBinary, Text, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .payment_runs import PaymentRun
from bankconn.utils.time import utc_now
from bankconn.database import Base
from .enums import DispatchStatus

class OutboundDispatch(Base):
    __tablename__ = "outbound_dispatches"
    # Content-addressed: a second dispatch of identical content hits this constraint
    __table_args__ = (UniqueConstraint("run_id", "fingerprint", name="uq_outbound_run_fingerprint"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    run_id: Mapped[str] = mapped_column(String, ForeignKey("payment_runs.id"), nullable=False, index=True)
    bank_code: Mapped[str] = mapped_column(String, nullable=False)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[DispatchStatus] = mapped_column(Enum(DispatchStatus), default=DispatchStatus.QUEUED, nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    run: Mapped["PaymentRun"] = relationship("PaymentRun", back_populates="dispatches")
