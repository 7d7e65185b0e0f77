from __future__ import annotations
"""SQLAlchemy models for payment runs and their lines.

Runs arrive from the upstream approval/export step; this subsystem owns
their status from EXPORTED onwards and never touches monetary fields.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from sqlalchemy import String, Integer, Date, DateTime, Enum, ForeignKey, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .outbound_dispatches import OutboundDispatch
from sqlalchemy.sql import func
from bankconn.database import Base
from .enums import RunStatus, LineStatus

class PaymentRun(Base):
    __tablename__ = "payment_runs"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[RunStatus] = mapped_column(Enum(RunStatus), nullable=False, index=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    lines: Mapped[list["PaymentLine"]] = relationship(
        "PaymentLine", back_populates="run", order_by="PaymentLine.id"
    )
    dispatches: Mapped[list["OutboundDispatch"]] = relationship("OutboundDispatch", back_populates="run")

class PaymentLine(Base):
    __tablename__ = "payment_lines"
    __table_args__ = (UniqueConstraint("run_id", "invoice_id", name="uq_payment_line_run_invoice"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    run_id: Mapped[str] = mapped_column(String, ForeignKey("payment_runs.id"), nullable=False, index=True)
    supplier_id: Mapped[str] = mapped_column(String, nullable=False)
    invoice_id: Mapped[str] = mapped_column(String, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    pay_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    inv_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    pay_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # End-to-end reference echoed back by the bank; falls back to the line id
    bank_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[LineStatus] = mapped_column(Enum(LineStatus), default=LineStatus.SELECTED, nullable=False)

    run: Mapped[PaymentRun] = relationship("PaymentRun", back_populates="lines")
