from __future__ import annotations
"""SQLAlchemy model for per-bank reason code normalisation entries."""
from datetime import datetime
from sqlalchemy import String, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from bankconn.database import Base
from .enums import CanonicalStatus

class ReasonNormEntry(Base):
    __tablename__ = "bank_reason_norms"
    bank_code: Mapped[str] = mapped_column(String, primary_key=True)
    code: Mapped[str] = mapped_column(String, primary_key=True)
    norm_status: Mapped[CanonicalStatus] = mapped_column(Enum(CanonicalStatus), nullable=False)
    norm_label: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
