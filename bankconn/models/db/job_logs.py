from __future__ import annotations
"""SQLAlchemy model for the append-only connectivity job audit log."""
import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, Boolean, Enum, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column
from bankconn.database import Base
from bankconn.utils.time import utc_now
from .enums import JobKind

class JobLogEntry(Base):
    __tablename__ = "bank_job_logs"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    bank_code: Mapped[str] = mapped_column(String, nullable=False, index=True)
    kind: Mapped[JobKind] = mapped_column(Enum(JobKind), nullable=False, index=True)
    detail: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
