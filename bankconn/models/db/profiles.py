from __future__ import annotations
"""SQLAlchemy model for per-company bank connectivity profiles."""
from datetime import datetime
from sqlalchemy import String, DateTime, Boolean, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from bankconn.database import Base
from .enums import ChannelKind

class ConnectivityProfile(Base):
    __tablename__ = "bank_conn_profiles"
    company_id: Mapped[str] = mapped_column(String, primary_key=True)
    bank_code: Mapped[str] = mapped_column(String, primary_key=True)
    kind: Mapped[ChannelKind] = mapped_column(Enum(ChannelKind), nullable=False)
    # Kind-specific parameters; validated against the kind before every write
    config: Mapped[dict] = mapped_column(JSON, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_by: Mapped[str] = mapped_column(String, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
