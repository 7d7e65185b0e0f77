from __future__ import annotations
"""SQLAlchemy models for ingested bank documents and the mappings parsed from them."""
import uuid
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, Enum, ForeignKey, LargeBinary, Text, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from bankconn.database import Base
from bankconn.utils.time import utc_now
from .enums import InboundChannel

class InboundAcknowledgment(Base):
    __tablename__ = "inbound_acks"
    # Same physical file fetched twice has the same fingerprint -> second insert refused
    __table_args__ = (UniqueConstraint("company_id", "bank_code", "fingerprint", name="uq_inbound_ack_fingerprint"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    bank_code: Mapped[str] = mapped_column(String, nullable=False)
    channel: Mapped[InboundChannel] = mapped_column(Enum(InboundChannel), nullable=False)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)

    mappings: Mapped[list["AckMapping"]] = relationship("AckMapping", back_populates="ack")

class AckMapping(Base):
    __tablename__ = "ack_mappings"
    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    ack_id: Mapped[str] = mapped_column(String, ForeignKey("inbound_acks.id"), nullable=False, index=True)
    # Position within the source document; mappings apply in document order
    seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    run_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    line_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Canonical status when the parser recognised the code, otherwise the raw code
    status: Mapped[str] = mapped_column(String, nullable=False)
    reason_code: Mapped[str | None] = mapped_column(String, nullable=True)
    reason_label: Mapped[str | None] = mapped_column(Text, nullable=True)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    apply_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    ack: Mapped[InboundAcknowledgment] = relationship("InboundAcknowledgment", back_populates="mappings")
