"""
Pydantic schemas for the payment run status view.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from bankconn.models.db.enums import RunStatus, LineStatus
from .dispatch import DispatchRead

class PaymentLineRead(BaseModel):
    id: str
    supplier_id: str
    invoice_id: str
    due_date: date
    pay_amount: Decimal
    pay_currency: str
    status: LineStatus

    model_config = ConfigDict(from_attributes=True)

class PaymentRunRead(BaseModel):
    id: str
    company_id: str
    year: int
    month: int
    currency: str
    status: RunStatus
    acknowledged_at: Optional[datetime] = None
    failed_reason: Optional[str] = None
    lines: List[PaymentLineRead]
    dispatches: List[DispatchRead]

    model_config = ConfigDict(from_attributes=True)
