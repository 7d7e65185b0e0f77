"""
Pydantic schemas for outbound dispatch requests and results.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from bankconn.models.db.enums import DispatchStatus

class DispatchRequest(BaseModel):
    run_id: str = Field(min_length=1)
    bank_code: str = Field(min_length=1)
    dry_run: bool = Field(False, description="Render and validate only; nothing is persisted")

class DispatchRead(BaseModel):
    id: Optional[str] = None
    run_id: str
    bank_code: str
    filename: str
    fingerprint: str
    status: DispatchStatus
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class DispatchResult(BaseModel):
    dispatch: DispatchRead
    replayed: bool = False
    dry_run: bool = False
    payload_preview: Optional[str] = Field(None, description="Rendered document, returned for dry runs only")

class DeliverRequest(BaseModel):
    limit: int = Field(10, ge=1, le=500)

class DeliverResult(BaseModel):
    sent: int
    failed: int
    errors: list[str] = Field(default_factory=list)
