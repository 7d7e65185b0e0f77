"""
Pydantic schemas for the job audit log and queue triggers.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from bankconn.models.db.enums import JobKind, InboundChannel

class JobLogRead(BaseModel):
    id: str
    company_id: str
    bank_code: str
    kind: JobKind
    detail: str
    payload: Optional[Dict[str, Any]] = None
    success: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class JobLogList(BaseModel):
    logs: List[JobLogRead]

class EnqueueRequest(BaseModel):
    action: Literal["FETCH", "APPLY", "DELIVER"]
    bank_code: Optional[str] = Field(None, description="Required for FETCH")
    channel: Optional[InboundChannel] = None
    priority: Literal["high", "normal", "low"] = "normal"
    delay_seconds: float = Field(0.0, ge=0.0, le=86400.0)
