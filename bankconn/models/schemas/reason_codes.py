"""
Pydantic schemas for bank reason code normalisation entries.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from bankconn.models.db.enums import CanonicalStatus

class ReasonNormUpsert(BaseModel):
    bank_code: str = Field(min_length=1)
    code: str = Field(min_length=1)
    norm_status: CanonicalStatus
    norm_label: str = Field(min_length=1)

class ReasonNormRead(BaseModel):
    bank_code: str
    code: str
    norm_status: CanonicalStatus
    norm_label: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class ReasonNormList(BaseModel):
    entries: List[ReasonNormRead]
