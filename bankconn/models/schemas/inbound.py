"""
Pydantic schemas for inbound acknowledgment fetches.
"""
from typing import List, Optional
from pydantic import BaseModel, Field

from bankconn.models.db.enums import InboundChannel

class FetchRequest(BaseModel):
    bank_code: str = Field(min_length=1)
    channel: Optional[InboundChannel] = Field(None, description="Document channel to poll; both when omitted")
    max_documents: Optional[int] = Field(None, ge=1, le=1000)

class FetchResultRead(BaseModel):
    processed: int
    duplicates: int
    mappings: int
    errors: List[str] = Field(default_factory=list)
