"""
Pydantic schemas for acknowledgment reconciliation.
"""
from typing import List
from pydantic import BaseModel, Field

class ApplyResultRead(BaseModel):
    applied: int = Field(description="Mappings that changed or confirmed run/line state")
    skipped: int = Field(description="Mappings consumed without a state change (PENDING or unresolvable)")
    errors: List[str] = Field(default_factory=list)
