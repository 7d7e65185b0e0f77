"""Observability helpers (correlation IDs)."""
from __future__ import annotations
import uuid
from typing import Mapping

REQUEST_ID_HEADER = "X-Request-ID"

def ensure_request_id(headers: Mapping[str, str]) -> str:
    return headers.get(REQUEST_ID_HEADER, None) or str(uuid.uuid4())

def new_correlation_id(prefix: str) -> str:
    """Correlation id for work that does not originate from an HTTP request."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"

__all__ = ["ensure_request_id", "new_correlation_id", "REQUEST_ID_HEADER"]
