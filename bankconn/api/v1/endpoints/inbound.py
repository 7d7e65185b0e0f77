"""
Inbound acknowledgment fetch endpoint.
"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from bankconn.api.deps import CallerContext, get_caller, get_db, get_transport_factory
from bankconn.models.schemas.base import ErrorResponse, ResponseBase
from bankconn.models.schemas.inbound import FetchRequest, FetchResultRead
from bankconn.services.inbound_fetcher import fetch
from bankconn.services.outbox_delivery import TransportFactory
from bankconn.services.profile_store import require_active_profile
from bankconn.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/fetch",
    response_model=ResponseBase,
    summary="Pull pending status documents from a bank",
    responses={
        409: {"model": ErrorResponse, "description": "Bank profile missing or inactive"},
        502: {"model": ErrorResponse, "description": "Every requested channel failed"},
    }
)
async def fetch_acks(
    body: FetchRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
    transport_for: Optional[TransportFactory] = Depends(get_transport_factory)
) -> ResponseBase:
    logger.info(
        "Fetch requested",
        company_id=caller.company_id,
        bank_code=body.bank_code,
        channel=body.channel.value if body.channel else None,
        request_id=caller.request_id
    )
    transport = None
    if transport_for is not None:
        transport = transport_for(require_active_profile(db, caller.company_id, body.bank_code))
    result = await fetch(
        db,
        caller.company_id,
        body.bank_code,
        channel=body.channel,
        max_documents=body.max_documents,
        transport=transport,
    )
    data = FetchResultRead(**result.as_dict())
    return ResponseBase(
        success=not data.errors,
        message=f"Fetched {data.processed} new document(s), {data.duplicates} duplicate(s)",
        data=data.model_dump(mode="json"),
    )
