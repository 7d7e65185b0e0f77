"""
Outbox delivery endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from bankconn.api.deps import CallerContext, get_caller, get_db, get_transport_factory
from bankconn.models.schemas.base import ResponseBase
from bankconn.models.schemas.dispatch import DeliverRequest, DeliverResult, DispatchRead
from bankconn.services.outbox_delivery import TransportFactory, confirm_dispatch, deliver_queued
from bankconn.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/deliver",
    response_model=ResponseBase,
    summary="Send queued payment files to their banks"
)
async def deliver_outbox(
    body: Optional[DeliverRequest] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
    transport_for: Optional[TransportFactory] = Depends(get_transport_factory)
) -> ResponseBase:
    limit = body.limit if body is not None else None
    logger.info("Outbox delivery triggered", company_id=caller.company_id, limit=limit, request_id=caller.request_id)
    result = await deliver_queued(db, caller.company_id, transport_for=transport_for, limit=limit)
    data = DeliverResult(**result.as_dict())
    return ResponseBase(
        success=data.failed == 0,
        message=f"Delivered {data.sent} file(s), {data.failed} failed",
        data=data.model_dump(mode="json"),
    )

@router.post(
    "/{dispatch_id}/confirm",
    response_model=ResponseBase,
    summary="Record the bank's receipt of a sent file"
)
async def confirm_outbox_item(
    dispatch_id: str,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ResponseBase:
    row = confirm_dispatch(db, caller.company_id, dispatch_id)
    return ResponseBase(
        message=f"Dispatch {dispatch_id} confirmed",
        data=DispatchRead.model_validate(row).model_dump(mode="json"),
    )
