"""
Payment run dispatch endpoint.
"""
import time
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from bankconn.api.deps import CallerContext, get_caller, get_db
from bankconn.models.schemas.base import ErrorResponse, ResponseBase
from bankconn.models.schemas.dispatch import DispatchRead, DispatchRequest, DispatchResult
from bankconn.services.dispatcher import dispatch
from bankconn.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "",
    response_model=ResponseBase,
    status_code=status.HTTP_201_CREATED,
    summary="Dispatch an exported payment run to a bank",
    responses={
        404: {"model": ErrorResponse, "description": "Run not found for this company"},
        409: {"model": ErrorResponse, "description": "Run not EXPORTED or bank profile unavailable"},
    }
)
async def dispatch_run(
    body: DispatchRequest,
    response: Response,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ResponseBase:
    """Queue the run's payment file for its bank.

    Returns 201 when a new dispatch was queued and 200 for a replay of an
    identical earlier dispatch or a dry run.
    """
    start_time = time.time()
    logger.info(
        "Dispatch requested",
        company_id=caller.company_id,
        run_id=body.run_id,
        bank_code=body.bank_code,
        dry_run=body.dry_run,
        request_id=caller.request_id
    )

    outcome = dispatch(
        db,
        caller.company_id,
        body.run_id,
        body.bank_code,
        dry_run=body.dry_run,
        actor=caller.actor,
    )
    if outcome.replayed or outcome.dry_run:
        response.status_code = status.HTTP_200_OK

    result = DispatchResult(
        dispatch=DispatchRead.model_validate(outcome.dispatch),
        replayed=outcome.replayed,
        dry_run=outcome.dry_run,
        payload_preview=outcome.rendered.payload.decode("utf-8") if outcome.dry_run else None,
    )
    if outcome.replayed:
        message = "Run already dispatched; returning existing dispatch"
    elif outcome.dry_run:
        message = "Dry run rendered; nothing persisted"
    else:
        message = f"Dispatch queued as {outcome.dispatch.filename}"

    log_performance(
        operation="dispatch_run_endpoint",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"run_id": body.run_id, "replayed": outcome.replayed}
    )
    return ResponseBase(message=message, data=result.model_dump(mode="json"))
