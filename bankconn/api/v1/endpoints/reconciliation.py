"""
Acknowledgment reconciliation endpoint.
"""
import time
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from bankconn.api.deps import CallerContext, get_caller, get_db
from bankconn.models.schemas.base import ResponseBase
from bankconn.models.schemas.reconciliation import ApplyResultRead
from bankconn.services.ack_reconciler import apply
from bankconn.utils import get_logger, log_business_event, log_performance

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/reconcile",
    response_model=ResponseBase,
    summary="Apply pending bank acknowledgments to runs and lines"
)
async def reconcile_acks(
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ResponseBase:
    """Apply every unconsumed acknowledgment mapping for the company.

    Safe to call repeatedly: consumed mappings are never applied twice.
    """
    start_time = time.time()
    logger.info("Reconciliation triggered", company_id=caller.company_id, request_id=caller.request_id)

    result = apply(db, caller.company_id)
    data = ApplyResultRead(**result.as_dict())

    log_business_event(
        event_type="manual_reconciliation_triggered",
        details={"applied": data.applied, "skipped": data.skipped, "errors": len(data.errors)},
        company_id=caller.company_id,
        request_id=caller.request_id
    )
    log_performance(
        operation="reconcile_acks",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"applied": data.applied}
    )
    return ResponseBase(
        success=not data.errors,
        message=f"Applied {data.applied} mapping(s), skipped {data.skipped}",
        data=data.model_dump(mode="json"),
    )
