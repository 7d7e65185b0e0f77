"""
Payment run status view.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from bankconn.api.deps import CallerContext, get_caller, get_db
from bankconn.exceptions import RunNotFound
from bankconn.models.db import PaymentRun
from bankconn.models.schemas.runs import PaymentRunRead

router = APIRouter()

@router.get(
    "/{run_id}",
    response_model=PaymentRunRead,
    summary="Run and line status with its dispatches"
)
async def get_run(
    run_id: str,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> PaymentRunRead:
    run = db.scalar(
        select(PaymentRun)
        .options(selectinload(PaymentRun.lines), selectinload(PaymentRun.dispatches))
        .where(PaymentRun.id == run_id, PaymentRun.company_id == caller.company_id)
    )
    if run is None:
        raise RunNotFound(run_id)
    return PaymentRunRead.model_validate(run)
