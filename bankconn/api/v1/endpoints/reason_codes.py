"""
Bank reason code normalisation endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from bankconn.api.deps import CallerContext, get_caller, get_db
from bankconn.models.schemas.base import ResponseBase
from bankconn.models.schemas.reason_codes import ReasonNormList, ReasonNormRead, ReasonNormUpsert
from bankconn.services.reason_normalizer import list_reason_norms, upsert_reason_norm
from bankconn.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "",
    response_model=ResponseBase,
    status_code=status.HTTP_201_CREATED,
    summary="Map a bank reason code to a canonical status"
)
async def upsert_reason_code(
    body: ReasonNormUpsert,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ResponseBase:
    logger.info(
        "Reason code mapping requested",
        bank_code=body.bank_code,
        code=body.code,
        norm_status=body.norm_status.value,
        actor=caller.actor,
        request_id=caller.request_id
    )
    entry = upsert_reason_norm(db, body.bank_code, body.code, body.norm_status, body.norm_label)
    return ResponseBase(
        message=f"{entry.bank_code}/{entry.code} -> {entry.norm_status.value}",
        data=ReasonNormRead.model_validate(entry).model_dump(mode="json"),
    )

@router.get(
    "",
    response_model=ReasonNormList,
    summary="List reason code mappings"
)
async def list_reason_codes(
    bank_code: Optional[str] = Query(None),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> ReasonNormList:
    return ReasonNormList(entries=[ReasonNormRead.model_validate(e) for e in list_reason_norms(db, bank_code)])
