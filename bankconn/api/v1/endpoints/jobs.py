"""
Job audit log and background trigger endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from bankconn.api.deps import CallerContext, get_caller, get_db, get_queue
from bankconn.jobs.connectivity_job import ConnectivityJob, JobAction
from bankconn.jobs.queue import PriorityDelayQueue
from bankconn.models.db.enums import JobKind
from bankconn.models.schemas.base import ResponseBase
from bankconn.models.schemas.jobs import EnqueueRequest, JobLogList, JobLogRead
from bankconn.services.job_log import DEFAULT_LOG_LIMIT, get_job_logs
from bankconn.utils import get_logger
from bankconn.utils.observability import new_correlation_id

router = APIRouter()
logger = get_logger(__name__)

@router.get(
    "",
    response_model=JobLogList,
    summary="Get connectivity job audit entries, newest first"
)
async def list_job_logs(
    bank_code: Optional[str] = Query(None),
    kind: Optional[JobKind] = Query(None),
    limit: int = Query(DEFAULT_LOG_LIMIT, ge=1, le=500),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db)
) -> JobLogList:
    logs = get_job_logs(db, caller.company_id, bank_code=bank_code, kind=kind, limit=limit)
    return JobLogList(logs=[JobLogRead.model_validate(entry) for entry in logs])

@router.post(
    "/enqueue",
    response_model=ResponseBase,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Schedule a fetch, apply or deliver job on the background worker"
)
async def enqueue_job(
    body: EnqueueRequest,
    caller: CallerContext = Depends(get_caller),
    queue: PriorityDelayQueue = Depends(get_queue)
) -> ResponseBase:
    action = JobAction(body.action)
    if action == JobAction.FETCH and not body.bank_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="bank_code is required for FETCH jobs")
    job = ConnectivityJob(
        action=action,
        company_id=caller.company_id,
        bank_code=body.bank_code if action == JobAction.FETCH else None,
        channel=body.channel.value if body.channel and action == JobAction.FETCH else None,
        priority=body.priority,
        correlation_id=new_correlation_id(action.value.lower()),
    )
    item = queue.enqueue(job, priority=body.priority, delay_seconds=body.delay_seconds)
    coalesced = item is None
    logger.info(
        "Connectivity job enqueued",
        action=action.value,
        company_id=caller.company_id,
        bank_code=job.bank_code,
        coalesced=coalesced,
        request_id=caller.request_id
    )
    return ResponseBase(
        message="Identical job already pending" if coalesced else f"{action.value} job enqueued",
        data={
            "key": job.key(),
            "coalesced": coalesced,
            "correlation_id": job.correlation_id,
            "queue_depth": queue.depth(),
        },
    )
