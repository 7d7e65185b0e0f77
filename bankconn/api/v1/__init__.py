"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import profiles, dispatch, inbound, reconciliation, outbox, jobs, reason_codes, runs

api_router = APIRouter()

api_router.include_router(
    profiles.router,
    prefix="/bank/profiles",
    tags=["profiles"]
)

api_router.include_router(
    dispatch.router,
    prefix="/bank/dispatch",
    tags=["dispatch"]
)

api_router.include_router(
    inbound.router,
    prefix="/bank",
    tags=["inbound"]
)

api_router.include_router(
    reconciliation.router,
    prefix="/bank",
    tags=["reconciliation"]
)

api_router.include_router(
    outbox.router,
    prefix="/bank/outbox",
    tags=["outbox"]
)

api_router.include_router(
    jobs.router,
    prefix="/bank/jobs",
    tags=["jobs"]
)

api_router.include_router(
    reason_codes.router,
    prefix="/bank/reason-codes",
    tags=["reason-codes"]
)

api_router.include_router(
    runs.router,
    prefix="/bank/runs",
    tags=["runs"]
)
