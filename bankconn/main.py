"""
Bank connectivity service entrypoint.

Builds the FastAPI app: the `/api/v1/bank` router, the connectivity queue and
its background worker, request-id tracking and the JSON error envelope shared
by every failure path.
"""
import os
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

import bankconn.database as database
import bankconn.models.db  # noqa: F401  registers tables on Base.metadata
from bankconn.api.v1 import api_router
from bankconn.config import ENABLE_CONNECTIVITY_WORKER
from bankconn.exceptions import ConnectivityError
from bankconn.jobs.worker import ConnectivityWorker, create_queue
from bankconn.utils import get_logger, setup_logging
from bankconn.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER, BreakerPhase
from bankconn.utils.observability import REQUEST_ID_HEADER, ensure_request_id

setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/bankconn.log"),
    enable_console=True
)

logger = get_logger(__name__)

SERVICE_NAME = "bank-connectivity"
SERVICE_VERSION = "1.0.0"
API_PREFIX = "/api/v1"

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, then own the connectivity queue and worker for the app's lifetime."""
    database.Base.metadata.create_all(bind=database.engine)
    queue = create_queue()
    app.state.connectivity_queue = queue  # type: ignore[attr-defined]
    worker: ConnectivityWorker | None = None
    if ENABLE_CONNECTIVITY_WORKER:
        worker = ConnectivityWorker(queue)
        worker.start()
    logger.info(
        "Bank connectivity service started",
        version=SERVICE_VERSION,
        worker_enabled=ENABLE_CONNECTIVITY_WORKER,
        database=database.engine.url.render_as_string(hide_password=True),
    )
    try:
        yield
    finally:
        if worker is not None:
            worker.stop()
        queue.shutdown()
        logger.info("Bank connectivity service stopped", pending_jobs=queue.depth())

app = FastAPI(
    title="Bank Connectivity Service",
    description="""
    Sends exported payment runs to banks and reconciles what the banks report back.

    * **Profiles** - one SFTP or API channel per company and bank
    * **Dispatch** - pain.001 files, replay-safe through a content-addressed outbox
    * **Fetch** - pain.002 / camt.054 status documents, stored once per content
    * **Reconcile** - bank statuses applied to runs and lines exactly once
    * **Jobs** - audit trail of every operation plus a background queue

    Every `/api/v1/bank` call needs `X-Company-ID`; `X-User-ID` is recorded as the actor.
    """,
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{API_PREFIX}/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"

def _request_fields(request: Request) -> dict[str, Any]:
    return {
        "request_id": _request_id(request),
        "method": request.method,
        "path": request.url.path,
        "company_id": request.headers.get("X-Company-ID"),
    }

def _error_response(request: Request, status_code: int, message: str, **extra: Any) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "message": message, **extra, "request_id": _request_id(request)}
    return JSONResponse(status_code=status_code, content=body)

@app.middleware("http")
async def request_context(request: Request, call_next):
    """Attach a request id, time the call and log both ends."""
    request.state.request_id = ensure_request_id(request.headers)
    started = time.perf_counter()
    logger.info(
        "Request started",
        client=request.client.host if request.client else "unknown",
        **_request_fields(request)
    )

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers[REQUEST_ID_HEADER] = request.state.request_id
    response.headers["X-Process-Time"] = str(elapsed_ms)
    response.headers["X-Content-Type-Options"] = "nosniff"
    logger.info(
        "Request completed",
        status_code=response.status_code,
        process_time_ms=elapsed_ms,
        **_request_fields(request)
    )
    return response

@app.exception_handler(ConnectivityError)
async def connectivity_error_handler(request: Request, exc: ConnectivityError):
    """Typed connectivity failures keep their stable error code and details."""
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "Connectivity operation failed",
        error_code=exc.error_code.value,
        error=exc.message,
        **_request_fields(request)
    )
    payload = exc.to_payload()
    return _error_response(
        request,
        exc.http_status,
        payload["message"],
        error_code=payload["error_code"],
        details=payload["details"],
    )

def _jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic error contexts may hold exception instances
    return [{k: (str(v) if k == "ctx" else v) for k, v in err.items() if k != "input"} for err in exc.errors()]

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = _jsonable_errors(exc)
    logger.warning("Request validation failed", errors=errors, **_request_fields(request))
    return _error_response(request, 422, "Request validation failed", details=errors)

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    logger.warning("HTTP error", status_code=exc.status_code, detail=exc.detail, **_request_fields(request))
    return _error_response(request, exc.status_code, str(exc.detail))

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
        **_request_fields(request)
    )
    return _error_response(request, 500, "Internal server error")

@app.get("/health", tags=["health"], summary="Liveness probe")
async def health_check():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "worker_enabled": ENABLE_CONNECTIVITY_WORKER,
    }

def _database_check() -> str:
    db = database.SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return "healthy"
    except Exception as e:
        logger.warning("Health check database probe failed", error=str(e))
        return f"unhealthy: {e}"
    finally:
        db.close()

@app.get("/health/detailed", tags=["health"], summary="Database, queue and bank channel status")
async def detailed_health_check():
    """Degraded when the database is unreachable or any bank channel circuit is open."""
    checks: dict[str, Any] = {"database": _database_check()}

    queue = getattr(app.state, "connectivity_queue", None)
    if queue is not None:
        snap = queue.snapshot()
        checks["queue"] = {k: snap[k] for k in ("depth", "ready", "scheduled", "coalesced")}

    channels = GLOBAL_CIRCUIT_BREAKER.snapshot()
    checks["channels"] = channels
    open_channels = sorted(key for key, state in channels.items() if state["state"] == BreakerPhase.OPEN.value)

    degraded = checks["database"] != "healthy" or bool(open_channels)
    return {
        "status": "degraded" if degraded else "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "open_channels": open_channels,
        "checks": checks,
    }

@app.get("/", tags=["root"])
async def root():
    return {
        "message": "Bank Connectivity Service API",
        "version": SERVICE_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": API_PREFIX,
    }

app.include_router(api_router, prefix=API_PREFIX)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bankconn.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() == "true",
        log_level="info",
    )
