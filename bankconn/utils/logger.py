"""
Centralized logging configuration.

Console output is human readable; the optional file handler writes one JSON
object per line with every keyword passed to the logger as a top-level
field, so bank, company and run ids are searchable.
"""
import logging
import logging.config
import json
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path

ROOT_LOGGER = "bankconn"

# Third-party loggers and the floor applied to them
LIBRARY_LEVELS: Dict[str, str] = {
    "uvicorn": "INFO",
    "sqlalchemy.engine": "WARNING",
    "paramiko": "WARNING",
    "aiohttp": "WARNING",
}

class JSONFormatter(logging.Formatter):
    """One JSON object per record for the rotating file handler."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "thread": record.threadName,
        }
        context = getattr(record, "extra_data", None)
        if context:
            entry.update(context)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)

class StructuredLogger:
    """
    Wrapper around the standard logger taking keyword context:

        logger.info("Dispatch queued", run_id=run.id, bank_code="HSBC-MY")

    ``bind`` returns a logger that adds fixed context to every call.
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.context: Dict[str, Any] = dict(context or {})

    def bind(self, **context: Any) -> "StructuredLogger":
        return StructuredLogger(self.logger.name, {**self.context, **context})

    def _log(self, level: int, message: str, kwargs: Dict[str, Any]) -> None:
        if not self.logger.isEnabledFor(level):
            return
        exc_info = kwargs.pop("exc_info", False)
        data = {k: v for k, v in {**self.context, **kwargs}.items() if v is not None}
        self.logger.log(level, message, exc_info=exc_info, extra={"extra_data": data}, stacklevel=3)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    enable_console: bool = True
) -> None:
    """
    Configure the ``bankconn`` logger tree and the noisy libraries.

    Args:
        log_level: Level for service loggers and the root logger
        log_file: Path of a rotating JSON log; parent directories are created
        enable_console: Emit plain text lines on stdout
    """
    handlers: Dict[str, Dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "formatter": "standard",
            "level": log_level,
        }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "formatter": "json",
            "level": log_level,
        }
    names = list(handlers)

    loggers: Dict[str, Dict[str, Any]] = {
        ROOT_LOGGER: {"level": log_level, "handlers": names, "propagate": False},
    }
    for library, level in LIBRARY_LEVELS.items():
        loggers[library] = {"level": level, "handlers": names, "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter},
            "standard": {
                "format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"level": log_level, "handlers": names},
    })

def get_logger(name: str) -> StructuredLogger:
    """Structured logger under the ``bankconn`` namespace (``__name__`` is already inside it)."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return StructuredLogger(name)
    return StructuredLogger(f"{ROOT_LOGGER}.{name}")

def log_business_event(
    event_type: str,
    details: Dict[str, Any],
    company_id: Optional[str] = None,
    request_id: Optional[str] = None
) -> None:
    """
    Log a business event (dispatch queued, documents ingested, acks applied).

    The persisted job audit log is the system of record; this stream feeds
    log search.
    """
    get_logger("audit").info(
        f"Business event: {event_type}",
        event_type=event_type,
        company_id=company_id,
        request_id=request_id,
        **details
    )

def log_performance(
    operation: str,
    duration_ms: float,
    additional_data: Optional[Dict[str, Any]] = None
) -> None:
    """Log how long an operation (dispatch, fetch, reconcile pass) took."""
    get_logger("performance").info(
        f"Performance: {operation}",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        **(additional_data or {})
    )
