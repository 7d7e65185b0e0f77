"""Typed failures for connectivity operations.

Each error carries a stable ``error_code`` and the HTTP status the API layer
renders it with. Validation and transition errors are caller bugs and are
never retried; ``ChannelIO`` is the only retryable failure.
"""
from __future__ import annotations

import enum
from typing import Any, Iterable


class ErrorCode(str, enum.Enum):
    CONFIG_VALIDATION = "CONFIG_VALIDATION"
    PROFILE_UNAVAILABLE = "PROFILE_UNAVAILABLE"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    RUN_NOT_FOUND = "RUN_NOT_FOUND"
    CHANNEL_IO = "CHANNEL_IO"
    PARSE_ERROR = "PARSE_ERROR"


class ConnectivityError(Exception):
    error_code: ErrorCode
    http_status: int = 400
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        return {}

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details(),
        }


class ConfigValidation(ConnectivityError):
    error_code = ErrorCode.CONFIG_VALIDATION
    http_status = 422

    def __init__(self, kind: str, missing_fields: Iterable[str], message: str | None = None):
        self.kind = kind
        self.missing_fields = sorted(missing_fields)
        super().__init__(
            message or f"{kind} config missing required fields: {', '.join(self.missing_fields)}"
        )

    def details(self) -> dict[str, Any]:
        return {"kind": self.kind, "missing_fields": self.missing_fields}


class ProfileUnavailable(ConnectivityError):
    error_code = ErrorCode.PROFILE_UNAVAILABLE
    http_status = 409

    def __init__(self, bank_code: str, reason: str = "not found or inactive"):
        self.bank_code = bank_code
        self.reason = reason
        super().__init__(f"Bank profile {reason}: {bank_code}")

    def details(self) -> dict[str, Any]:
        return {"bank_code": self.bank_code, "reason": self.reason}


class IllegalTransition(ConnectivityError):
    error_code = ErrorCode.ILLEGAL_TRANSITION
    http_status = 409

    def __init__(self, entity: str, entity_id: str, required: Iterable[str] | str, actual: str):
        self.entity = entity
        self.entity_id = entity_id
        self.required = [required] if isinstance(required, str) else sorted(required)
        self.actual = actual
        expected = " or ".join(f"'{r}'" for r in self.required)
        super().__init__(f"{entity} {entity_id} status must be {expected}, got '{actual}'")

    def details(self) -> dict[str, Any]:
        return {"entity": self.entity, "id": self.entity_id, "required": self.required, "actual": self.actual}


class RunNotFound(ConnectivityError):
    error_code = ErrorCode.RUN_NOT_FOUND
    http_status = 404

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Payment run not found: {run_id}")

    def details(self) -> dict[str, Any]:
        return {"run_id": self.run_id}


class ChannelIO(ConnectivityError):
    error_code = ErrorCode.CHANNEL_IO
    http_status = 502
    retryable = True

    def __init__(self, bank_code: str, operation: str, cause: str):
        self.bank_code = bank_code
        self.operation = operation
        self.cause = cause
        super().__init__(f"Bank channel {operation} failed for {bank_code}: {cause}")

    def details(self) -> dict[str, Any]:
        return {"bank_code": self.bank_code, "operation": self.operation, "cause": self.cause}


class ParseError(ConnectivityError):
    error_code = ErrorCode.PARSE_ERROR
    http_status = 422

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to parse {source}: {reason}")

    def details(self) -> dict[str, Any]:
        return {"source": self.source, "reason": self.reason}


__all__ = [
    "ErrorCode",
    "ConnectivityError",
    "ConfigValidation",
    "ProfileUnavailable",
    "IllegalTransition",
    "RunNotFound",
    "ChannelIO",
    "ParseError",
]
