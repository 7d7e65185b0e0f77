from .base import ResponseBase, ErrorResponse
from .profiles import (
    SftpConfig,
    ApiConfig,
    ProfileConfig,
    REQUIRED_CONFIG_FIELDS,
    ProfileUpsert,
    ProfileRead,
    ProfileList,
)
from .dispatch import DispatchRequest, DispatchRead, DispatchResult, DeliverRequest, DeliverResult
from .inbound import FetchRequest, FetchResultRead
from .reconciliation import ApplyResultRead
from .jobs import JobLogRead, JobLogList, EnqueueRequest
from .reason_codes import ReasonNormUpsert, ReasonNormRead, ReasonNormList
from .runs import PaymentLineRead, PaymentRunRead

__all__ = [
    # Base
    "ResponseBase",
    "ErrorResponse",

    # Profiles
    "SftpConfig",
    "ApiConfig",
    "ProfileConfig",
    "REQUIRED_CONFIG_FIELDS",
    "ProfileUpsert",
    "ProfileRead",
    "ProfileList",

    # Dispatch / outbox
    "DispatchRequest",
    "DispatchRead",
    "DispatchResult",
    "DeliverRequest",
    "DeliverResult",

    # Inbound + reconciliation
    "FetchRequest",
    "FetchResultRead",
    "ApplyResultRead",

    # Jobs
    "JobLogRead",
    "JobLogList",
    "EnqueueRequest",

    # Reason codes
    "ReasonNormUpsert",
    "ReasonNormRead",
    "ReasonNormList",

    # Runs
    "PaymentLineRead",
    "PaymentRunRead",
]
