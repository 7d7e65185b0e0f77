from .enums import (
    ChannelKind,
    InboundChannel,
    RunStatus,
    LineStatus,
    DispatchStatus,
    CanonicalStatus,
    JobKind,
)
from .profiles import ConnectivityProfile
from .payment_runs import PaymentRun, PaymentLine
from .outbound_dispatches import OutboundDispatch
from .inbound_acks import InboundAcknowledgment, AckMapping
from .reason_codes import ReasonNormEntry
from .job_logs import JobLogEntry

__all__ = [
    "ChannelKind",
    "InboundChannel",
    "RunStatus",
    "LineStatus",
    "DispatchStatus",
    "CanonicalStatus",
    "JobKind",
    "ConnectivityProfile",
    "PaymentRun",
    "PaymentLine",
    "OutboundDispatch",
    "InboundAcknowledgment",
    "AckMapping",
    "ReasonNormEntry",
    "JobLogEntry",
]
