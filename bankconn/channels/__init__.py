"""
Bank channel transports.
Selects the transport implementation for a connectivity profile.
"""
from bankconn.models.db import ConnectivityProfile, ChannelKind
from .base import BankTransport, InboundDocument, resolve_secret
from .sftp import SftpTransport
from .api import ApiTransport

_TRANSPORTS: dict[ChannelKind, type[BankTransport]] = {
    ChannelKind.SFTP: SftpTransport,
    ChannelKind.API: ApiTransport,
}


def transport_for_profile(profile: ConnectivityProfile) -> BankTransport:
    transport_cls = _TRANSPORTS[ChannelKind(profile.kind)]
    return transport_cls(profile.company_id, profile.bank_code, profile.config)  # type: ignore[call-arg]


__all__ = [
    "BankTransport",
    "InboundDocument",
    "resolve_secret",
    "SftpTransport",
    "ApiTransport",
    "transport_for_profile",
]
