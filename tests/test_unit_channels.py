import asyncio

import paramiko
import pytest

from bankconn.channels import ApiTransport, SftpTransport, resolve_secret, transport_for_profile
from bankconn.channels.sftp import HostKeyVerificationError, StrictHostKeyPolicy
from bankconn.exceptions import ChannelIO
from bankconn.models.db import ChannelKind, ConnectivityProfile
from bankconn.utils.circuit_breaker import CircuitBreaker, channel_key


def test_resolve_secret_env_and_file(monkeypatch, tmp_path):
    monkeypatch.setenv("BANK1_TOKEN", "s3cret")
    assert resolve_secret("env:BANK1_TOKEN") == "s3cret"
    assert resolve_secret("BANK1_TOKEN") == "s3cret"
    key_file = tmp_path / "key"
    key_file.write_text("material")
    assert resolve_secret(f"file:{key_file}") == "material"
    monkeypatch.delenv("BANK1_TOKEN")
    with pytest.raises(ValueError):
        resolve_secret("env:BANK1_TOKEN")


def test_transport_selected_by_profile_kind():
    api = ConnectivityProfile(company_id="co-1", bank_code="B1", kind=ChannelKind.API,
                              config={"api_base": "https://b1.test/", "auth_ref": "env:T"}, active=True, updated_by="t")
    sftp = ConnectivityProfile(company_id="co-1", bank_code="B2", kind=ChannelKind.SFTP,
                               config={"host": "h", "port": 22, "username": "u", "key_ref": "env:K",
                                       "in_dir": "/in/", "out_dir": "/out"}, active=True, updated_by="t")
    api_transport = transport_for_profile(api)
    sftp_transport = transport_for_profile(sftp)
    assert isinstance(api_transport, ApiTransport)
    assert api_transport.api_base == "https://b1.test"
    assert isinstance(sftp_transport, SftpTransport)
    assert sftp_transport.in_dir == "/in"


def test_host_key_policy_rejects_unknown_and_mismatched_keys():
    key = paramiko.RSAKey.generate(1024)
    fingerprint = StrictHostKeyPolicy.fingerprint(key)

    StrictHostKeyPolicy(fingerprint).missing_host_key(None, "sftp.bank.test", key)
    with pytest.raises(HostKeyVerificationError):
        StrictHostKeyPolicy(None).missing_host_key(None, "sftp.bank.test", key)
    with pytest.raises(HostKeyVerificationError):
        StrictHostKeyPolicy("SHA256:AAAA").missing_host_key(None, "sftp.bank.test", key)


def test_api_transport_missing_credential_is_channel_io():
    transport = ApiTransport("co-1", "B1", {"api_base": "https://b1.test", "auth_ref": "env:DEFINITELY_UNSET_TOKEN"},
                             breaker=CircuitBreaker())
    with pytest.raises(ChannelIO) as excinfo:
        asyncio.run(transport.deliver("f.xml", b"<x/>"))
    assert excinfo.value.retryable


def test_open_circuit_short_circuits_calls():
    breaker = CircuitBreaker()
    for _ in range(5):
        breaker.record_failure(channel_key("co-1", "B1"))
    transport = ApiTransport("co-1", "B1", {"api_base": "https://b1.test", "auth_ref": "env:T"}, breaker=breaker)
    with pytest.raises(ChannelIO) as excinfo:
        asyncio.run(transport.list_pending("pain002", 10))
    assert "circuit_open" in excinfo.value.message
