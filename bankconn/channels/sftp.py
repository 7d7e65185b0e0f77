"""SFTP bank channel (paramiko).

Paramiko is blocking, so every operation runs in the default executor and a
fresh SSH session is opened per operation. Host keys are verified against the
fingerprint stored in the profile; unknown keys are rejected.

Directory layout on the bank side:
  out_dir/                  payment files we upload (written as .part, then renamed)
  in_dir/<channel>/         status files per channel, or
  in_dir/*<channel>*        status files named after their channel
  .../processed/            where retrieved files are moved afterwards
"""
from __future__ import annotations

import asyncio
import base64
import fnmatch
import hashlib
import hmac
import io
import posixpath
import stat
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

import paramiko
from paramiko import SFTPClient, SSHClient
from paramiko.ssh_exception import SSHException

from bankconn.config import CHANNEL_SETTINGS
from bankconn.exceptions import ChannelIO
from bankconn.models.db import InboundChannel
from bankconn.utils.circuit_breaker import CircuitBreaker

from .base import BankTransport, InboundDocument, resolve_secret


class HostKeyVerificationError(SSHException):
    """Server host key did not match the configured fingerprint."""


class StrictHostKeyPolicy(paramiko.MissingHostKeyPolicy):
    def __init__(self, expected_fingerprint: str | None):
        self.expected_fingerprint = expected_fingerprint

    @staticmethod
    def fingerprint(key: paramiko.PKey) -> str:
        digest = hashlib.sha256(key.asbytes()).digest()
        return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")

    @staticmethod
    def _normalise(value: str) -> str:
        value = value.strip()
        if value.upper().startswith("SHA256:"):
            value = value[7:]
        return value.replace(":", "").replace(" ", "")

    def missing_host_key(self, client: SSHClient, hostname: str, key: paramiko.PKey) -> None:
        actual = self.fingerprint(key)
        if not self.expected_fingerprint:
            raise HostKeyVerificationError(
                f"no host key fingerprint configured for {hostname}; server presented {key.get_name()} {actual}"
            )
        if not hmac.compare_digest(self._normalise(self.expected_fingerprint), self._normalise(actual)):
            raise HostKeyVerificationError(
                f"host key mismatch for {hostname}: expected {self.expected_fingerprint}, got {actual}"
            )


def _load_private_key(material: str) -> paramiko.PKey:
    for key_class in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
        try:
            return key_class.from_private_key(io.StringIO(material))
        except (SSHException, ValueError):
            continue
    raise ValueError("unsupported private key type")


class SftpTransport(BankTransport):
    kind = "SFTP"

    def __init__(self, company_id: str, bank_code: str, config: Mapping[str, Any], *, breaker: CircuitBreaker | None = None):
        super().__init__(company_id, bank_code, breaker=breaker)
        self.host = str(config["host"])
        self.port = int(config["port"])
        self.username = str(config["username"])
        self.key_ref = str(config["key_ref"])
        self.in_dir = str(config["in_dir"]).rstrip("/") or "/"
        self.out_dir = str(config["out_dir"]).rstrip("/") or "/"
        self.host_key_fingerprint = config.get("host_key_fingerprint")
        self.archive_dir = str(CHANNEL_SETTINGS["sftp_archive_dir"])

    # ----------------------------- connection ----------------------------- #
    @contextmanager
    def _sftp(self, operation: str) -> Iterator[SFTPClient]:
        client = SSHClient()
        client.set_missing_host_key_policy(StrictHostKeyPolicy(self.host_key_fingerprint))
        try:
            pkey = _load_private_key(resolve_secret(self.key_ref))
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=pkey,
                timeout=float(CHANNEL_SETTINGS["connect_timeout_seconds"]),
                banner_timeout=float(CHANNEL_SETTINGS["connect_timeout_seconds"]),
                auth_timeout=float(CHANNEL_SETTINGS["connect_timeout_seconds"]),
                allow_agent=False,
                look_for_keys=False,
            )
            sftp = client.open_sftp()
            sftp.get_channel().settimeout(float(CHANNEL_SETTINGS["read_timeout_seconds"]))
        except (SSHException, ValueError, OSError) as exc:
            client.close()
            self.logger.warning("SFTP connect failed", host=self.host, error=str(exc))
            raise ChannelIO(self.bank_code, operation, str(exc)) from exc
        try:
            yield sftp
        except SSHException as exc:
            raise ChannelIO(self.bank_code, operation, str(exc)) from exc
        finally:
            sftp.close()
            client.close()

    async def _run(self, operation: str, fn, *args):
        loop = asyncio.get_running_loop()
        return await self.guarded(operation, lambda: loop.run_in_executor(None, fn, *args))

    # ----------------------------- outbound ----------------------------- #
    def _deliver_sync(self, filename: str, payload: bytes) -> None:
        target = posixpath.join(self.out_dir, filename)
        partial = target + ".part"
        with self._sftp("deliver") as sftp:
            sftp.putfo(io.BytesIO(payload), partial, file_size=len(payload), confirm=True)
            sftp.posix_rename(partial, target)
        self.logger.info("SFTP upload complete", path=target, size=len(payload))

    async def deliver(self, filename: str, payload: bytes) -> None:
        await self._run("deliver", self._deliver_sync, filename, payload)

    # ----------------------------- inbound ----------------------------- #
    def _source_dir(self, sftp: SFTPClient, channel: InboundChannel) -> tuple[str, str]:
        """(directory, glob) to list for ``channel``."""
        sub = posixpath.join(self.in_dir, channel.value)
        try:
            if stat.S_ISDIR(sftp.stat(sub).st_mode or 0):
                return sub, "*"
        except FileNotFoundError:
            pass
        return self.in_dir, f"*{channel.value}*"

    def _list_pending_sync(self, channel: InboundChannel, max_documents: int) -> list[InboundDocument]:
        documents: list[InboundDocument] = []
        with self._sftp("list_pending") as sftp:
            directory, pattern = self._source_dir(sftp, channel)
            entries = [
                attr for attr in sftp.listdir_attr(directory)
                if not stat.S_ISDIR(attr.st_mode or 0)
                and not attr.filename.endswith(".part")
                and fnmatch.fnmatch(attr.filename.lower(), pattern.lower())
            ]
            # Oldest first so status reports are applied in the order the bank wrote them
            entries.sort(key=lambda a: (a.st_mtime or 0, a.filename))
            for attr in entries[:max_documents]:
                path = posixpath.join(directory, attr.filename)
                with sftp.open(path, "rb") as fh:
                    payload = fh.read()
                documents.append(InboundDocument(channel=channel, filename=attr.filename, payload=payload, remote_ref=path))
        self.logger.info("SFTP listing complete", channel=channel.value, count=len(documents))
        return documents

    async def list_pending(self, channel: InboundChannel, max_documents: int) -> list[InboundDocument]:
        return await self._run("list_pending", self._list_pending_sync, InboundChannel(channel), max_documents)

    def _archive_sync(self, remote_path: str) -> None:
        directory, name = posixpath.split(remote_path)
        archive = posixpath.join(directory, self.archive_dir)
        with self._sftp("archive") as sftp:
            try:
                sftp.stat(archive)
            except FileNotFoundError:
                sftp.mkdir(archive)
            sftp.posix_rename(remote_path, posixpath.join(archive, name))

    async def mark_processed(self, document: InboundDocument) -> None:
        if document.remote_ref:
            await self._run("archive", self._archive_sync, document.remote_ref)


__all__ = ["SftpTransport", "StrictHostKeyPolicy", "HostKeyVerificationError"]
