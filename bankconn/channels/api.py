"""HTTPS bank channel (aiohttp).

Endpoints, relative to the profile's ``api_base``:
  POST /files                            {"filename", "content": base64}
  GET  /files/{channel}?limit=N          [{"id", "filename", "content": base64}, ...]
  POST /files/{channel}/{id}/ack         marks a document as retrieved
"""
from __future__ import annotations

import base64
import binascii
from typing import Any, Mapping

import aiohttp

from bankconn.config import CHANNEL_SETTINGS
from bankconn.exceptions import ChannelIO
from bankconn.models.db import InboundChannel
from bankconn.utils.circuit_breaker import CircuitBreaker

from .base import BankTransport, InboundDocument, resolve_secret


class ApiTransport(BankTransport):
    kind = "API"

    def __init__(self, company_id: str, bank_code: str, config: Mapping[str, Any], *, breaker: CircuitBreaker | None = None):
        super().__init__(company_id, bank_code, breaker=breaker)
        self.api_base = str(config["api_base"]).rstrip("/")
        self.auth_ref = str(config["auth_ref"])

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=float(CHANNEL_SETTINGS["fetch_timeout_seconds"]),
            connect=float(CHANNEL_SETTINGS["connect_timeout_seconds"]),
            sock_read=float(CHANNEL_SETTINGS["read_timeout_seconds"]),
        )

    def _headers(self, operation: str) -> dict[str, str]:
        try:
            token = resolve_secret(self.auth_ref).strip()
        except (ValueError, OSError) as exc:
            raise ChannelIO(self.bank_code, operation, str(exc)) from exc
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.api_base}{path}"
        headers = self._headers(operation)
        try:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.request(method, url, headers=headers, **kwargs) as response:
                    if response.status >= 400:
                        body = (await response.text())[:200]
                        self.logger.warning(
                            "Bank API request failed",
                            url=url,
                            status_code=response.status,
                            body=body,
                        )
                        raise ChannelIO(self.bank_code, operation, f"HTTP {response.status}: {body}")
                    if response.status == 204:
                        return None
                    return await response.json(content_type=None)
        except aiohttp.ClientError as exc:
            self.logger.warning("Bank API client error", url=url, error=str(exc))
            raise ChannelIO(self.bank_code, operation, str(exc)) from exc

    async def deliver(self, filename: str, payload: bytes) -> None:
        body = {"filename": filename, "content": base64.b64encode(payload).decode("ascii")}
        await self.guarded("deliver", lambda: self._request("deliver", "POST", "/files", json=body))
        self.logger.info("Bank API upload complete", filename=filename, size=len(payload))

    async def list_pending(self, channel: InboundChannel, max_documents: int) -> list[InboundDocument]:
        channel = InboundChannel(channel)
        data = await self.guarded(
            "list_pending",
            lambda: self._request("list_pending", "GET", f"/files/{channel.value}", params={"limit": str(max_documents)}),
        )
        items = data.get("files", []) if isinstance(data, dict) else (data or [])
        documents: list[InboundDocument] = []
        for item in items[:max_documents]:
            try:
                payload = base64.b64decode(item["content"], validate=True)
            except (KeyError, TypeError, binascii.Error) as exc:
                raise ChannelIO(self.bank_code, "list_pending", f"undecodable document in listing: {exc}") from exc
            documents.append(
                InboundDocument(
                    channel=channel,
                    filename=str(item.get("filename") or item.get("id") or "unnamed"),
                    payload=payload,
                    remote_ref=str(item["id"]) if item.get("id") is not None else None,
                )
            )
        self.logger.info("Bank API listing complete", channel=channel.value, count=len(documents))
        return documents

    async def mark_processed(self, document: InboundDocument) -> None:
        if not document.remote_ref:
            return
        path = f"/files/{document.channel.value}/{document.remote_ref}/ack"
        await self.guarded("ack", lambda: self._request("ack", "POST", path))


__all__ = ["ApiTransport"]
