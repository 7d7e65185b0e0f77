"""Pull bank status documents and store them with their parsed mappings.

Documents are de-duplicated by content fingerprint: a file seen twice (bank
re-publishes, poller retries after a crash) is stored once. Each document is
stored and parsed in its own transaction so one malformed file never blocks
the rest of the batch, and no transaction is open while the channel is
being read.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankconn.channels import BankTransport, InboundDocument, transport_for_profile
from bankconn.config import CHANNEL_SETTINGS
from bankconn.exceptions import ChannelIO, ParseError, ProfileUnavailable
from bankconn.models.db import AckMapping, InboundAcknowledgment, InboundChannel, JobKind
from bankconn.services.ack_parser import parse_document
from bankconn.services.job_log import log_job
from bankconn.services.profile_store import require_active_profile
from bankconn.utils import content_fingerprint, get_logger, log_business_event, log_performance
from bankconn.utils.time import elapsed_ms

logger = get_logger(__name__)


@dataclass(slots=True)
class FetchResult:
    processed: int = 0
    duplicates: int = 0
    mappings: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "duplicates": self.duplicates,
            "mappings": self.mappings,
            "errors": list(self.errors),
        }


def _already_ingested(session: Session, company_id: str, bank_code: str, fingerprint: str) -> bool:
    return session.scalar(
        select(InboundAcknowledgment.id).where(
            InboundAcknowledgment.company_id == company_id,
            InboundAcknowledgment.bank_code == bank_code,
            InboundAcknowledgment.fingerprint == fingerprint,
        )
    ) is not None


def ingest_document(session: Session, company_id: str, bank_code: str, document: InboundDocument) -> Optional[int]:
    """Store one document and its mappings.

    Returns the number of mappings created, or None when the document was
    already ingested. Raises ParseError after rolling back.
    """
    fingerprint = content_fingerprint(document.payload)
    if _already_ingested(session, company_id, bank_code, fingerprint):
        session.rollback()
        return None
    try:
        ack = InboundAcknowledgment(
            company_id=company_id,
            bank_code=bank_code,
            channel=document.channel,
            filename=document.filename,
            payload=document.payload,
            fingerprint=fingerprint,
        )
        session.add(ack)
        session.flush()
        parsed = parse_document(document.channel, document.payload, document.filename)
        for seq, item in enumerate(parsed):
            session.add(
                AckMapping(
                    ack_id=ack.id,
                    seq=seq,
                    run_id=item.run_id,
                    line_id=item.line_id,
                    status=item.status,
                    reason_code=item.reason_code,
                    reason_label=item.reason_label,
                )
            )
        session.commit()
    except ParseError:
        session.rollback()
        raise
    except IntegrityError:
        # Concurrent fetch stored the same file first
        session.rollback()
        return None
    logger.info(
        "Inbound document stored",
        company_id=company_id,
        bank_code=bank_code,
        channel=document.channel.value,
        filename=document.filename,
        ack_id=ack.id,
        mappings=len(parsed),
    )
    return len(parsed)


async def _list_with_timeout(transport: BankTransport, bank_code: str, channel: InboundChannel, limit: int) -> list[InboundDocument]:
    timeout = float(CHANNEL_SETTINGS["fetch_timeout_seconds"])
    try:
        return await asyncio.wait_for(transport.list_pending(channel, limit), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ChannelIO(bank_code, "list_pending", f"timed out after {timeout:.0f}s") from exc


async def fetch(
    session: Session,
    company_id: str,
    bank_code: str,
    channel: InboundChannel | str | None = None,
    max_documents: Optional[int] = None,
    transport: Optional[BankTransport] = None,
) -> FetchResult:
    started = time.perf_counter()
    try:
        profile = require_active_profile(session, company_id, bank_code)
    except ProfileUnavailable as exc:
        log_job(session, company_id, bank_code, JobKind.FETCH, f"Fetch refused: {exc.message}", success=False)
        raise

    channels = (
        [InboundChannel(channel)]
        if channel
        else [InboundChannel(c) for c in CHANNEL_SETTINGS["inbound_channels"]]  # type: ignore[union-attr]
    )
    limit = int(CHANNEL_SETTINGS["default_max_documents"] if max_documents is None else max_documents)
    transport = transport or transport_for_profile(profile)
    # Release the read transaction before touching the network
    session.commit()

    result = FetchResult()
    channel_failures: list[ChannelIO] = []
    for ch in channels:
        try:
            documents = await _list_with_timeout(transport, bank_code, ch, limit)
        except ChannelIO as exc:
            logger.warning("Channel listing failed", company_id=company_id, bank_code=bank_code, channel=ch.value, error=exc.message)
            channel_failures.append(exc)
            result.errors.append(f"{ch.value}: {exc.message}")
            continue

        for document in documents:
            try:
                created = ingest_document(session, company_id, bank_code, document)
            except ParseError as exc:
                logger.warning("Inbound document rejected", bank_code=bank_code, filename=document.filename, error=exc.message)
                result.errors.append(f"{document.filename}: {exc.message}")
                continue
            if created is None:
                result.duplicates += 1
            else:
                result.processed += 1
                result.mappings += created
            try:
                await transport.mark_processed(document)
            except ChannelIO as exc:
                # Stored already; a re-listing is absorbed by the fingerprint check
                result.errors.append(f"{document.filename}: {exc.message}")

    payload = {"channels": [c.value for c in channels], **result.as_dict()}
    if channel_failures and len(channel_failures) == len(channels):
        log_job(session, company_id, bank_code, JobKind.FETCH, f"Fetch failed: {channel_failures[0].message}", payload=payload, success=False)
        raise channel_failures[0]

    log_job(
        session,
        company_id,
        bank_code,
        JobKind.FETCH,
        f"Fetched {result.processed} new, {result.duplicates} duplicate document(s)",
        payload=payload,
        success=not result.errors,
    )
    if result.processed:
        log_business_event(
            "bank_acks_ingested",
            {"bank_code": bank_code, "processed": result.processed, "mappings": result.mappings},
            company_id=company_id,
        )
    log_performance("fetch", elapsed_ms(started), {"bank_code": bank_code, "processed": result.processed})
    return result


__all__ = ["FetchResult", "fetch", "ingest_document"]
