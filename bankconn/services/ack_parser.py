"""Parse bank status documents into (run, line, status, reason) mappings.

Two document families are understood:

* ``pain002`` payment status reports::

    Document/CstmrPmtStsRpt/OrgnlPmtInfAndSts
        OrgnlPmtInfId            run id
        PmtInfSts                optional group status
        TxInfAndSts*             OrgnlInstrId (or OrgnlEndToEndId), TxSts,
                                 StsRsnInf/Rsn/Cd, StsRsnInf/AddtlInf

* ``camt054`` debit notifications::

    Document/BkToCstmrDbtCdtNtfctn/Ntfctn/Ntry
        Sts                      BOOK / PDNG (plain or wrapped in Cd)
        NtryDtls/TxDtls*         Refs/PmtInfId, Refs/InstrId (or EndToEndId),
                                 RtrInf/Rsn/Cd, RtrInf/AddtlInf

Known ISO codes are translated to the canonical vocabulary; anything else is
kept raw for the reconciler to normalise per bank. Namespaces are ignored so
every schema version of the same message parses identically.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Optional
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET  # nosec: defusedxml blocks XXE and entity expansion
from defusedxml import DefusedXmlException

from bankconn.exceptions import ParseError
from bankconn.models.db import CanonicalStatus, InboundChannel

PAIN002_STATUS_MAP: dict[str, CanonicalStatus] = {
    "ACCP": CanonicalStatus.ACK,
    "ACTC": CanonicalStatus.ACK,
    "ACWC": CanonicalStatus.ACK,
    "ACSP": CanonicalStatus.ACK,
    "ACSC": CanonicalStatus.EXEC_OK,
    "RJCT": CanonicalStatus.EXEC_FAIL,
    "PDNG": CanonicalStatus.PENDING,
}

CAMT054_STATUS_MAP: dict[str, CanonicalStatus] = {
    "BOOK": CanonicalStatus.EXEC_OK,
    "PDNG": CanonicalStatus.PENDING,
}


@dataclass(frozen=True, slots=True)
class ParsedMapping:
    run_id: str
    line_id: Optional[str]
    status: str
    reason_code: Optional[str] = None
    reason_label: Optional[str] = None


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(el: Element, name: str) -> Iterator[Element]:
    return (child for child in el if _local(child.tag) == name)


def _child(el: Element | None, *path: str) -> Element | None:
    for name in path:
        if el is None:
            return None
        el = next(_children(el, name), None)
    return el


def _text(el: Element | None, *path: str) -> Optional[str]:
    node = _child(el, *path)
    if node is None or node.text is None:
        return None
    value = node.text.strip()
    return value or None


def _map_code(code: str, table: dict[str, CanonicalStatus]) -> str:
    code = code.strip().upper()
    mapped = table.get(code)
    return mapped.value if mapped is not None else code


def _parse_root(payload: bytes, source: str, expected_body: str) -> Element:
    try:
        root = ET.fromstring(payload)
    except (ET.ParseError, DefusedXmlException) as exc:
        raise ParseError(source, f"malformed XML: {exc}") from exc
    if _local(root.tag) != "Document":
        raise ParseError(source, f"unexpected root element '{_local(root.tag)}'")
    body = _child(root, expected_body)
    if body is None:
        raise ParseError(source, f"missing {expected_body} element")
    return body


def parse_pain002(payload: bytes, source: str = "pain002") -> list[ParsedMapping]:
    body = _parse_root(payload, source, "CstmrPmtStsRpt")
    groups = list(_children(body, "OrgnlPmtInfAndSts"))
    if not groups:
        raise ParseError(source, "no OrgnlPmtInfAndSts entries")

    mappings: list[ParsedMapping] = []
    for group in groups:
        run_id = _text(group, "OrgnlPmtInfId")
        if not run_id:
            raise ParseError(source, "OrgnlPmtInfAndSts without OrgnlPmtInfId")
        transactions = list(_children(group, "TxInfAndSts"))
        if not transactions:
            group_status = _text(group, "PmtInfSts")
            if not group_status:
                raise ParseError(source, f"run {run_id} has neither PmtInfSts nor TxInfAndSts")
            mappings.append(
                ParsedMapping(
                    run_id=run_id,
                    line_id=None,
                    status=_map_code(group_status, PAIN002_STATUS_MAP),
                    reason_code=_text(group, "StsRsnInf", "Rsn", "Cd"),
                    reason_label=_text(group, "StsRsnInf", "AddtlInf"),
                )
            )
            continue
        for tx in transactions:
            line_id = _text(tx, "OrgnlInstrId") or _text(tx, "OrgnlEndToEndId")
            if not line_id:
                raise ParseError(source, f"run {run_id} has a TxInfAndSts without OrgnlInstrId")
            tx_status = _text(tx, "TxSts") or _text(group, "PmtInfSts")
            if not tx_status:
                raise ParseError(source, f"line {line_id} has no TxSts")
            mappings.append(
                ParsedMapping(
                    run_id=run_id,
                    line_id=line_id,
                    status=_map_code(tx_status, PAIN002_STATUS_MAP),
                    reason_code=_text(tx, "StsRsnInf", "Rsn", "Cd"),
                    reason_label=_text(tx, "StsRsnInf", "AddtlInf"),
                )
            )
    return mappings


def _entry_status(entry: Element) -> Optional[str]:
    # camt.054.001.08+ wraps the status code in <Cd>
    return _text(entry, "Sts", "Cd") or _text(entry, "Sts")


def parse_camt054(payload: bytes, source: str = "camt054") -> list[ParsedMapping]:
    body = _parse_root(payload, source, "BkToCstmrDbtCdtNtfctn")
    mappings: list[ParsedMapping] = []
    for notification in _children(body, "Ntfctn"):
        for entry in _children(notification, "Ntry"):
            entry_status = _entry_status(entry)
            details = [tx for dtls in _children(entry, "NtryDtls") for tx in _children(dtls, "TxDtls")]
            if not details:
                raise ParseError(source, "Ntry without TxDtls references")
            for tx in details:
                run_id = _text(tx, "Refs", "PmtInfId")
                line_id = _text(tx, "Refs", "InstrId") or _text(tx, "Refs", "EndToEndId")
                if not run_id or not line_id:
                    raise ParseError(source, "TxDtls missing Refs/PmtInfId or Refs/InstrId")
                return_code = _text(tx, "RtrInf", "Rsn", "Cd")
                if return_code:
                    status = CanonicalStatus.EXEC_FAIL.value
                elif entry_status:
                    status = _map_code(entry_status, CAMT054_STATUS_MAP)
                else:
                    raise ParseError(source, f"entry for line {line_id} has no Sts")
                mappings.append(
                    ParsedMapping(
                        run_id=run_id,
                        line_id=line_id,
                        status=status,
                        reason_code=return_code,
                        reason_label=_text(tx, "RtrInf", "AddtlInf"),
                    )
                )
    return mappings


PARSERS: dict[InboundChannel, Callable[[bytes, str], list[ParsedMapping]]] = {
    InboundChannel.PAIN002: parse_pain002,
    InboundChannel.CAMT054: parse_camt054,
}


def parse_document(channel: InboundChannel | str, payload: bytes, filename: str = "") -> list[ParsedMapping]:
    channel = InboundChannel(channel)
    source = f"{channel.value} document {filename}".strip()
    return PARSERS[channel](payload, source)


__all__ = [
    "ParsedMapping",
    "PAIN002_STATUS_MAP",
    "CAMT054_STATUS_MAP",
    "parse_pain002",
    "parse_camt054",
    "parse_document",
]
