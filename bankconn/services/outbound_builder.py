"""Render a payment run as a pain.001-shaped credit transfer document.

The output is a pure function of immutable run and line fields: lines are
sorted by id, amounts carry exactly two decimals and no wall-clock time is
embedded, so re-rendering the same run always yields the same bytes and
therefore the same fingerprint. Line status is not rendered since it
changes when the run is dispatched.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence
import xml.etree.ElementTree as ET

from bankconn.config import OUTBOUND_SETTINGS
from bankconn.models.db import PaymentRun, PaymentLine
from bankconn.utils import content_fingerprint

_CENT = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class RenderedFile:
    payload: bytes
    filename: str
    fingerprint: str


def format_amount(value: Decimal | int | float | str) -> str:
    return str(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def build_filename(run_id: str, fingerprint: str) -> str:
    prefix = OUTBOUND_SETTINGS["filename_prefix"]
    return f"{prefix}_{run_id}_{fingerprint[:8]}.xml"


def _sub(parent: ET.Element, tag: str, text: str | None = None, **attrib: str) -> ET.Element:
    el = ET.SubElement(parent, tag, attrib)
    if text is not None:
        el.text = text
    return el


def _build_tree(run: PaymentRun, lines: Sequence[PaymentLine]) -> ET.Element:
    total = sum((Decimal(str(line.pay_amount)) for line in lines), Decimal("0"))
    # Earliest due date keeps the requested execution date deterministic
    execution_date = min((line.due_date for line in lines), default=None)

    root = ET.Element("Document", {"xmlns": OUTBOUND_SETTINGS["namespace"]})
    initn = _sub(root, "CstmrCdtTrfInitn")

    hdr = _sub(initn, "GrpHdr")
    _sub(hdr, "MsgId", run.id)
    _sub(hdr, "NbOfTxs", str(len(lines)))
    _sub(hdr, "CtrlSum", format_amount(total))
    _sub(_sub(hdr, "InitgPty"), "Nm", OUTBOUND_SETTINGS["debtor_name"])

    pmt = _sub(initn, "PmtInf")
    _sub(pmt, "PmtInfId", run.id)
    _sub(pmt, "PmtMtd", OUTBOUND_SETTINGS["payment_method"])
    _sub(pmt, "NbOfTxs", str(len(lines)))
    _sub(pmt, "CtrlSum", format_amount(total))
    if execution_date is not None:
        _sub(pmt, "ReqdExctnDt", execution_date.isoformat())
    _sub(_sub(pmt, "Dbtr"), "Nm", OUTBOUND_SETTINGS["debtor_name"])
    _sub(pmt, "Prd", f"{run.year:04d}-{run.month:02d}")
    _sub(pmt, "Ccy", run.currency)

    for line in lines:
        tx = _sub(pmt, "CdtTrfTxInf")
        pmt_id = _sub(tx, "PmtId")
        _sub(pmt_id, "InstrId", line.id)
        _sub(pmt_id, "EndToEndId", line.bank_ref or line.id)
        _sub(_sub(tx, "Amt"), "InstdAmt", format_amount(line.pay_amount), Ccy=line.pay_currency)
        _sub(tx, "ReqdExctnDt", line.due_date.isoformat())
        cdtr = _sub(tx, "Cdtr")
        _sub(cdtr, "Nm", f"Supplier {line.supplier_id}")
        _sub(cdtr, "Id", line.supplier_id)
        rmt = _sub(tx, "RmtInf")
        _sub(rmt, "Ustrd", f"Payment for invoice {line.invoice_id}")
        _sub(rmt, "InvAmt", format_amount(line.gross_amount), Ccy=line.inv_currency)
    return root


def render(run: PaymentRun, lines: Iterable[PaymentLine]) -> RenderedFile:
    ordered = sorted(lines, key=lambda line: line.id)
    root = _build_tree(run, ordered)
    ET.indent(root, space="  ")
    payload = ET.tostring(root, encoding="utf-8", xml_declaration=True)
    fingerprint = content_fingerprint(payload)
    return RenderedFile(payload=payload, filename=build_filename(run.id, fingerprint), fingerprint=fingerprint)


__all__ = ["RenderedFile", "render", "format_amount", "build_filename"]
