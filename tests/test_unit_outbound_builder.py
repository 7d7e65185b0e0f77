from datetime import date
from decimal import Decimal
import xml.etree.ElementTree as ET

from bankconn.models.db import PaymentRun, PaymentLine, RunStatus, LineStatus
from bankconn.services.outbound_builder import build_filename, format_amount, render

NS = "{urn:iso:std:iso:20022:tech:xsd:pain.001.001.03}"


def _run():
    run = PaymentRun(id="R1", company_id="co-1", year=2025, month=3, currency="EUR", status=RunStatus.EXPORTED)
    lines = [
        PaymentLine(
            id="L2", run_id="R1", supplier_id="S2", invoice_id="I2", due_date=date(2025, 3, 12),
            gross_amount=Decimal("500"), pay_amount=Decimal("500"), inv_currency="EUR", pay_currency="EUR",
            status=LineStatus.SELECTED,
        ),
        PaymentLine(
            id="L1", run_id="R1", supplier_id="S1", invoice_id="I1", due_date=date(2025, 3, 10),
            gross_amount=Decimal("1000.5"), pay_amount=Decimal("1000.5"), inv_currency="EUR", pay_currency="EUR",
            status=LineStatus.SELECTED,
        ),
    ]
    return run, lines


def test_format_amount_two_decimals():
    assert format_amount(Decimal("1000")) == "1000.00"
    assert format_amount("0.005") == "0.01"
    assert format_amount(12.3) == "12.30"


def test_render_is_deterministic_and_ignores_line_order_and_status():
    run, lines = _run()
    first = render(run, lines)
    second = render(run, list(reversed(lines)))
    assert first.payload == second.payload
    assert first.fingerprint == second.fingerprint

    for line in lines:
        line.status = LineStatus.DISPATCHED
    assert render(run, lines).fingerprint == first.fingerprint


def test_render_content():
    run, lines = _run()
    rendered = render(run, lines)
    assert rendered.filename == build_filename("R1", rendered.fingerprint)
    assert rendered.filename.startswith("PAIN001_R1_") and rendered.filename.endswith(".xml")

    root = ET.fromstring(rendered.payload)
    hdr = root.find(f"{NS}CstmrCdtTrfInitn/{NS}GrpHdr")
    assert hdr.findtext(f"{NS}MsgId") == "R1"
    assert hdr.findtext(f"{NS}NbOfTxs") == "2"
    assert hdr.findtext(f"{NS}CtrlSum") == "1500.50"
    pmt = root.find(f"{NS}CstmrCdtTrfInitn/{NS}PmtInf")
    assert pmt.findtext(f"{NS}ReqdExctnDt") == "2025-03-10"
    instr_ids = [el.text for el in pmt.iter(f"{NS}InstrId")]
    assert instr_ids == ["L1", "L2"]
    amounts = [el.text for el in pmt.iter(f"{NS}InstdAmt")]
    assert amounts == ["1000.50", "500.00"]


def test_amount_change_changes_fingerprint():
    run, lines = _run()
    before = render(run, lines).fingerprint
    lines[0].pay_amount = Decimal("499.99")
    assert render(run, lines).fingerprint != before
