import os
import secrets
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'bankconn' resolves without an editable install
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from bankconn.main import app  # type: ignore
from bankconn.database import Base  # type: ignore
from bankconn.api import deps  # type: ignore
"""Pytest fixtures and factories.

All model modules are imported through ``bankconn.models.db`` before
Base.metadata.create_all() so relationship targets exist.
"""
from bankconn.models.db import PaymentRun, PaymentLine, RunStatus, LineStatus, InboundChannel
from bankconn.channels import BankTransport, InboundDocument
from bankconn.exceptions import ChannelIO
from bankconn.jobs.queue import PriorityDelayQueue
from bankconn.jobs.worker import ConnectivityWorker
from bankconn.services.profile_store import upsert_profile
from bankconn.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER

# File-based SQLite so the worker thread and the test thread share data
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_worker.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# The worker module bound SessionLocal at import time; point it and the
# database module at the test engine.
import bankconn.database as _bankconn_database  # noqa: E402
_bankconn_database.SessionLocal = TestingSessionLocal  # type: ignore
import bankconn.jobs.worker as _worker_mod  # noqa: E402
_worker_mod.SessionLocal = TestingSessionLocal  # type: ignore


class FakeBank(BankTransport):
    """In-memory bank: documents waiting per channel, uploads recorded.

    Calls go through ``guarded`` so circuit breaker behaviour matches the
    real transports.
    """

    kind = "FAKE"

    def __init__(self, company_id: str, bank_code: str):
        super().__init__(company_id, bank_code)
        self.pending: dict[InboundChannel, list[InboundDocument]] = {c: [] for c in InboundChannel}
        self.processed: list[str] = []
        self.delivered: list[tuple[str, bytes]] = []
        self.fail_deliver: str | None = None
        self.fail_list: str | None = None

    def publish(self, channel: InboundChannel | str, filename: str, payload: bytes | str) -> InboundDocument:
        channel = InboundChannel(channel)
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        doc = InboundDocument(channel=channel, filename=filename, payload=payload, remote_ref=filename)
        self.pending[channel].append(doc)
        return doc

    async def _deliver(self, filename: str, payload: bytes) -> None:
        if self.fail_deliver:
            raise ChannelIO(self.bank_code, "deliver", self.fail_deliver)
        self.delivered.append((filename, payload))

    async def deliver(self, filename: str, payload: bytes) -> None:
        await self.guarded("deliver", lambda: self._deliver(filename, payload))

    async def _list(self, channel: InboundChannel, max_documents: int) -> list[InboundDocument]:
        if self.fail_list:
            raise ChannelIO(self.bank_code, "list_pending", self.fail_list)
        return list(self.pending[channel][:max_documents])

    async def list_pending(self, channel: InboundChannel, max_documents: int) -> list[InboundDocument]:
        return await self.guarded("list_pending", lambda: self._list(InboundChannel(channel), max_documents))

    async def mark_processed(self, document: InboundDocument) -> None:
        self.pending[document.channel] = [d for d in self.pending[document.channel] if d is not document]
        self.processed.append(document.filename)


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_worker.db")
    except OSError:
        pass

@pytest.fixture(scope="session", autouse=True)
def connectivity_queue(create_test_db):
    """Queue + worker on app.state; the production app does this in lifespan, which tests bypass."""
    queue = PriorityDelayQueue()
    app.state.connectivity_queue = queue  # type: ignore[attr-defined]
    worker = ConnectivityWorker(queue, poll_timeout=0.1)
    worker.start()
    yield queue
    worker.stop()
    queue.shutdown()

@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture()
def other_session():
    """A second caller's session, for interleaving two writers."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture(autouse=True)
def _isolate_test_state(connectivity_queue):
    """Reset process-local state: breaker counters and queued retries."""
    connectivity_queue.purge()
    GLOBAL_CIRCUIT_BREAKER.reset()
    yield
    connectivity_queue.purge()
    GLOBAL_CIRCUIT_BREAKER.reset()
    app.dependency_overrides.pop(deps.get_transport_factory, None)

def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db

@pytest.fixture()
def client():
    return TestClient(app)

# ---------- Data factory helpers ----------

@pytest.fixture()
def company_id():
    """Fresh tenant per test so audit logs and pending mappings never leak between tests."""
    return f"co-{secrets.token_hex(4)}"

@pytest.fixture()
def caller_headers(company_id):
    return {"X-Company-ID": company_id, "X-User-ID": "treasurer@example.com"}

@pytest.fixture()
def bank_registry():
    """bank_code -> FakeBank, created on first use."""
    return {}

@pytest.fixture()
def fake_bank(bank_registry, company_id):
    def _get(bank_code: str = "BANK1") -> FakeBank:
        if bank_code not in bank_registry:
            bank_registry[bank_code] = FakeBank(company_id, bank_code)
        return bank_registry[bank_code]
    return _get

@pytest.fixture()
def transport_factory(fake_bank):
    """Drop-in for ``transport_for_profile`` that hands out FakeBank instances."""
    def _factory(profile):
        return fake_bank(profile.bank_code)
    return _factory

@pytest.fixture()
def fake_transports(transport_factory):
    """Route API channel I/O to the in-memory banks."""
    app.dependency_overrides[deps.get_transport_factory] = lambda: transport_factory
    return transport_factory

@pytest.fixture()
def profile_factory(db_session, company_id):
    def _create(bank_code: str = "BANK1", *, kind: str = "API", active: bool = True, company: str | None = None):
        if kind == "API":
            config = {"api_base": f"https://{bank_code.lower()}.bank.test/v1", "auth_ref": f"env:{bank_code}_TOKEN"}
        else:
            config = {
                "host": f"sftp.{bank_code.lower()}.test",
                "port": 22,
                "username": "corp",
                "key_ref": "file:/run/secrets/bank_key",
                "in_dir": "/inbox",
                "out_dir": "/outbox",
            }
        return upsert_profile(db_session, company or company_id, bank_code, kind, config, active, "tests")
    return _create

@pytest.fixture()
def run_factory(db_session, company_id):
    """Create a run with lines given as (label, amount) pairs.

    Line ids are ``<run_id>-<label>`` so documents can reference them while
    staying unique across the shared test database.
    """
    def _create(lines=(("L1", 1000), ("L2", 500)), *, status: RunStatus = RunStatus.EXPORTED, company: str | None = None, currency: str = "EUR"):
        run_id = f"R-{secrets.token_hex(4)}"
        run = PaymentRun(
            id=run_id,
            company_id=company or company_id,
            year=2025,
            month=3,
            currency=currency,
            status=status,
            created_by="tests",
        )
        db_session.add(run)
        for idx, (label, amount) in enumerate(lines):
            db_session.add(
                PaymentLine(
                    id=f"{run_id}-{label}",
                    run_id=run_id,
                    supplier_id=f"SUP-{idx + 1}",
                    invoice_id=f"INV-{run_id}-{idx + 1}",
                    due_date=date(2025, 3, 10 + idx),
                    gross_amount=Decimal(str(amount)),
                    pay_amount=Decimal(str(amount)),
                    inv_currency=currency,
                    pay_currency=currency,
                    status=LineStatus.SELECTED,
                )
            )
        db_session.commit()
        db_session.refresh(run)
        return run
    return _create

# ---------- Bank document builders ----------

def _tx_pain002(line_id: str, status: str, reason_code: str | None, reason_label: str | None) -> str:
    reason = ""
    if reason_code or reason_label:
        reason = "<StsRsnInf>"
        if reason_code:
            reason += f"<Rsn><Cd>{reason_code}</Cd></Rsn>"
        if reason_label:
            reason += f"<AddtlInf>{reason_label}</AddtlInf>"
        reason += "</StsRsnInf>"
    return f"<TxInfAndSts><OrgnlInstrId>{line_id}</OrgnlInstrId><TxSts>{status}</TxSts>{reason}</TxInfAndSts>"

@pytest.fixture()
def pain002():
    """pain002(run_id, [(line_id, status[, reason_code[, reason_label]])], group_status=None) -> bytes"""
    def _build(run_id: str, transactions=(), *, group_status: str | None = None, msg_id: str | None = None) -> bytes:
        txs = "".join(_tx_pain002(*(tuple(t) + (None, None))[:4]) for t in transactions)
        group = f"<PmtInfSts>{group_status}</PmtInfSts>" if group_status else ""
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<Document xmlns="urn:iso:std:iso:20022:tech:xsd:pain.002.001.03"><CstmrPmtStsRpt>'
            f"<GrpHdr><MsgId>{msg_id or secrets.token_hex(6)}</MsgId></GrpHdr>"
            f"<OrgnlPmtInfAndSts><OrgnlPmtInfId>{run_id}</OrgnlPmtInfId>{group}{txs}</OrgnlPmtInfAndSts>"
            "</CstmrPmtStsRpt></Document>"
        ).encode("utf-8")
    return _build

@pytest.fixture()
def camt054():
    """camt054([(run_id, line_id, entry_status[, return_code])]) -> bytes"""
    def _build(entries, *, msg_id: str | None = None) -> bytes:
        ntries = ""
        for entry in entries:
            run_id, line_id, sts, rtr = (tuple(entry) + (None,))[:4]
            rtr_xml = f"<RtrInf><Rsn><Cd>{rtr}</Cd></Rsn></RtrInf>" if rtr else ""
            ntries += (
                f"<Ntry><Sts>{sts}</Sts><NtryDtls><TxDtls>"
                f"<Refs><PmtInfId>{run_id}</PmtInfId><InstrId>{line_id}</InstrId></Refs>{rtr_xml}"
                "</TxDtls></NtryDtls></Ntry>"
            )
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<Document xmlns="urn:iso:std:iso:20022:tech:xsd:camt.054.001.02"><BkToCstmrDbtCdtNtfctn>'
            f"<GrpHdr><MsgId>{msg_id or secrets.token_hex(6)}</MsgId></GrpHdr>"
            f"<Ntfctn>{ntries}</Ntfctn>"
            "</BkToCstmrDbtCdtNtfctn></Document>"
        ).encode("utf-8")
    return _build
