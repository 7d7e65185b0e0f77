from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from bankconn.models.db import InboundAcknowledgment, OutboundDispatch

API = "/api/v1/bank"


def test_full_dispatch_ack_flow(client: TestClient, db_session: Session, caller_headers, company_id, run_factory, fake_bank, fake_transports, pain002):
    # Profile via API, run seeded as exported by the upstream step
    r = client.post(
        f"{API}/profiles",
        json={"bank_code": "BANK1", "kind": "API", "config": {"api_base": "https://bank1.test/v1", "auth_ref": "env:BANK1_TOKEN"}},
        headers=caller_headers,
    )
    assert r.status_code == 201, r.text
    run = run_factory((("L1", 1000), ("L2", 500)))
    l1, l2 = f"{run.id}-L1", f"{run.id}-L2"

    # Dispatch -> DISPATCHED with one outbox row
    r = client.post(f"{API}/dispatch", json={"run_id": run.id, "bank_code": "BANK1"}, headers=caller_headers)
    assert r.status_code == 201, r.text
    r = client.post(f"{API}/dispatch", json={"run_id": run.id, "bank_code": "BANK1"}, headers=caller_headers)
    assert r.status_code == 200
    rows = db_session.scalars(select(OutboundDispatch).where(OutboundDispatch.run_id == run.id)).all()
    assert len(rows) == 1

    r = client.post(f"{API}/outbox/deliver", headers=caller_headers)
    assert r.json()["data"]["sent"] == 1

    # Bank executes both lines
    bank = fake_bank("BANK1")
    ack_doc = pain002(run.id, [(l1, "ACSC"), (l2, "ACSC")], msg_id="STS-0001")
    bank.publish("pain002", "sts-0001.xml", ack_doc)
    r = client.post(f"{API}/fetch", json={"bank_code": "BANK1"}, headers=caller_headers)
    assert r.json()["data"]["processed"] == 1
    r = client.post(f"{API}/reconcile", headers=caller_headers)
    assert r.json()["data"]["applied"] == 2

    view = client.get(f"{API}/runs/{run.id}", headers=caller_headers).json()
    assert view["status"] == "EXECUTED"
    assert {line["status"] for line in view["lines"]} == {"PAID"}
    assert view["dispatches"][0]["status"] == "CONFIRMED"

    # The bank re-publishes the same status file: ingested as a no-op
    bank.publish("pain002", "sts-0001-resend.xml", ack_doc)
    r = client.post(f"{API}/fetch", json={"bank_code": "BANK1"}, headers=caller_headers)
    assert r.json()["data"]["processed"] == 0
    assert r.json()["data"]["duplicates"] == 1
    r = client.post(f"{API}/reconcile", headers=caller_headers)
    assert r.json()["data"]["applied"] == 0

    view = client.get(f"{API}/runs/{run.id}", headers=caller_headers).json()
    assert view["status"] == "EXECUTED"
    acks = db_session.scalars(select(InboundAcknowledgment).where(InboundAcknowledgment.company_id == company_id)).all()
    assert len(acks) == 1

    # Audit trail covers every step, newest first
    kinds = [entry["kind"] for entry in client.get(f"{API}/jobs", headers=caller_headers).json()["logs"]]
    assert kinds[0] == "RECONCILE"
    assert {"DISPATCH", "DELIVER", "FETCH", "RECONCILE"} <= set(kinds)
