import asyncio

import pytest
from sqlalchemy import select

from bankconn.exceptions import IllegalTransition
from bankconn.models.db import DispatchStatus, JobKind, OutboundDispatch
from bankconn.services.dispatcher import dispatch
from bankconn.services.job_log import get_job_logs
from bankconn.services.outbox_delivery import confirm_dispatch, deliver_queued


def test_delivery_uploads_and_marks_sent(db_session, company_id, run_factory, profile_factory, fake_bank, transport_factory):
    profile_factory("BANK1")
    run = run_factory()
    outcome = dispatch(db_session, company_id, run.id, "BANK1")

    result = asyncio.run(deliver_queued(db_session, company_id, transport_for=transport_factory))
    assert result.sent == 1 and result.failed == 0
    bank = fake_bank("BANK1")
    assert bank.delivered == [(outcome.dispatch.filename, outcome.rendered.payload)]

    db_session.expire_all()
    row = db_session.get(OutboundDispatch, outcome.dispatch.id)
    assert row.status == DispatchStatus.SENT
    assert row.sent_at is not None
    assert row.attempts == 1

    # Nothing left to send
    again = asyncio.run(deliver_queued(db_session, company_id, transport_for=transport_factory))
    assert again.sent == 0


def test_delivery_failure_keeps_row_queued(db_session, company_id, run_factory, profile_factory, fake_bank, transport_factory):
    profile_factory("BANK1")
    first = dispatch(db_session, company_id, run_factory().id, "BANK1")
    second = dispatch(db_session, company_id, run_factory().id, "BANK1")
    fake_bank("BANK1").fail_deliver = "permission denied"

    result = asyncio.run(deliver_queued(db_session, company_id, transport_for=transport_factory))
    assert result.sent == 0
    assert result.failed == 1
    assert len(result.errors) == 2  # second row skipped after the first failure

    db_session.expire_all()
    failed = db_session.get(OutboundDispatch, first.dispatch.id)
    skipped = db_session.get(OutboundDispatch, second.dispatch.id)
    assert failed.status == DispatchStatus.QUEUED
    assert failed.attempts == 1
    assert "permission denied" in failed.last_error
    assert skipped.attempts == 0

    logs = get_job_logs(db_session, company_id, kind=JobKind.DELIVER)
    assert logs[0].success is False

    fake_bank("BANK1").fail_deliver = None
    retry = asyncio.run(deliver_queued(db_session, company_id, transport_for=transport_factory))
    assert retry.sent == 2
    db_session.expire_all()
    assert db_session.get(OutboundDispatch, first.dispatch.id).attempts == 2


def test_confirm_dispatch_is_idempotent(db_session, company_id, run_factory, profile_factory, transport_factory):
    profile_factory("BANK1")
    outcome = dispatch(db_session, company_id, run_factory().id, "BANK1")
    with pytest.raises(IllegalTransition):
        confirm_dispatch(db_session, company_id, outcome.dispatch.id)

    asyncio.run(deliver_queued(db_session, company_id, transport_for=transport_factory))
    row = confirm_dispatch(db_session, company_id, outcome.dispatch.id)
    assert row.status == DispatchStatus.CONFIRMED
    confirmed_at = row.confirmed_at
    again = confirm_dispatch(db_session, company_id, outcome.dispatch.id)
    assert again.confirmed_at == confirmed_at


def test_confirm_unknown_dispatch(db_session, company_id):
    with pytest.raises(IllegalTransition) as excinfo:
        confirm_dispatch(db_session, company_id, "missing")
    assert excinfo.value.actual == "MISSING"
    assert db_session.scalars(select(OutboundDispatch).where(OutboundDispatch.id == "missing")).all() == []
