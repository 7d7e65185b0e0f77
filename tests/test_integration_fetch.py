import asyncio

import pytest
from sqlalchemy import select

from bankconn.exceptions import ChannelIO, ProfileUnavailable
from bankconn.models.db import AckMapping, InboundAcknowledgment, InboundChannel, JobKind
from bankconn.services.inbound_fetcher import fetch
from bankconn.services.job_log import get_job_logs


def _acks(db_session, company_id):
    return db_session.scalars(select(InboundAcknowledgment).where(InboundAcknowledgment.company_id == company_id)).all()


def test_fetch_stores_documents_and_mappings(db_session, company_id, profile_factory, fake_bank, pain002, camt054):
    profile_factory("BANK1")
    bank = fake_bank("BANK1")
    bank.publish("pain002", "status-1.xml", pain002("R1", [("L1", "ACCP"), ("L2", "ACCP")]))
    bank.publish("camt054", "debit-1.xml", camt054([("R1", "L1", "BOOK")]))

    result = asyncio.run(fetch(db_session, company_id, "BANK1", transport=bank))
    assert result.processed == 2
    assert result.mappings == 3
    assert result.errors == []
    assert sorted(bank.processed) == ["debit-1.xml", "status-1.xml"]

    acks = _acks(db_session, company_id)
    assert len(acks) == 2
    mappings = db_session.scalars(
        select(AckMapping).join(InboundAcknowledgment).where(InboundAcknowledgment.company_id == company_id)
    ).all()
    assert all(m.consumed_at is None for m in mappings)


def test_same_document_twice_is_stored_once(db_session, company_id, profile_factory, fake_bank, pain002):
    profile_factory("BANK1")
    bank = fake_bank("BANK1")
    doc = pain002("R1", [("L1", "ACSC")], msg_id="M-1")
    bank.publish("pain002", "status-1.xml", doc)
    asyncio.run(fetch(db_session, company_id, "BANK1", channel="pain002", transport=bank))

    # Bank re-publishes the same bytes under another name
    bank.publish("pain002", "status-1-copy.xml", doc)
    second = asyncio.run(fetch(db_session, company_id, "BANK1", channel="pain002", transport=bank))
    assert second.processed == 0
    assert second.duplicates == 1
    assert len(_acks(db_session, company_id)) == 1


def test_malformed_document_does_not_block_others(db_session, company_id, profile_factory, fake_bank, pain002):
    profile_factory("BANK1")
    bank = fake_bank("BANK1")
    bank.publish("pain002", "a-good.xml", pain002("R1", [("L1", "ACCP")]))
    bank.publish("pain002", "b-broken.xml", b"<Document><oops")
    bank.publish("pain002", "c-good.xml", pain002("R2", [("L1", "ACCP")]))

    result = asyncio.run(fetch(db_session, company_id, "BANK1", channel="pain002", transport=bank))
    assert result.processed == 2
    assert len(result.errors) == 1
    assert "b-broken.xml" in result.errors[0]
    # Broken file stays on the bank side for inspection
    assert "b-broken.xml" not in bank.processed
    assert {a.filename for a in _acks(db_session, company_id)} == {"a-good.xml", "c-good.xml"}


def test_inactive_profile_refuses_fetch(db_session, company_id, profile_factory, fake_bank):
    profile_factory("BANK1", active=False)
    with pytest.raises(ProfileUnavailable):
        asyncio.run(fetch(db_session, company_id, "BANK1", transport=fake_bank("BANK1")))
    logs = get_job_logs(db_session, company_id, kind=JobKind.FETCH)
    assert logs[0].success is False


def test_channel_failure_raises_when_every_channel_fails(db_session, company_id, profile_factory, fake_bank):
    profile_factory("BANK1")
    bank = fake_bank("BANK1")
    bank.fail_list = "connection reset"
    with pytest.raises(ChannelIO):
        asyncio.run(fetch(db_session, company_id, "BANK1", transport=bank))
    logs = get_job_logs(db_session, company_id, bank_code="BANK1", kind=JobKind.FETCH)
    assert logs[0].success is False
    assert "connection reset" in logs[0].detail


def test_zero_max_documents_fetches_nothing(db_session, company_id, profile_factory, fake_bank, pain002):
    profile_factory("BANK1")
    bank = fake_bank("BANK1")
    bank.publish("pain002", "status-1.xml", pain002("R1", [("L1", "ACSC")]))

    result = asyncio.run(fetch(db_session, company_id, "BANK1", channel="pain002", max_documents=0, transport=bank))
    assert result.processed == 0
    assert bank.processed == []
    assert len(bank.pending[InboundChannel.PAIN002]) == 1
    assert _acks(db_session, company_id) == []
