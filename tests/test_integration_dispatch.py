import pytest
from sqlalchemy import select

from bankconn.exceptions import IllegalTransition, ProfileUnavailable, RunNotFound
from bankconn.models.db import (
    DispatchStatus,
    JobKind,
    JobLogEntry,
    LineStatus,
    OutboundDispatch,
    RunStatus,
)
from bankconn.services.dispatcher import dispatch
from bankconn.services.job_log import get_job_logs


def test_dispatch_queues_outbox_row_and_advances_run(db_session, company_id, run_factory, profile_factory):
    profile_factory("BANK1")
    run = run_factory()

    outcome = dispatch(db_session, company_id, run.id, "BANK1", actor="treasurer")
    assert outcome.replayed is False
    assert outcome.dispatch.status == DispatchStatus.QUEUED
    assert outcome.dispatch.filename.startswith(f"PAIN001_{run.id}_")

    db_session.expire_all()
    assert run.status == RunStatus.DISPATCHED
    assert {line.status for line in run.lines} == {LineStatus.DISPATCHED}

    logs = get_job_logs(db_session, company_id, kind=JobKind.DISPATCH)
    assert logs[0].success is True
    assert logs[0].payload["dispatch_id"] == outcome.dispatch.id


def test_second_dispatch_is_a_replay(db_session, company_id, run_factory, profile_factory):
    profile_factory("BANK1")
    run = run_factory()
    first = dispatch(db_session, company_id, run.id, "BANK1")
    second = dispatch(db_session, company_id, run.id, "BANK1")

    assert second.replayed is True
    assert second.dispatch.id == first.dispatch.id
    rows = db_session.scalars(select(OutboundDispatch).where(OutboundDispatch.run_id == run.id)).all()
    assert len(rows) == 1


def test_dispatch_requires_exported_run(db_session, company_id, run_factory, profile_factory):
    profile_factory("BANK1")
    run = run_factory(status=RunStatus.APPROVED)
    with pytest.raises(IllegalTransition) as excinfo:
        dispatch(db_session, company_id, run.id, "BANK1")
    assert excinfo.value.actual == "APPROVED"
    assert excinfo.value.required == ["EXPORTED"]

    db_session.expire_all()
    assert run.status == RunStatus.APPROVED
    failures = db_session.scalars(
        select(JobLogEntry).where(JobLogEntry.company_id == company_id, JobLogEntry.success.is_(False))
    ).all()
    assert len(failures) == 1


def test_dispatch_to_other_bank_after_dispatch_is_illegal(db_session, company_id, run_factory, profile_factory):
    profile_factory("BANK1")
    profile_factory("BANK2")
    run = run_factory()
    dispatch(db_session, company_id, run.id, "BANK1")
    with pytest.raises(IllegalTransition):
        dispatch(db_session, company_id, run.id, "BANK2")


def test_dry_run_persists_nothing(db_session, company_id, run_factory, profile_factory):
    profile_factory("BANK1")
    run = run_factory()
    outcome = dispatch(db_session, company_id, run.id, "BANK1", dry_run=True)
    assert outcome.dry_run is True
    assert outcome.rendered.payload.startswith(b"<?xml")

    db_session.expire_all()
    assert run.status == RunStatus.EXPORTED
    assert db_session.scalars(select(OutboundDispatch).where(OutboundDispatch.run_id == run.id)).all() == []


def test_dispatch_requires_active_profile(db_session, company_id, run_factory, profile_factory):
    run = run_factory()
    with pytest.raises(ProfileUnavailable):
        dispatch(db_session, company_id, run.id, "NOBANK")
    profile_factory("SLEEPY", active=False)
    with pytest.raises(ProfileUnavailable) as excinfo:
        dispatch(db_session, company_id, run.id, "SLEEPY")
    assert excinfo.value.reason == "inactive"


def test_run_of_other_company_is_not_found(db_session, company_id, run_factory, profile_factory):
    profile_factory("BANK1")
    run = run_factory(company="someone-else")
    with pytest.raises(RunNotFound):
        dispatch(db_session, company_id, run.id, "BANK1")
