from bankconn.models.db import RunStatus, LineStatus
from bankconn.services.state_machine import can_transition_line, can_transition_run, run_sources


def test_run_transitions():
    assert can_transition_run(RunStatus.EXPORTED, RunStatus.DISPATCHED)
    assert can_transition_run(RunStatus.DISPATCHED, RunStatus.EXECUTED)
    assert can_transition_run(RunStatus.ACKNOWLEDGED, RunStatus.FAILED)
    assert not can_transition_run(RunStatus.APPROVED, RunStatus.DISPATCHED)
    assert not can_transition_run(RunStatus.EXECUTED, RunStatus.FAILED)
    assert not can_transition_run(RunStatus.FAILED, RunStatus.EXECUTED)


def test_line_transitions_never_go_backwards():
    assert can_transition_line(LineStatus.SELECTED, LineStatus.DISPATCHED)
    assert can_transition_line(LineStatus.DISPATCHED, LineStatus.PAID)
    assert not can_transition_line(LineStatus.PAID, LineStatus.FAILED)
    assert not can_transition_line(LineStatus.FAILED, LineStatus.PAID)


def test_run_sources():
    assert run_sources(RunStatus.DISPATCHED) == [RunStatus.EXPORTED]
    assert run_sources(RunStatus.EXECUTED) == [RunStatus.ACKNOWLEDGED, RunStatus.DISPATCHED]
