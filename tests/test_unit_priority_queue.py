from bankconn.jobs.queue import PriorityDelayQueue
from bankconn.jobs.connectivity_job import ConnectivityJob, JobAction


def test_priority_queue_ordering():
    q = PriorityDelayQueue()
    job_low = ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="LOW", priority="low")
    job_high = ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="HIGH", priority="high")
    job_normal = ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="NORMAL", priority="normal")
    q.enqueue(job_low, priority="low")
    q.enqueue(job_high, priority="high")
    q.enqueue(job_normal, priority="normal")
    snap = q.snapshot()
    assert snap.get("ready") == 3
    assert snap.get("depth") == 3
    order = [q.dequeue(block=False).bank_code for _ in range(3)]
    assert order == ["HIGH", "NORMAL", "LOW"]


def test_duplicate_pending_job_is_coalesced():
    q = PriorityDelayQueue()
    first = q.enqueue(ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="BANK1"))
    second = q.enqueue(ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="BANK1"))
    other_bank = q.enqueue(ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="BANK2"))
    assert first is not None
    assert second is None
    assert other_bank is not None
    assert q.depth() == 2
    assert q.snapshot()["coalesced"] == 1

    # Once dequeued the key is free again
    q.dequeue(block=False)
    again = q.enqueue(ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="BANK1"))
    assert again is not None


def test_delayed_job_is_not_ready():
    q = PriorityDelayQueue()
    q.enqueue(ConnectivityJob(action=JobAction.APPLY, company_id="co-1"), delay_seconds=60)
    assert q.snapshot()["scheduled"] == 1
    assert q.dequeue(block=False) is None


def test_sooner_duplicate_pulls_pending_job_forward():
    q = PriorityDelayQueue()
    q.enqueue(ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="BANK1", attempt=2), delay_seconds=300)
    assert q.dequeue(block=False) is None

    assert q.enqueue(ConnectivityJob(action=JobAction.FETCH, company_id="co-1", bank_code="BANK1"), priority="high") is None
    snap = q.snapshot()
    assert snap["depth"] == 1
    assert snap["scheduled"] == 0
    assert snap["rescheduled"] == 1

    job = q.dequeue(block=False)
    assert job.bank_code == "BANK1"
    assert job.attempt == 2
    assert q.depth() == 0
    assert q.dequeue(block=False) is None
