"""In-memory priority + delay queue for connectivity jobs (single-process).

Jobs exposing ``key()`` are coalesced: while a job with the same key is
pending, a second enqueue does not add another entry. If the duplicate
asks for an earlier start or a higher priority, the pending entry is
pulled forward to match, so an operator's "fetch now" is not stuck behind
a backoff retry of the same fetch.

Entries live in two heaps:
  ready      (priority, seq, item)            runnable now
  scheduled  (ready_at, priority, seq, item)  waiting for their delay

Superseded entries are flagged ``cancelled`` and skipped when popped, so a
reschedule never has to search a heap.
"""
from __future__ import annotations

import heapq
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

from bankconn.config import QUEUE_SETTINGS
from bankconn.utils import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class QueueItem:
    job: Any
    key: Optional[str]
    priority_label: str
    priority_value: int
    enqueued_at: float
    ready_at: float
    seq: int
    cancelled: bool = False


def _job_key(job: Any) -> Optional[str]:
    key_fn = getattr(job, "key", None)
    return key_fn() if callable(key_fn) else None


class PriorityDelayQueue:
    def __init__(self) -> None:
        priorities = QUEUE_SETTINGS.get("priorities")
        self._priorities: dict[str, int] = dict(priorities) if isinstance(priorities, dict) else {"normal": 5}
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))  # type: ignore[arg-type]
        self._capacity = int(QUEUE_SETTINGS.get("max_in_memory", 5000))  # type: ignore[arg-type]
        self._cv = threading.Condition(threading.RLock())
        self._ready: list[tuple[int, int, QueueItem]] = []
        self._scheduled: list[tuple[float, int, int, QueueItem]] = []
        self._by_key: dict[str, QueueItem] = {}
        self._live = 0
        self._seq = 0
        self._coalesced = 0
        self._rescheduled = 0
        self._closed = False

    def _push(self, job: Any, key: Optional[str], label: str, ready_at: float, now: float) -> QueueItem:
        self._seq += 1
        item = QueueItem(
            job=job,
            key=key,
            priority_label=label,
            priority_value=self._priorities[label],
            enqueued_at=now,
            ready_at=ready_at,
            seq=self._seq,
        )
        if ready_at <= now:
            heapq.heappush(self._ready, (item.priority_value, item.seq, item))
        else:
            heapq.heappush(self._scheduled, (ready_at, item.priority_value, item.seq, item))
        if key is not None:
            self._by_key[key] = item
        self._live += 1
        self._cv.notify()
        return item

    def _supersede(self, pending: QueueItem, label: str, ready_at: float, now: float) -> bool:
        """Move ``pending`` earlier / higher if the duplicate asks for it."""
        sooner = ready_at < pending.ready_at and pending.ready_at > now
        higher = self._priorities[label] < pending.priority_value
        if not (sooner or higher):
            return False
        pending.cancelled = True
        self._live -= 1
        best_label = label if higher else pending.priority_label
        self._push(pending.job, pending.key, best_label, min(ready_at, pending.ready_at), now)
        self._rescheduled += 1
        return True

    def _promote_due(self, now: float) -> None:
        while self._scheduled and self._scheduled[0][0] <= now:
            _, priority_value, seq, item = heapq.heappop(self._scheduled)
            if not item.cancelled:
                heapq.heappush(self._ready, (priority_value, seq, item))

    def _pop_ready(self) -> Optional[QueueItem]:
        while self._ready:
            _, _, item = heapq.heappop(self._ready)
            if item.cancelled:
                continue
            if item.key is not None and self._by_key.get(item.key) is item:
                del self._by_key[item.key]
            self._live -= 1
            return item
        return None

    def _next_due_in(self) -> Optional[float]:
        while self._scheduled and self._scheduled[0][3].cancelled:
            heapq.heappop(self._scheduled)
        if not self._scheduled:
            return None
        return max(0.0, self._scheduled[0][0] - time.time())

    def enqueue(self, job: Any, *, priority: str = "normal", delay_seconds: float = 0.0) -> Optional[QueueItem]:
        """Add a job. Returns None when it was coalesced into an already pending one."""
        with self._cv:
            if self._closed:
                raise RuntimeError("Queue shutdown")
            if priority not in self._priorities:
                raise ValueError(f"Unknown priority '{priority}'")
            now = time.time()
            ready_at = now + max(0.0, delay_seconds)
            key = _job_key(job)
            pending = self._by_key.get(key) if key is not None else None
            if pending is not None:
                self._coalesced += 1
                moved = self._supersede(pending, priority, ready_at, now)
                logger.debug("Connectivity job coalesced", key=key, rescheduled=moved)
                return None
            if self._live >= self._capacity:
                raise OverflowError("Queue capacity exceeded")
            item = self._push(job, key, priority, ready_at, now)
            if self._live >= self._warn_depth:
                logger.warning("Connectivity queue depth high", depth=self._live)
            return item

    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Any:
        """Next runnable job, or None when non-blocking/timed out with nothing ready."""
        deadline = None if timeout is None else time.time() + timeout
        with self._cv:
            while True:
                self._promote_due(time.time())
                item = self._pop_ready()
                if item is not None:
                    return item.job
                if self._closed or not block:
                    return None
                wait = self._next_due_in()
                if deadline is not None:
                    remaining = deadline - time.time()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cv.wait(timeout=wait)

    def shutdown(self) -> None:
        with self._cv:
            self._closed = True
            self._cv.notify_all()

    def purge(self) -> None:
        """Drop every pending job (test isolation)."""
        with self._cv:
            self._ready.clear()
            self._scheduled.clear()
            self._by_key.clear()
            self._live = 0
            self._cv.notify_all()

    def depth(self) -> int:
        return self._live

    def __len__(self) -> int:  # pragma: no cover
        return self._live

    def snapshot(self) -> dict:
        with self._cv:
            scheduled = sum(1 for entry in self._scheduled if not entry[3].cancelled)
            return {
                "depth": self._live,
                "ready": self._live - scheduled,
                "scheduled": scheduled,
                "coalesced": self._coalesced,
                "rescheduled": self._rescheduled,
                "shutdown": self._closed,
            }


__all__ = ["PriorityDelayQueue", "QueueItem"]
