"""Background worker for connectivity jobs (fetch, apply, deliver)."""
from __future__ import annotations

import asyncio
import threading
import time
from typing import Optional

from sqlalchemy.orm import Session

from bankconn.config import QUEUE_SETTINGS
from bankconn.database import SessionLocal
from bankconn.exceptions import ChannelIO, ConnectivityError
from bankconn.jobs.connectivity_job import ConnectivityJob, JobAction
from bankconn.jobs.queue import PriorityDelayQueue
from bankconn.services.ack_reconciler import apply
from bankconn.services.inbound_fetcher import fetch
from bankconn.services.outbox_delivery import deliver_queued
from bankconn.utils import get_logger
from bankconn.utils.backoff import compute_backoff_seconds, should_retry

logger = get_logger(__name__)


class ConnectivityWorker:
    def __init__(self, queue: PriorityDelayQueue, *, poll_timeout: Optional[float] = None):
        self.queue = queue
        self.poll_timeout = float(poll_timeout if poll_timeout is not None else QUEUE_SETTINGS.get("poll_timeout_seconds", 5.0))  # type: ignore[arg-type]
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="connectivity-worker", daemon=True)
        self._thread.start()
        logger.info("Connectivity worker started")

    def stop(self) -> None:
        self._stop_event.set()
        logger.info("Connectivity worker stop requested")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = self.queue.dequeue(timeout=self.poll_timeout)
                if job is None:
                    continue
                if not isinstance(job, ConnectivityJob):
                    logger.warning("Skipping unknown job type", job_type=type(job).__name__)
                    continue
                self.process(job)
            except Exception as e:  # pragma: no cover
                logger.error("Worker loop error", error=str(e), exc_info=True)
                time.sleep(1)

    # ----------------------------- job handling ----------------------------- #
    def _retry(self, job: ConnectivityJob, error: ChannelIO) -> None:
        attempt = job.attempt + 1
        if not should_retry(attempt):
            logger.error(
                "Connectivity job abandoned after retries",
                action=job.action.value,
                company_id=job.company_id,
                bank_code=job.bank_code,
                attempts=attempt,
                error=error.message,
            )
            return
        delay = compute_backoff_seconds(attempt)
        retry = ConnectivityJob(
            action=job.action,
            company_id=job.company_id,
            bank_code=job.bank_code,
            channel=job.channel,
            priority=job.priority,
            attempt=attempt,
            correlation_id=job.correlation_id,
        )
        self.queue.enqueue(retry, priority=job.priority, delay_seconds=delay)
        logger.info(
            "Connectivity job rescheduled",
            action=job.action.value,
            company_id=job.company_id,
            bank_code=job.bank_code,
            attempt=attempt,
            delay_seconds=round(delay, 2),
        )

    def _run(self, session: Session, job: ConnectivityJob) -> None:
        if job.action == JobAction.FETCH:
            if not job.bank_code:
                raise ValueError("FETCH job requires bank_code")
            result = asyncio.run(fetch(session, job.company_id, job.bank_code, channel=job.channel))
            logger.info("Fetch job completed", company_id=job.company_id, bank_code=job.bank_code, **result.as_dict())
            if result.processed:
                self.queue.enqueue(ConnectivityJob(action=JobAction.APPLY, company_id=job.company_id), priority=job.priority)
        elif job.action == JobAction.APPLY:
            result = apply(session, job.company_id)
            logger.info("Apply job completed", company_id=job.company_id, **result.as_dict())
        elif job.action == JobAction.DELIVER:
            delivery = asyncio.run(deliver_queued(session, job.company_id))
            logger.info("Deliver job completed", company_id=job.company_id, **delivery.as_dict())
            if delivery.failed:
                self._retry(job, ChannelIO(job.bank_code or "*", "deliver", "; ".join(delivery.errors)))

    def process(self, job: ConnectivityJob) -> None:
        logger.info(
            "Processing connectivity job",
            action=job.action.value,
            company_id=job.company_id,
            bank_code=job.bank_code,
            attempt=job.attempt,
            correlation_id=job.correlation_id,
        )
        session: Session = SessionLocal()
        try:
            self._run(session, job)
        except ChannelIO as e:
            self._retry(job, e)
        except ConnectivityError as e:
            # Validation / transition failures are caller bugs; retrying cannot help
            logger.warning("Connectivity job rejected", action=job.action.value, company_id=job.company_id, error=e.message)
        except Exception as e:
            logger.error("Connectivity job failed", action=job.action.value, company_id=job.company_id, error=str(e), exc_info=True)
        finally:
            session.close()


def create_queue() -> PriorityDelayQueue:
    return PriorityDelayQueue()


__all__ = ["ConnectivityWorker", "create_queue"]
