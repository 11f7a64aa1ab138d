from __future__ import annotations

import logging
import math
import queue
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from ..common.datetime_utils import now_local
from ..core.constants import (
    DISPATCH_BATCH_DELAY_SECONDS,
    DISPATCH_BATCH_SIZE,
    DISPATCH_ITEM_DELAY_SECONDS,
    DISPATCH_MAX_RETRIES,
    DISPATCH_RETENTION_HOURS,
    DISPATCH_RETRY_DELAY_SECONDS,
)
from ..core.enums import JobStatus
from ..core.exceptions import JobStateError, NotFoundError, ValidationError
from .model import DispatchJob, JobProgress, Recipient, RecipientError
from .sender import NotificationSender, render_qr_png

logger = logging.getLogger(__name__)


class DispatchQueue:
    """In-process queue for bulk QR badge delivery.

    Jobs run one at a time on a background thread: recipients in batches,
    with pauses between items and between batches, and bounded retries per
    recipient. Cancellation is cooperative; `cancel_job` only raises a flag
    and the worker moves the job to CANCELLED at its next checkpoint.

    Pass `start_worker=False` to drive `process()` by hand (tests, scripts).
    """

    def __init__(
        self,
        sender: NotificationSender,
        *,
        batch_size: int = DISPATCH_BATCH_SIZE,
        item_delay: float = DISPATCH_ITEM_DELAY_SECONDS,
        batch_delay: float = DISPATCH_BATCH_DELAY_SECONDS,
        retry_delay: float = DISPATCH_RETRY_DELAY_SECONDS,
        max_retries: int = DISPATCH_MAX_RETRIES,
        retention_hours: float = DISPATCH_RETENTION_HOURS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = now_local,
        render: Callable[[str], bytes] = render_qr_png,
        start_worker: bool = True,
    ):
        self._sender = sender
        self._batch_size = max(1, int(batch_size))
        self._item_delay = float(item_delay)
        self._batch_delay = float(batch_delay)
        self._retry_delay = float(retry_delay)
        self._max_retries = max(0, int(max_retries))
        self._retention = timedelta(hours=retention_hours)
        self._sleep = sleep
        self._clock = clock
        self._render = render
        self._start_worker = start_worker

        self._jobs: dict[str, DispatchJob] = {}
        self._lock = threading.Lock()
        self._pending: "queue.Queue[str]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    # -------- public API --------
    def create_job(self, recipients: Sequence[Recipient]) -> JobProgress:
        if not recipients:
            raise ValidationError("At least one recipient is required")

        now = self._clock()
        job = DispatchJob(
            job_id=f"dispatch_{uuid.uuid4().hex[:12]}",
            recipients=list(recipients),
            created_at=now,
            updated_at=now,
            total_batches=math.ceil(len(recipients) / self._batch_size),
        )
        with self._lock:
            self._jobs[job.job_id] = job
            snap = job.snapshot()

        logger.info("dispatch job created job=%s recipients=%s", job.job_id, job.total)
        if self._start_worker:
            self._ensure_worker()
            self._pending.put(job.job_id)
        return snap

    def get_job(self, job_id: str) -> JobProgress:
        with self._lock:
            return self._require(job_id).snapshot()

    def list_jobs(self) -> list[JobProgress]:
        with self._lock:
            jobs = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
            return [j.snapshot() for j in jobs]

    def cancel_job(self, job_id: str) -> JobProgress:
        with self._lock:
            job = self._require(job_id)
            if job.status.is_terminal:
                raise JobStateError(
                    f"Job {job_id} is already {job.status.value} and cannot be cancelled",
                    details={"jobId": job_id, "status": job.status.value},
                )
            job.cancel_requested = True
            job.updated_at = self._clock()
            snap = job.snapshot()

        logger.info("dispatch cancel requested job=%s", job_id)
        return snap

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Purge terminal jobs that finished more than the retention window ago."""
        cutoff = (now or self._clock()) - self._retention
        with self._lock:
            stale = [
                j.job_id for j in self._jobs.values()
                if j.status.is_terminal and (j.finished_at or j.updated_at) < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]

        if stale:
            logger.info("dispatch cleanup purged=%s", len(stale))
        return len(stale)

    def stats(self) -> dict[str, int]:
        with self._lock:
            out = {s.value: 0 for s in JobStatus}
            for job in self._jobs.values():
                out[job.status.value] += 1
            out["total"] = len(self._jobs)
            return out

    def wait_idle(self) -> None:
        """Block until every queued job has been processed."""
        self._pending.join()

    # -------- worker --------
    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name="DispatchWorker", daemon=True)
            self._thread.start()

    def _run(self) -> None:
        while True:
            job_id = self._pending.get()
            try:
                self.process(job_id)
            except Exception:
                logger.exception("dispatch worker error job=%s", job_id)
            finally:
                self._pending.task_done()

    def process(self, job_id: str) -> JobProgress:
        with self._lock:
            job = self._require(job_id)
            if job.status != JobStatus.PENDING:
                raise JobStateError(f"Job {job_id} is {job.status.value}, expected PENDING")
            if job.cancel_requested:
                self._finish(job, JobStatus.CANCELLED)
                return job.snapshot()
            job.status = JobStatus.PROCESSING
            job.updated_at = self._clock()

        logger.info("dispatch job started job=%s batches=%s", job_id, job.total_batches)
        try:
            self._run_batches(job)
        except Exception:
            logger.exception("dispatch job failed job=%s", job_id)
            with self._lock:
                self._finish(job, JobStatus.FAILED)
                return job.snapshot()

        with self._lock:
            self._finish(job, JobStatus.CANCELLED if job.cancel_requested else JobStatus.COMPLETED)
            snap = job.snapshot()

        logger.info(
            "dispatch job %s job=%s success=%s failed=%s",
            snap.status.value.lower(), job_id, snap.success, snap.failed,
        )
        return snap

    def _run_batches(self, job: DispatchJob) -> None:
        batches = [job.recipients[i:i + self._batch_size] for i in range(0, job.total, self._batch_size)]

        for b_index, batch in enumerate(batches):
            if self._is_cancelled(job):
                return
            with self._lock:
                job.current_batch = b_index + 1
                job.updated_at = self._clock()

            for i, recipient in enumerate(batch):
                if self._is_cancelled(job):
                    return

                error = self._deliver(recipient)
                with self._lock:
                    job.processed += 1
                    if error is None:
                        job.success += 1
                    else:
                        job.failed += 1
                        job.errors.append(RecipientError(worker_code=recipient.worker_code, error=error))
                    job.updated_at = self._clock()

                if i < len(batch) - 1:
                    self._sleep(self._item_delay)

            if b_index < len(batches) - 1:
                self._sleep(self._batch_delay)

    def _deliver(self, recipient: Recipient) -> Optional[str]:
        """Send with retries. Returns the last error text, or None on success."""
        attempts = self._max_retries + 1
        last_error = ""
        for attempt in range(1, attempts + 1):
            try:
                self._sender.send(recipient, self._render(recipient.worker_code))
                return None
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning(
                    "dispatch attempt %s/%s failed worker=%s: %s",
                    attempt, attempts, recipient.worker_code, last_error,
                )
                if attempt < attempts:
                    self._sleep(self._retry_delay)
        return last_error

    # -------- helpers --------
    def _require(self, job_id: str) -> DispatchJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Dispatch job {job_id} does not exist")
        return job

    def _is_cancelled(self, job: DispatchJob) -> bool:
        with self._lock:
            return job.cancel_requested

    def _finish(self, job: DispatchJob, status: JobStatus) -> None:
        job.status = status
        job.updated_at = self._clock()
        job.finished_at = job.updated_at
