from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..core.constants import JOB_POLL_INTERVAL_SECONDS
from ..core.exceptions import JobStateError, TransientNetworkError
from ..notifications.model import JobProgress
from .api_client import GateApiClient

logger = logging.getLogger(__name__)


class JobPoller:
    """Follows a dispatch job until it reaches a terminal state.

    Cancelling only sends the request; the poller keeps polling until the
    service itself reports CANCELLED (or another terminal state).
    """

    def __init__(
        self,
        client: GateApiClient,
        *,
        interval: float = JOB_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Optional[Callable[[JobProgress], None]] = None,
        max_consecutive_failures: int = 3,
    ) -> None:
        self._client = client
        self._interval = float(interval)
        self._sleep = sleep
        self._on_progress = on_progress
        self._max_failures = max(1, int(max_consecutive_failures))

    def wait(self, job_id: str) -> JobProgress:
        failures = 0
        while True:
            try:
                job = self._client.get_job(job_id)
            except TransientNetworkError:
                failures += 1
                if failures >= self._max_failures:
                    raise
                logger.warning("poll job=%s failed (%s/%s)", job_id, failures, self._max_failures)
                self._sleep(self._interval)
                continue

            failures = 0
            if self._on_progress is not None:
                self._on_progress(job)
            if job.status.is_terminal:
                return job
            self._sleep(self._interval)

    def request_cancel(self, job_id: str) -> None:
        try:
            self._client.cancel_job(job_id)
        except JobStateError:
            # Already terminal; the next poll reports the final state.
            logger.info("cancel ignored job=%s: already finished", job_id)

    def cancel_and_wait(self, job_id: str) -> JobProgress:
        self.request_cancel(job_id)
        return self.wait(job_id)
