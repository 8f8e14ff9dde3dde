# Copyright 2025 The Kubeflow Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Union

from training_jobs.constants import constants
from training_jobs.status import status as job_status
from training_jobs.types import types

logger = logging.getLogger(__name__)


class StatusCache:
    """Job states keyed by the job identity, refreshed while any job is not terminal.

    The map is never mutated in place. Every write builds a new map and replaces the
    reference, so readers always see a consistent snapshot. Concurrent refreshes are
    resolved as last writer wins.

    Args:
        status_func: Computes the state of a single job, usually with the Workload lookup.
        refresh_interval: Seconds between refreshes while any job is not terminal.
        max_workers: The maximum number of jobs whose state is computed concurrently.
    """

    def __init__(
        self,
        status_func: Callable[[types.TrainingJob], types.JobState],
        refresh_interval: float = constants.DEFAULT_REFRESH_INTERVAL,
        max_workers: int = constants.DEFAULT_MAX_WORKERS,
    ):
        self.status_func = status_func
        self.refresh_interval = refresh_interval

        self._jobs: list[types.TrainingJob] = []
        self._statuses: dict[str, types.JobState] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="job-status"
        )
        self._poller: Optional[StatusPoller] = None

    @property
    def statuses(self) -> dict[str, types.JobState]:
        return dict(self._statuses)

    @property
    def jobs(self) -> list[types.TrainingJob]:
        return list(self._jobs)

    def get(self, job: Union[types.TrainingJob, str]) -> Optional[types.JobState]:
        identity = job.identity if isinstance(job, types.TrainingJob) else job
        return self._statuses.get(identity)

    def set_jobs(self, jobs: list[types.TrainingJob]) -> dict[str, types.JobState]:
        """Replace the job list and recompute every state."""
        self._jobs = list(jobs)
        statuses = self.refresh()
        self._ensure_polling()
        return statuses

    def refresh(self) -> dict[str, types.JobState]:
        jobs = self._jobs
        futures = [(job, self._executor.submit(self.status_func, job)) for job in jobs]

        statuses = {}
        for job, future in futures:
            try:
                statuses[job.identity] = future.result()
            except Exception as e:
                logger.warning(
                    f"Failed to get status for {job.kind.value} {job.namespace}/{job.name}: {e}"
                )
                statuses[job.identity] = job_status.derive_status(job)

        with self._lock:
            # The job list was replaced while computing, the newer refresh wins.
            if jobs is not self._jobs:
                return dict(self._statuses)
            self._statuses = statuses

        logger.debug(f"Refreshed status for {len(statuses)} jobs")
        return dict(statuses)

    def set_status(self, identity: str, state: types.JobState):
        """Update a single job state ahead of the next refresh."""
        with self._lock:
            statuses = dict(self._statuses)
            statuses[identity] = state
            self._statuses = statuses
        self._ensure_polling()

    def needs_polling(self) -> bool:
        statuses = self._statuses
        return bool(statuses) and any(not job_status.is_terminal(s) for s in statuses.values())

    @property
    def is_polling(self) -> bool:
        poller = self._poller
        return poller is not None and poller.is_alive()

    def stop_polling(self):
        with self._lock:
            poller, self._poller = self._poller, None
        if poller:
            poller.stop()

    def close(self):
        self.stop_polling()
        self._executor.shutdown(wait=False)

    def _ensure_polling(self):
        with self._lock:
            if self._poller is not None or not self.needs_polling():
                return
            self._poller = StatusPoller(self, self.refresh_interval)
            self._poller.start()

    def _continue_polling(self, poller: "StatusPoller") -> bool:
        with self._lock:
            if self._poller is not poller:
                return False
            if self.needs_polling():
                return True
            # Every job is terminal or there are no jobs, nothing can change anymore.
            self._poller = None
            return False


class StatusPoller(threading.Thread):
    def __init__(self, cache: StatusCache, interval: float):
        super().__init__(name="job-status-poller", daemon=True)
        self.cache = cache
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self):
        logger.debug(f"Polling job status every {self.interval}s")
        while not self._stop_event.wait(self.interval):
            if not self.cache._continue_polling(self):
                break
            try:
                self.cache.refresh()
            except Exception as e:
                logger.warning(f"Failed to refresh job status: {e}")
        logger.debug("Stopped polling job status")

    def stop(self):
        self._stop_event.set()
