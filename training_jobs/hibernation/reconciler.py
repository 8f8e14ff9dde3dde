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
import time
from concurrent.futures import Future
from typing import Optional

from training_jobs.backends.base import ResourceBackend
import training_jobs.backends.kubernetes.utils as utils
from training_jobs.constants import constants
from training_jobs.kinds import kinds
from training_jobs.status.cache import StatusCache
from training_jobs.status.resolver import WorkloadResolver
from training_jobs.types import types

logger = logging.getLogger(__name__)


class HibernationCancelledError(Exception):
    pass


class HibernationReconciler:
    """Pause and resume training jobs, keeping the job and its Kueue Workload consistent.

    For queue managed jobs the Workload `spec.active` flag is the authority: it is patched
    first and Kueue is expected to propagate it into the job suspend flag. If the job does
    not converge within the settle timeout, the job suspend flag is patched directly.
    For other jobs only the job suspend flag is patched.

    Mutations are not rolled back on failure. A call for a job that already has a call in
    flight with the same target joins that call and returns its result. A call with the
    opposite target is rejected.
    """

    def __init__(
        self,
        backend: ResourceBackend,
        resolver: Optional[WorkloadResolver] = None,
        config: Optional[types.HibernationConfig] = None,
        cache: Optional[StatusCache] = None,
    ):
        self.backend = backend
        self.resolver = resolver or WorkloadResolver(backend)
        self.config = config or types.HibernationConfig()
        self.cache = cache

        self._lock = threading.Lock()
        # Job identity to the hibernation target and the result of the call in flight.
        self._in_flight: dict[str, tuple[bool, Future]] = {}

    def pause(
        self,
        job: types.TrainingJob,
        cancel_event: Optional[threading.Event] = None,
    ) -> types.HibernationResult:
        return self._run(job, True, cancel_event)

    def resume(
        self,
        job: types.TrainingJob,
        cancel_event: Optional[threading.Event] = None,
    ) -> types.HibernationResult:
        return self._run(job, False, cancel_event)

    def toggle(
        self,
        job: types.TrainingJob,
        cancel_event: Optional[threading.Event] = None,
    ) -> types.HibernationResult:
        """Resume the job if its own suspend flag is set, pause it otherwise."""
        hibernate = not kinds.get_strategy(job).get_suspend_flag(job)
        return self._run(job, hibernate, cancel_event)

    def is_in_flight(self, job: types.TrainingJob) -> bool:
        with self._lock:
            return job.identity in self._in_flight

    def _run(
        self,
        job: types.TrainingJob,
        hibernate: bool,
        cancel_event: Optional[threading.Event],
    ) -> types.HibernationResult:
        with self._lock:
            in_flight = self._in_flight.get(job.identity)
            owner = in_flight is None
            if owner:
                in_flight = (hibernate, Future())
                self._in_flight[job.identity] = in_flight
        in_flight_hibernate, future = in_flight

        if not owner and in_flight_hibernate != hibernate:
            action = "pause" if hibernate else "resume"
            in_flight_action = "pause" if in_flight_hibernate else "resume"
            logger.debug(
                f"Rejected {action} of {job.kind.value} {job.namespace}/{job.name}, "
                f"a {in_flight_action} is in flight"
            )
            return types.HibernationResult(
                success=False,
                error=f"Failed to {action} job: a {in_flight_action} is already in progress",
            )

        if not owner:
            logger.debug(
                f"Hibernation of {job.kind.value} {job.namespace}/{job.name} is in flight, "
                "waiting for its result"
            )
            return future.result()

        try:
            result = self._reconcile(job, hibernate, cancel_event or threading.Event())
        except BaseException as e:
            future.set_exception(e)
            raise
        finally:
            with self._lock:
                self._in_flight.pop(job.identity, None)

        future.set_result(result)
        return result

    def _reconcile(
        self,
        job: types.TrainingJob,
        hibernate: bool,
        cancel_event: threading.Event,
    ) -> types.HibernationResult:
        action = "pause" if hibernate else "resume"
        strategy = kinds.get_strategy(job)

        try:
            if cancel_event.is_set():
                raise HibernationCancelledError()

            workload = self.resolver.find_workload(job)

            if workload is None:
                updated_job = self._patch_job(strategy, job, hibernate)
                return self._succeed(strategy, job, hibernate, updated_job)

            updated_workload = utils.get_workload_from_cr(
                self.backend.patch_resource(
                    types.WORKLOAD_MODEL,
                    workload.namespace,
                    workload.name,
                    utils.get_replace_patch(constants.WORKLOAD_ACTIVE_PATH, not hibernate),
                )
            )
            logger.debug(
                f"{constants.WORKLOAD_KIND} {workload.namespace}/{workload.name} active flag "
                f"is set to {not hibernate}"
            )

            updated_job = self._wait_for_suspend_flag(strategy, job, hibernate, cancel_event)

            fallback_patched = False
            if strategy.get_suspend_flag(updated_job) != hibernate:
                logger.warning(
                    f"Kueue did not propagate the {constants.WORKLOAD_KIND} active flag to "
                    f"{job.kind.value} {job.namespace}/{job.name} within "
                    f"{self.config.settle_timeout}s, setting its suspend flag to {hibernate}"
                )
                updated_job = self._patch_job(strategy, updated_job, hibernate)
                fallback_patched = True

            return self._succeed(
                strategy, job, hibernate, updated_job, updated_workload, fallback_patched
            )

        except HibernationCancelledError:
            logger.debug(f"Hibernation of {job.kind.value} {job.namespace}/{job.name} cancelled")
            return types.HibernationResult(
                success=False, error=f"Failed to {action} job: hibernation was cancelled"
            )
        except Exception as e:
            message = utils.get_error_message(e)
            logger.error(
                f"Failed to {action} {job.kind.value} {job.namespace}/{job.name}: {message}"
            )
            return types.HibernationResult(
                success=False, error=f"Failed to {action} job: {message}"
            )

    def _patch_job(
        self,
        strategy: kinds.JobKindStrategy,
        job: types.TrainingJob,
        hibernate: bool,
    ) -> types.TrainingJob:
        return strategy.from_cr(
            self.backend.patch_resource(
                strategy.model,
                job.namespace,
                job.name,
                strategy.set_suspend_flag(hibernate),
            )
        )

    def _wait_for_suspend_flag(
        self,
        strategy: kinds.JobKindStrategy,
        job: types.TrainingJob,
        hibernate: bool,
        cancel_event: threading.Event,
    ) -> types.TrainingJob:
        """Re-read the job until its suspend flag converges or the settle timeout expires.

        The job is read at least once. The last read is returned either way.
        """
        deadline = time.monotonic() + self.config.settle_timeout
        while True:
            remaining = max(deadline - time.monotonic(), 0)
            if cancel_event.wait(min(self.config.polling_interval, remaining)):
                raise HibernationCancelledError()

            refreshed = strategy.from_cr(
                self.backend.get_resource(strategy.model, job.namespace, job.name)
            )
            if strategy.get_suspend_flag(refreshed) == hibernate:
                return refreshed
            if time.monotonic() >= deadline:
                return refreshed

    def _succeed(
        self,
        strategy: kinds.JobKindStrategy,
        job: types.TrainingJob,
        hibernate: bool,
        updated_job: types.TrainingJob,
        updated_workload: Optional[types.Workload] = None,
        fallback_patched: bool = False,
    ) -> types.HibernationResult:
        state = strategy.paused_state if hibernate else types.JobState.RUNNING
        if self.cache is not None:
            self.cache.set_status(job.identity, state)

        logger.debug(f"{job.kind.value} {job.namespace}/{job.name} is {state.value}")
        return types.HibernationResult(
            success=True,
            job=updated_job,
            workload=updated_workload,
            state=state,
            fallback_patched=fallback_patched,
        )
