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
from typing import Optional, Union

from training_jobs.backends.base import ResourceBackend
from training_jobs.backends.kubernetes.backend import KubernetesBackend
from training_jobs.common.types import KubernetesBackendConfig
from training_jobs.hibernation.reconciler import HibernationReconciler
from training_jobs.kinds import kinds
from training_jobs.status import status as job_status
from training_jobs.status.cache import StatusCache
from training_jobs.status.resolver import WorkloadResolver
from training_jobs.types import types

logger = logging.getLogger(__name__)


class TrainingJobsClient:
    def __init__(
        self,
        backend_config: Union[KubernetesBackendConfig, ResourceBackend] = KubernetesBackendConfig(),
        hibernation_config: types.HibernationConfig = types.HibernationConfig(),
        status_cache_config: types.StatusCacheConfig = types.StatusCacheConfig(),
    ):
        """Initialize a client for the PyTorchJobs, TrainJobs and RayJobs.

        Args:
            backend_config: Backend configuration, or an already initialized backend.
                Defaults to KubernetesBackendConfig.
            hibernation_config: Settle timeout and polling interval for pause and resume.
            status_cache_config: Refresh interval and concurrency of the status cache.

        Raises:
            ValueError: Invalid backend configuration.
        """
        if isinstance(backend_config, KubernetesBackendConfig):
            self.backend = KubernetesBackend(backend_config)
        elif isinstance(backend_config, ResourceBackend):
            self.backend = backend_config
        else:
            raise ValueError("Invalid backend config '{}'".format(backend_config))

        self.resolver = WorkloadResolver(self.backend)
        self.status_cache = StatusCache(
            self.get_job_status,
            refresh_interval=status_cache_config.refresh_interval,
            max_workers=status_cache_config.max_workers,
        )
        self.reconciler = HibernationReconciler(
            self.backend,
            resolver=self.resolver,
            config=hibernation_config,
            cache=self.status_cache,
        )

    def list_jobs(
        self, kind: Optional[Union[types.JobKind, str]] = None
    ) -> list[types.TrainingJob]:
        """List the training jobs in the backend namespace.

        Args:
            kind: Only list the jobs of this kind. If not set, every supported kind is listed
                and kinds that can't be listed, e.g. because their CRD is not installed, are
                skipped.

        Returns:
            List of the training jobs. If no jobs exist, an empty list is returned.

        Raises:
            ValueError: The job kind is not supported.
            TimeoutError: Timeout to list the jobs of the given kind.
            RuntimeError: Failed to list the jobs of the given kind.
        """
        if kind is not None:
            strategy = kinds.get_strategy(kind)
            return [strategy.from_cr(cr) for cr in self.backend.list_resources(strategy.model)]

        result = []
        for strategy in kinds.KIND_STRATEGIES.values():
            try:
                items = self.backend.list_resources(strategy.model)
            except (TimeoutError, RuntimeError) as e:
                logger.warning(f"Skipping {strategy.kind.value}s: {e}")
                continue
            result.extend(strategy.from_cr(cr) for cr in items)

        return result

    def get_job(self, kind: Union[types.JobKind, str], name: str) -> types.TrainingJob:
        """Get the training job.

        Args:
            kind: The kind of the job.
            name: Name of the job.

        Returns:
            The training job.

        Raises:
            ValueError: The job kind is not supported.
            TimeoutError: Timeout to get the job.
            RuntimeError: Failed to get the job.
        """
        strategy = kinds.get_strategy(kind)
        return strategy.from_cr(
            self.backend.get_resource(strategy.model, self.backend.namespace, name)
        )

    def delete_job(self, job: types.TrainingJob):
        """Delete the training job. Kueue removes its Workload.

        Raises:
            TimeoutError: Timeout to delete the job.
            RuntimeError: Failed to delete the job.
        """
        strategy = kinds.get_strategy(job)
        self.backend.delete_resource(strategy.model, job.namespace, job.name)

    def get_workload(self, job: types.TrainingJob) -> Optional[types.Workload]:
        """Get the Kueue Workload of the job, or None if the job is not queue managed."""
        return self.resolver.find_workload(job)

    def get_cluster_queue(self, job: types.TrainingJob) -> Optional[str]:
        """Get the name of the ClusterQueue behind the LocalQueue the job is submitted to.

        Returns:
            The ClusterQueue name, or None if the job has no queue or the lookup fails.
        """
        if not job.queue_name:
            return None

        try:
            local_queue = self.backend.get_resource(
                types.LOCAL_QUEUE_MODEL, job.namespace, job.queue_name
            )
        except Exception as e:
            logger.warning(
                f"Failed to get {types.LOCAL_QUEUE_MODEL.kind} "
                f"{job.namespace}/{job.queue_name}: {e}"
            )
            return None

        return (local_queue.get("spec") or {}).get("clusterQueue")

    def get_job_status(self, job: types.TrainingJob) -> types.JobState:
        """Get the canonical state of the job, taking its Kueue Workload into account.

        This method never raises. Failures to resolve the Workload degrade to the state
        derived from the job alone.
        """
        return job_status.get_job_status(job, self.resolver)

    def get_job_progress(self, job: types.TrainingJob) -> float:
        return job_status.get_job_progress(job)

    def get_job_num_nodes(self, job: types.TrainingJob) -> int:
        return job_status.get_job_num_nodes(job)

    def get_job_actions(
        self,
        job: types.TrainingJob,
        state: Optional[types.JobState] = None,
    ) -> list[str]:
        """Get the actions that can be offered for the job.

        Args:
            job: The training job.
            state: The job state. If not set, the cached state is used, or the state is
                computed.

        Returns:
            Either Pause or Resume followed by Delete, or only Delete for terminal jobs.
        """
        state = state or self.status_cache.get(job) or self.get_job_status(job)
        return job_status.get_job_actions(job, state)

    def filter_jobs(
        self,
        jobs: list[types.TrainingJob],
        name: Optional[str] = None,
        status: Optional[str] = None,
        queue: Optional[str] = None,
    ) -> list[types.TrainingJob]:
        """Filter the jobs by display name, state, and queue, using the cached states."""
        return job_status.filter_jobs(
            jobs, self.status_cache.statuses, name=name, status=status, queue=queue
        )

    def watch_jobs(
        self, kind: Optional[Union[types.JobKind, str]] = None
    ) -> dict[str, types.JobState]:
        """List the jobs and keep their states refreshed in the status cache.

        Returns:
            The states of the listed jobs keyed by the job identity.
        """
        return self.status_cache.set_jobs(self.list_jobs(kind))

    def pause_job(
        self,
        job: types.TrainingJob,
        cancel_event: Optional[threading.Event] = None,
    ) -> types.HibernationResult:
        """Pause the job. For Kueue managed jobs the Workload is deactivated.

        Args:
            job: The training job.
            cancel_event: When set while waiting for Kueue, the pause stops before the job
                is patched directly.

        Returns:
            The result of the pause. Errors are reported in the result and never raised.
        """
        return self.reconciler.pause(job, cancel_event)

    def resume_job(
        self,
        job: types.TrainingJob,
        cancel_event: Optional[threading.Event] = None,
    ) -> types.HibernationResult:
        """Resume the job. For Kueue managed jobs the Workload is activated.

        Returns:
            The result of the resume. Errors are reported in the result and never raised.
        """
        return self.reconciler.resume(job, cancel_event)

    def toggle_job_hibernation(
        self,
        job: types.TrainingJob,
        cancel_event: Optional[threading.Event] = None,
    ) -> types.HibernationResult:
        return self.reconciler.toggle(job, cancel_event)

    def wait_for_job_status(
        self,
        kind: Union[types.JobKind, str],
        name: str,
        status: set[types.JobState] = {types.JobState.SUCCEEDED, types.JobState.COMPLETE},
        timeout: int = 600,
        polling_interval: int = 2,
    ) -> types.TrainingJob:
        """Wait for the job to reach one of the expected states.

        Args:
            kind: The kind of the job.
            name: Name of the job.
            status: Expected states of the job.
            timeout: How many seconds to wait until the job reaches one of the states.
            polling_interval: The polling interval in seconds to check the job state.

        Returns:
            The training job that reached one of the expected states.

        Raises:
            ValueError: The input values are incorrect.
            RuntimeError: Failed to get the job or the job is Failed unexpectedly.
            TimeoutError: Timeout to wait for the job state.
        """
        strategy = kinds.get_strategy(kind)
        status = {types.JobState(s) for s in status}

        if polling_interval > timeout:
            raise ValueError(
                f"Polling interval {polling_interval} must be less than timeout: {timeout}"
            )

        for _ in range(round(timeout / polling_interval)):
            job = self.get_job(kind, name)
            state = self.get_job_status(job)
            logger.debug(f"{job.kind.value} {name}, status {state.value}")

            # Raise an error if the job is Failed and it is not the expected status.
            if types.JobState.FAILED not in status and state == types.JobState.FAILED:
                raise RuntimeError(f"{job.kind.value} {name} is Failed")

            if state in status:
                return job

            time.sleep(polling_interval)

        raise TimeoutError(
            f"Timeout waiting for {strategy.kind.value} {name} to reach status: "
            f"{sorted(s.value for s in status)}"
        )

    def close(self):
        """Stop refreshing the job states in the background."""
        self.status_cache.close()
