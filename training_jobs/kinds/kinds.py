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

"""Per-kind strategies for the training jobs.

Status derivation and hibernation are written once against `JobKindStrategy`. Every job
kind provides its condition vocabulary, the location of its suspend flag, and the
secondary status signals that are used when the conditions are not conclusive.
"""

import abc
from typing import Any, Optional, Union

import training_jobs.backends.kubernetes.utils as utils
from training_jobs.constants import constants
from training_jobs.types import types


class JobKindStrategy(abc.ABC):
    kind: types.JobKind
    model: types.ResourceModel
    suspend_path: str
    # Maps the type of the current condition to the job state.
    condition_states: dict[str, types.JobState]
    # The state shown when the job is hibernated.
    paused_state: types.JobState

    def get_conditions(self, job: types.TrainingJob) -> list[types.Condition]:
        return job.conditions

    def get_suspend_flag(self, job: types.TrainingJob) -> bool:
        return job.suspend

    def set_suspend_flag(self, suspend: bool) -> list[dict[str, Any]]:
        """Get the JSON patch that sets the job suspend flag."""
        return utils.get_replace_patch(self.suspend_path, suspend)

    @abc.abstractmethod
    def from_cr(self, cr: dict[str, Any]) -> types.TrainingJob:
        raise NotImplementedError()

    @abc.abstractmethod
    def has_observed_status(self, job: types.TrainingJob) -> bool:
        """Whether the job controller has reported any status besides conditions."""
        raise NotImplementedError()

    @abc.abstractmethod
    def secondary_state(self, job: types.TrainingJob) -> Optional[types.JobState]:
        raise NotImplementedError()

    @abc.abstractmethod
    def get_progress(self, job: types.TrainingJob) -> Any:
        """Get the raw progress percentage as reported in the job status."""
        raise NotImplementedError()

    @abc.abstractmethod
    def get_num_nodes(self, job: types.TrainingJob) -> int:
        raise NotImplementedError()


class PyTorchJobStrategy(JobKindStrategy):
    kind = types.JobKind.PYTORCH_JOB
    model = types.ResourceModel(
        group=constants.PYTORCHJOB_GROUP,
        version=constants.PYTORCHJOB_VERSION,
        plural=constants.PYTORCHJOB_PLURAL,
        kind=constants.PYTORCHJOB_KIND,
    )
    suspend_path = constants.PYTORCHJOB_SUSPEND_PATH
    condition_states = {
        "Created": types.JobState.CREATED,
        "Running": types.JobState.RUNNING,
        "Restarting": types.JobState.RESTARTING,
        "Succeeded": types.JobState.SUCCEEDED,
        "Failed": types.JobState.FAILED,
        "Suspended": types.JobState.PAUSED,
    }
    paused_state = types.JobState.PAUSED

    def from_cr(self, cr: dict[str, Any]) -> types.PyTorchJob:
        return utils.get_pytorchjob_from_cr(cr)

    def has_observed_status(self, job: types.PyTorchJob) -> bool:
        return bool(job.replica_statuses) or job.completion_percentage is not None

    def secondary_state(self, job: types.PyTorchJob) -> Optional[types.JobState]:
        if any(r.active > 0 for r in job.replica_statuses.values()):
            return types.JobState.RUNNING
        return None

    def get_progress(self, job: types.PyTorchJob) -> Any:
        return job.completion_percentage

    def get_num_nodes(self, job: types.PyTorchJob) -> int:
        return job.master_replicas + job.worker_replicas


class TrainJobStrategy(JobKindStrategy):
    kind = types.JobKind.TRAIN_JOB
    model = types.ResourceModel(
        group=constants.TRAINJOB_GROUP,
        version=constants.TRAINJOB_VERSION,
        plural=constants.TRAINJOB_PLURAL,
        kind=constants.TRAINJOB_KIND,
    )
    suspend_path = constants.TRAINJOB_SUSPEND_PATH
    condition_states = {
        "Created": types.JobState.CREATED,
        "Running": types.JobState.RUNNING,
        "Complete": types.JobState.COMPLETE,
        "Failed": types.JobState.FAILED,
        "Suspended": types.JobState.SUSPENDED,
        "Resumed": types.JobState.RESUMED,
    }
    paused_state = types.JobState.SUSPENDED

    def from_cr(self, cr: dict[str, Any]) -> types.TrainJob:
        return utils.get_trainjob_from_cr(cr)

    def has_observed_status(self, job: types.TrainJob) -> bool:
        return bool(job.jobs_status) or job.progression is not None

    def secondary_state(self, job: types.TrainJob) -> Optional[types.JobState]:
        # The TrainJob is running once any of its ReplicatedJobs has active Pods.
        if any(s.active > 0 for s in job.jobs_status):
            return types.JobState.RUNNING
        return types.JobState.PENDING

    def get_progress(self, job: types.TrainJob) -> Any:
        return job.progression.percentage_complete if job.progression else None

    def get_num_nodes(self, job: types.TrainJob) -> int:
        return job.num_nodes or 1


class RayJobStrategy(JobKindStrategy):
    kind = types.JobKind.RAY_JOB
    model = types.ResourceModel(
        group=constants.RAYJOB_GROUP,
        version=constants.RAYJOB_VERSION,
        plural=constants.RAYJOB_PLURAL,
        kind=constants.RAYJOB_KIND,
    )
    suspend_path = constants.RAYJOB_SUSPEND_PATH
    # RayJob reports phases instead of conditions, they are turned into conditions below.
    condition_states = {
        "PENDING": types.JobState.PENDING,
        "RUNNING": types.JobState.RUNNING,
        "SUCCEEDED": types.JobState.SUCCEEDED,
        "FAILED": types.JobState.FAILED,
        "STOPPED": types.JobState.FAILED,
        "Suspended": types.JobState.SUSPENDED,
    }
    paused_state = types.JobState.SUSPENDED

    def get_conditions(self, job: types.RayJob) -> list[types.Condition]:
        phase = job.job_status
        if job.job_deployment_status in {"Suspending", "Suspended"}:
            phase = "Suspended"
        if not phase:
            return job.conditions

        return job.conditions + [
            types.Condition(
                type=phase,
                status=constants.CONDITION_TRUE,
                last_transition_time=job.end_time or job.start_time,
                reason=job.job_deployment_status,
                message=job.message,
            )
        ]

    def from_cr(self, cr: dict[str, Any]) -> types.RayJob:
        return utils.get_rayjob_from_cr(cr)

    def has_observed_status(self, job: types.RayJob) -> bool:
        return bool(job.job_status or job.job_deployment_status)

    def secondary_state(self, job: types.RayJob) -> Optional[types.JobState]:
        return self.condition_states.get(job.job_status or "")

    def get_progress(self, job: types.RayJob) -> Any:
        return None

    def get_num_nodes(self, job: types.RayJob) -> int:
        return job.head_replicas + job.worker_replicas


KIND_STRATEGIES: dict[types.JobKind, JobKindStrategy] = {
    types.JobKind.PYTORCH_JOB: PyTorchJobStrategy(),
    types.JobKind.TRAIN_JOB: TrainJobStrategy(),
    types.JobKind.RAY_JOB: RayJobStrategy(),
}


def get_strategy(target: Union[types.JobKind, types.TrainingJob, str]) -> JobKindStrategy:
    """Get the strategy for the job kind, the job, or the CR kind name."""
    if isinstance(target, types.TrainingJob):
        target = type(target).kind
    try:
        return KIND_STRATEGIES[types.JobKind(target)]
    except (ValueError, KeyError) as e:
        raise ValueError(
            f"Job kind {target} is not supported. "
            f"Supported kinds: {[k.value for k in types.JobKind]}"
        ) from e


def get_job_from_cr(cr: dict[str, Any]) -> types.TrainingJob:
    """Convert the job CR into its typed view, dispatching on the CR kind."""
    return get_strategy(cr.get("kind", "")).from_cr(cr)
