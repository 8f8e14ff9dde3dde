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

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, Field

from training_jobs.constants import constants


class JobKind(Enum):
    """Kinds of the training jobs."""

    PYTORCH_JOB = constants.PYTORCHJOB_KIND
    TRAIN_JOB = constants.TRAINJOB_KIND
    RAY_JOB = constants.RAYJOB_KIND


class JobState(Enum):
    """Canonical lifecycle state of a training job."""

    CREATED = "Created"
    PENDING = "Pending"
    QUEUED = "Queued"
    RUNNING = "Running"
    RESTARTING = "Restarting"
    SUCCEEDED = "Succeeded"
    COMPLETE = "Complete"
    FAILED = "Failed"
    PAUSED = "Paused"
    SUSPENDED = "Suspended"
    PREEMPTED = "Preempted"
    RESUMED = "Resumed"
    UNKNOWN = "Unknown"


# Terminal states are absorbing: the Workload is never consulted for them.
TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.COMPLETE, JobState.FAILED})

# States in which the job is not running because of hibernation or preemption.
HIBERNATED_STATES = frozenset({JobState.PAUSED, JobState.SUSPENDED, JobState.PREEMPTED})


# Representation of the Kubernetes API resource.
@dataclass(frozen=True)
class ResourceModel:
    group: str
    version: str
    plural: str
    kind: str
    namespaced: bool = True

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


# Representation for the status condition of the job or the Workload.
@dataclass
class Condition:
    type: str
    status: str
    last_transition_time: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None


# Representation for the common part of every training job.
@dataclass
class TrainingJob:
    """Read view of a training job custom resource.

    The Kubernetes API server owns the object, this view is never written back as a whole.
    Subclasses define the `kind` discriminator and carry the kind specific status.

    Args:
        name (`str`): The name of the job.
        namespace (`str`): The namespace of the job.
        uid (`Optional[str]`): The UID of the job.
        labels (`dict[str, str]`): The job labels.
        annotations (`dict[str, str]`): The job annotations.
        creation_timestamp (`Optional[datetime]`): When the job was created.
        conditions (`list[Condition]`): The status conditions of the job.
        suspend (`bool`): The value of the job's own suspend flag.
    """

    kind: ClassVar[JobKind]

    name: str
    namespace: str
    uid: Optional[str] = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    creation_timestamp: Optional[datetime] = None
    conditions: list[Condition] = field(default_factory=list)
    suspend: bool = False

    @property
    def identity(self) -> str:
        return self.uid or self.name

    @property
    def queue_name(self) -> Optional[str]:
        return self.labels.get(constants.QUEUE_NAME_LABEL)

    @property
    def display_name(self) -> str:
        return self.annotations.get(constants.DISPLAY_NAME_ANNOTATION) or self.name


@dataclass
class ReplicaStatus:
    active: int = 0
    succeeded: int = 0
    failed: int = 0


@dataclass
class PyTorchJob(TrainingJob):
    kind: ClassVar[JobKind] = JobKind.PYTORCH_JOB

    completion_percentage: Optional[Any] = None
    replica_statuses: dict[str, ReplicaStatus] = field(default_factory=dict)
    master_replicas: int = 0
    worker_replicas: int = 0


# Status of the single ReplicatedJob that belongs to the TrainJob.
@dataclass
class ReplicatedJobStatus:
    name: str
    active: int = 0
    ready: int = 0
    succeeded: int = 0
    failed: int = 0
    suspended: int = 0


@dataclass
class ProgressionStatus:
    """Training progress that the trainer reports in the TrainJob status.

    Args:
        percentage_complete (`Optional[Any]`): Raw percentage value as reported, usually a string.
        current_step (`Optional[int]`): The current training step.
        total_steps (`Optional[int]`): The total number of training steps.
        current_epoch (`Optional[int]`): The current epoch.
        total_epochs (`Optional[int]`): The total number of epochs.
        estimated_time_remaining (`Optional[int]`): Estimated seconds until training completes.
        last_update_time (`Optional[str]`): When the progress was reported.
        message (`Optional[str]`): Human readable progress message.
        metrics (`dict[str, str]`): Training metrics, e.g. loss or learning rate.
    """

    percentage_complete: Optional[Any] = None
    current_step: Optional[int] = None
    total_steps: Optional[int] = None
    current_epoch: Optional[int] = None
    total_epochs: Optional[int] = None
    estimated_time_remaining: Optional[int] = None
    last_update_time: Optional[str] = None
    message: Optional[str] = None
    metrics: dict[str, str] = field(default_factory=dict)


@dataclass
class TrainJob(TrainingJob):
    kind: ClassVar[JobKind] = JobKind.TRAIN_JOB

    runtime_ref: Optional[str] = None
    num_nodes: Optional[int] = None
    jobs_status: list[ReplicatedJobStatus] = field(default_factory=list)
    progression: Optional[ProgressionStatus] = None


@dataclass
class RayJob(TrainingJob):
    kind: ClassVar[JobKind] = JobKind.RAY_JOB

    job_status: Optional[str] = None
    job_deployment_status: Optional[str] = None
    head_replicas: int = 1
    worker_replicas: int = 0
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    message: Optional[str] = None


# Representation for the Kueue Workload of the job.
@dataclass
class Workload:
    name: str
    namespace: str
    active: bool = True
    uid: Optional[str] = None
    queue_name: Optional[str] = None
    labels: dict[str, str] = field(default_factory=dict)
    creation_timestamp: Optional[str] = None
    conditions: list[Condition] = field(default_factory=list)

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        for c in self.conditions:
            if c.type == condition_type:
                return c
        return None


@dataclass
class HibernationResult:
    """Outcome of a pause, resume or toggle request.

    Args:
        success (`bool`): Whether every requested mutation was applied.
        job (`Optional[TrainingJob]`): The job as returned by the last patch or read.
        workload (`Optional[Workload]`): The patched Workload for queue managed jobs.
        error (`Optional[str]`): Human readable error to display verbatim on failure.
        state (`Optional[JobState]`): The state to display until the next status refresh.
        fallback_patched (`bool`): Whether the job suspend flag had to be patched directly
            because the queue controller did not propagate the Workload change.
    """

    success: bool
    job: Optional[TrainingJob] = None
    workload: Optional[Workload] = None
    error: Optional[str] = None
    state: Optional[JobState] = None
    fallback_patched: bool = False


class HibernationConfig(BaseModel):
    settle_timeout: float = Field(default=constants.DEFAULT_SETTLE_TIMEOUT, ge=0)
    polling_interval: float = Field(default=constants.DEFAULT_SETTLE_POLLING_INTERVAL, gt=0)


class StatusCacheConfig(BaseModel):
    refresh_interval: float = Field(default=constants.DEFAULT_REFRESH_INTERVAL, gt=0)
    max_workers: int = Field(default=constants.DEFAULT_MAX_WORKERS, ge=1)


WORKLOAD_MODEL = ResourceModel(
    group=constants.KUEUE_GROUP,
    version=constants.KUEUE_VERSION,
    plural=constants.WORKLOAD_PLURAL,
    kind=constants.WORKLOAD_KIND,
)

LOCAL_QUEUE_MODEL = ResourceModel(
    group=constants.KUEUE_GROUP,
    version=constants.KUEUE_VERSION,
    plural=constants.LOCAL_QUEUE_PLURAL,
    kind=constants.LOCAL_QUEUE_KIND,
)

CLUSTER_QUEUE_MODEL = ResourceModel(
    group=constants.KUEUE_GROUP,
    version=constants.KUEUE_VERSION,
    plural=constants.CLUSTER_QUEUE_PLURAL,
    kind=constants.CLUSTER_QUEUE_KIND,
    namespaced=False,
)
