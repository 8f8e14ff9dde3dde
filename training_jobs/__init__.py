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

# Import the training jobs client.
from training_jobs.api.training_client import TrainingJobsClient

# Import common types.
from training_jobs.common.types import KubernetesBackendConfig

# Import the hibernation reconciler and the status cache.
from training_jobs.hibernation.reconciler import HibernationReconciler
from training_jobs.status.cache import StatusCache
from training_jobs.status.resolver import WorkloadResolver

# Import the status derivation functions.
from training_jobs.status.status import derive_status, get_job_status

# Import the training jobs types.
from training_jobs.types.types import (
    Condition,
    HibernationConfig,
    HibernationResult,
    JobKind,
    JobState,
    PyTorchJob,
    RayJob,
    StatusCacheConfig,
    TrainingJob,
    TrainJob,
    Workload,
)

__all__ = [
    "Condition",
    "derive_status",
    "get_job_status",
    "HibernationConfig",
    "HibernationReconciler",
    "HibernationResult",
    "JobKind",
    "JobState",
    "KubernetesBackendConfig",
    "PyTorchJob",
    "RayJob",
    "StatusCache",
    "StatusCacheConfig",
    "TrainingJob",
    "TrainingJobsClient",
    "TrainJob",
    "Workload",
    "WorkloadResolver",
]
