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

import os

# The API group and version of the PyTorchJob managed by the Kubeflow Training Operator.
PYTORCHJOB_GROUP = "kubeflow.org"
PYTORCHJOB_VERSION = "v1"
PYTORCHJOB_KIND = "PyTorchJob"
PYTORCHJOB_PLURAL = "pytorchjobs"

# The API group and version of the TrainJob managed by the Kubeflow Trainer.
TRAINJOB_GROUP = "trainer.kubeflow.org"
TRAINJOB_VERSION = "v1alpha1"
TRAINJOB_KIND = "TrainJob"
TRAINJOB_PLURAL = "trainjobs"

# The API group and version of the RayJob managed by KubeRay.
RAYJOB_GROUP = "ray.io"
RAYJOB_VERSION = "v1"
RAYJOB_KIND = "RayJob"
RAYJOB_PLURAL = "rayjobs"

# The API group and version of the Kueue resources.
KUEUE_GROUP = "kueue.x-k8s.io"
KUEUE_VERSION = "v1beta1"

WORKLOAD_KIND = "Workload"
WORKLOAD_PLURAL = "workloads"

LOCAL_QUEUE_KIND = "LocalQueue"
LOCAL_QUEUE_PLURAL = "localqueues"

CLUSTER_QUEUE_KIND = "ClusterQueue"
CLUSTER_QUEUE_PLURAL = "clusterqueues"

# The label key that Kueue sets on a Workload to point to the UID of its job.
WORKLOAD_JOB_UID_LABEL = f"{KUEUE_GROUP}/job-uid"

# The label key that Kueue sets on a Workload to point to the name of its job.
WORKLOAD_JOB_NAME_LABEL = f"{KUEUE_GROUP}/job-name"

# The label key on a job that selects the LocalQueue the job is submitted to.
QUEUE_NAME_LABEL = f"{KUEUE_GROUP}/queue-name"

# The annotation key for the human readable name of a job.
DISPLAY_NAME_ANNOTATION = "opendatahub.io/display-name"

# JSON patch paths of the fields that control hibernation.
WORKLOAD_ACTIVE_PATH = "/spec/active"
PYTORCHJOB_SUSPEND_PATH = "/spec/runPolicy/suspend"
TRAINJOB_SUSPEND_PATH = "/spec/suspend"
RAYJOB_SUSPEND_PATH = "/spec/suspend"

# The value of a condition status that is currently in effect.
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"

# Workload conditions used to detect that a job is waiting in the queue.
WORKLOAD_QUOTA_RESERVED = "QuotaReserved"
WORKLOAD_QUOTA_RESERVED_PENDING_REASON = "Pending"
WORKLOAD_PODS_READY = "PodsReady"
WORKLOAD_PODS_READY_WAIT_FOR_START_REASON = "WaitForStart"

# PyTorchJob replica types.
PYTORCHJOB_MASTER = "Master"
PYTORCHJOB_WORKER = "Worker"

# How long in seconds the hibernation reconciler waits for Kueue to propagate the
# Workload active flag into the job suspend flag before patching the job directly.
DEFAULT_SETTLE_TIMEOUT = float(os.getenv("TRAINING_JOBS_SETTLE_TIMEOUT", "2"))

# How often in seconds the hibernation reconciler re-reads the job while settling.
DEFAULT_SETTLE_POLLING_INTERVAL = float(
    os.getenv("TRAINING_JOBS_SETTLE_POLLING_INTERVAL", "0.5")
)

# How often in seconds the status cache refreshes non-terminal jobs.
DEFAULT_REFRESH_INTERVAL = float(os.getenv("TRAINING_JOBS_REFRESH_INTERVAL", "10"))

# The maximum number of jobs whose status is computed concurrently.
DEFAULT_MAX_WORKERS = 8

# Actions that callers can offer for a job.
ACTION_PAUSE = "Pause"
ACTION_RESUME = "Resume"
ACTION_DELETE = "Delete"
