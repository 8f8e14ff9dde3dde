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

# Shared test utilities and types for the training jobs tests.

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from training_jobs.backends.base import ResourceBackend
from training_jobs.constants import constants
from training_jobs.types import types

# Common status constants
SUCCESS = "success"
FAILED = "Failed"
DEFAULT_NAMESPACE = "default"
TIMEOUT = "timeout"
RUNTIME = "runtime"

JOB_NAME = "train-llama"
JOB_UID = "0f4a6b2e-51a1-4bd5-9a31-8c2f3e9d7a10"
WORKLOAD_NAME = "pytorchjob-train-llama-3f2a1"
QUEUE_NAME = "team-a"
CLUSTER_QUEUE_NAME = "gpu-cluster-queue"


@dataclass
class TestCase:
    name: str
    expected_status: str = SUCCESS
    config: dict[str, Any] = field(default_factory=dict)
    expected_output: Optional[Any] = None
    expected_error: Optional[type[Exception]] = None
    # Prevent pytest from collecting this dataclass as a test
    __test__ = False


def get_condition(
    condition_type: str,
    status: str = constants.CONDITION_TRUE,
    last_transition_time: Optional[str] = None,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    condition = {"type": condition_type, "status": status}
    if last_transition_time:
        condition["lastTransitionTime"] = last_transition_time
    if reason:
        condition["reason"] = reason
    return condition


def get_metadata(
    name: str,
    uid: Optional[str],
    labels: Optional[dict[str, str]],
    annotations: Optional[dict[str, str]] = None,
    creation_timestamp: str = "2025-06-01T10:00:00Z",
) -> dict[str, Any]:
    metadata = {
        "name": name,
        "namespace": DEFAULT_NAMESPACE,
        "labels": labels or {},
        "annotations": annotations or {},
        "creationTimestamp": creation_timestamp,
    }
    if uid:
        metadata["uid"] = uid
    return metadata


def get_pytorchjob_cr(
    name: str = JOB_NAME,
    uid: Optional[str] = JOB_UID,
    conditions: Optional[list[dict[str, Any]]] = None,
    suspend: bool = False,
    replica_statuses: Optional[dict[str, Any]] = None,
    completion_percentage: Optional[Any] = None,
    labels: Optional[dict[str, str]] = None,
    annotations: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    status = {}
    if conditions is not None:
        status["conditions"] = conditions
    if replica_statuses is not None:
        status["replicaStatuses"] = replica_statuses
    if completion_percentage is not None:
        status["completionPercentage"] = completion_percentage

    return {
        "apiVersion": f"{constants.PYTORCHJOB_GROUP}/{constants.PYTORCHJOB_VERSION}",
        "kind": constants.PYTORCHJOB_KIND,
        "metadata": get_metadata(name, uid, labels, annotations),
        "spec": {
            "runPolicy": {"suspend": suspend},
            "pytorchReplicaSpecs": {
                constants.PYTORCHJOB_MASTER: {"replicas": 1},
                constants.PYTORCHJOB_WORKER: {"replicas": 3},
            },
        },
        "status": status,
    }


def get_trainjob_cr(
    name: str = JOB_NAME,
    uid: Optional[str] = JOB_UID,
    conditions: Optional[list[dict[str, Any]]] = None,
    suspend: bool = False,
    jobs_status: Optional[list[dict[str, Any]]] = None,
    progression: Optional[dict[str, Any]] = None,
    num_nodes: Optional[int] = 2,
    labels: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    status = {}
    if conditions is not None:
        status["conditions"] = conditions
    if jobs_status is not None:
        status["jobsStatus"] = jobs_status
    if progression is not None:
        status["progressionStatus"] = progression

    spec = {"suspend": suspend, "runtimeRef": {"name": "torch-distributed"}}
    if num_nodes is not None:
        spec["trainer"] = {"numNodes": num_nodes}

    return {
        "apiVersion": f"{constants.TRAINJOB_GROUP}/{constants.TRAINJOB_VERSION}",
        "kind": constants.TRAINJOB_KIND,
        "metadata": get_metadata(name, uid, labels),
        "spec": spec,
        "status": status,
    }


def get_rayjob_cr(
    name: str = JOB_NAME,
    uid: Optional[str] = JOB_UID,
    job_status: Optional[str] = None,
    job_deployment_status: Optional[str] = None,
    suspend: bool = False,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    labels: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    status = {}
    if job_status is not None:
        status["jobStatus"] = job_status
    if job_deployment_status is not None:
        status["jobDeploymentStatus"] = job_deployment_status
    if start_time is not None:
        status["startTime"] = start_time
    if end_time is not None:
        status["endTime"] = end_time

    return {
        "apiVersion": f"{constants.RAYJOB_GROUP}/{constants.RAYJOB_VERSION}",
        "kind": constants.RAYJOB_KIND,
        "metadata": get_metadata(name, uid, labels),
        "spec": {
            "suspend": suspend,
            "rayClusterSpec": {
                "headGroupSpec": {},
                "workerGroupSpecs": [{"replicas": 2}, {"replicas": 1}],
            },
        },
        "status": status,
    }


def get_workload_cr(
    name: str = WORKLOAD_NAME,
    job_name: Optional[str] = JOB_NAME,
    job_uid: Optional[str] = JOB_UID,
    active: Optional[bool] = True,
    conditions: Optional[list[dict[str, Any]]] = None,
    creation_timestamp: str = "2025-06-01T10:00:01Z",
) -> dict[str, Any]:
    labels = {}
    if job_name:
        labels[constants.WORKLOAD_JOB_NAME_LABEL] = job_name
    if job_uid:
        labels[constants.WORKLOAD_JOB_UID_LABEL] = job_uid

    spec: dict[str, Any] = {"queueName": QUEUE_NAME}
    if active is not None:
        spec["active"] = active

    return {
        "apiVersion": f"{constants.KUEUE_GROUP}/{constants.KUEUE_VERSION}",
        "kind": constants.WORKLOAD_KIND,
        "metadata": {
            "name": name,
            "namespace": DEFAULT_NAMESPACE,
            "uid": f"{name}-uid",
            "labels": labels,
            "creationTimestamp": creation_timestamp,
        },
        "spec": spec,
        "status": {"conditions": conditions or []},
    }


def get_queued_workload_conditions() -> list[dict[str, Any]]:
    return [
        get_condition(
            constants.WORKLOAD_QUOTA_RESERVED,
            constants.CONDITION_FALSE,
            reason=constants.WORKLOAD_QUOTA_RESERVED_PENDING_REASON,
        ),
        get_condition(
            constants.WORKLOAD_PODS_READY,
            constants.CONDITION_FALSE,
            reason=constants.WORKLOAD_PODS_READY_WAIT_FOR_START_REASON,
        ),
    ]


class FakeBackend(ResourceBackend):
    """In-memory backend that applies JSON patches to stored custom resources.

    Errors can be injected with `errors`, keyed by the method, e.g. `patch`, or by the
    method and the resource plural, e.g. `patch:workloads`. The `on_patch` hook is called after
    every patch with the model and the patched resource, e.g. to simulate Kueue. The `on_get`
    hook is called with the stored resource before every read. Like the API server, a replace
    of a field that does not exist fails and leaves the resource unchanged.
    """

    def __init__(
        self,
        resources: Optional[list[tuple[types.ResourceModel, dict[str, Any]]]] = None,
        errors: Optional[dict[str, Exception]] = None,
        on_patch: Optional[Callable[[types.ResourceModel, dict[str, Any]], None]] = None,
        on_get: Optional[Callable[[types.ResourceModel, dict[str, Any]], None]] = None,
    ):
        self.namespace = DEFAULT_NAMESPACE
        self.errors = errors or {}
        self.on_patch = on_patch
        self.on_get = on_get
        self.calls: list[tuple[str, str, Optional[str], Any]] = []
        self.lock = threading.Lock()
        self.resources: dict[tuple[str, Optional[str], str], dict[str, Any]] = {}
        for model, cr in resources or []:
            self.add(model, cr)

    def add(self, model: types.ResourceModel, cr: dict[str, Any]):
        metadata = cr["metadata"]
        namespace = metadata.get("namespace") if model.namespaced else None
        self.resources[(model.plural, namespace, metadata["name"])] = copy.deepcopy(cr)

    def stored(self, model: types.ResourceModel, name: str) -> dict[str, Any]:
        namespace = DEFAULT_NAMESPACE if model.namespaced else None
        return self.resources[(model.plural, namespace, name)]

    def count(self, method: str, model: Optional[types.ResourceModel] = None) -> int:
        return len(
            [c for c in self.calls if c[0] == method and (model is None or c[1] == model.plural)]
        )

    def _record(self, method: str, model: types.ResourceModel, name: Optional[str], arg: Any):
        with self.lock:
            self.calls.append((method, model.plural, name, arg))
        for key in (f"{method}:{model.plural}", method):
            if key in self.errors:
                raise self.errors[key]

    def _key(self, model: types.ResourceModel, namespace: Optional[str], name: str):
        key = (model.plural, (namespace or self.namespace) if model.namespaced else None, name)
        if key not in self.resources:
            raise RuntimeError(f"Failed to get {model.kind}: {namespace}/{name}")
        return key

    def list_resources(self, model, namespace=None, label_selector=None):
        self._record("list", model, None, label_selector)
        namespace = namespace or self.namespace
        items = []
        for (plural, ns, _), cr in self.resources.items():
            if plural != model.plural or (model.namespaced and ns != namespace):
                continue
            if label_selector:
                key, value = label_selector.split("=", 1)
                if (cr["metadata"].get("labels") or {}).get(key) != value:
                    continue
            items.append(copy.deepcopy(cr))
        return items

    def get_resource(self, model, namespace, name):
        self._record("get", model, name, None)
        cr = self.resources[self._key(model, namespace, name)]
        if self.on_get:
            self.on_get(model, cr)
        return copy.deepcopy(cr)

    def patch_resource(self, model, namespace, name, patch):
        self._record("patch", model, name, patch)
        cr = self.resources[self._key(model, namespace, name)]
        # The whole patch is rejected when any replaced field does not exist.
        targets = []
        for op in patch:
            *parents, leaf = op["path"].strip("/").split("/")
            target = cr
            for p in parents:
                target = target.get(p) if isinstance(target, dict) else None
            if not (isinstance(target, dict) and leaf in target):
                raise RuntimeError(
                    f"Failed to patch {model.kind}: {namespace}/{name}"
                ) from ValueError(
                    f"replace operation does not apply: doc is missing path: {op['path']}"
                )
            targets.append((target, leaf, op["value"]))
        for target, leaf, value in targets:
            target[leaf] = value
        if self.on_patch:
            self.on_patch(model, cr)
        return copy.deepcopy(cr)

    def delete_resource(self, model, namespace, name):
        self._record("delete", model, name, None)
        del self.resources[self._key(model, namespace, name)]
