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

import json
from datetime import datetime
from typing import Any, Optional

from kubernetes.client.exceptions import ApiException

from training_jobs.constants import constants
from training_jobs.types import types


def get_replace_patch(path: str, value: Any) -> list[dict[str, Any]]:
    """Get the single operation JSON patch that replaces the field at the given path."""
    return [{"op": "replace", "path": path, "value": value}]


def get_label_selector(key: str, value: str) -> str:
    return f"{key}={value}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def format_timestamp(value: Any) -> Optional[str]:
    """Get the RFC 3339 string of the timestamp, that is comparable as a string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    return str(value)


def get_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def get_conditions_from_status(status: dict[str, Any]) -> list[types.Condition]:
    conditions = []
    for c in status.get("conditions") or []:
        if not (isinstance(c, dict) and c.get("type")):
            continue
        conditions.append(
            types.Condition(
                type=c["type"],
                status=str(c.get("status", "")),
                last_transition_time=format_timestamp(c.get("lastTransitionTime")),
                reason=c.get("reason"),
                message=c.get("message"),
            )
        )
    return conditions


def get_job_metadata(cr: dict[str, Any]) -> dict[str, Any]:
    """Get the constructor arguments that are common to every training job CR."""
    metadata = cr.get("metadata") or {}
    if not (metadata.get("name") and metadata.get("namespace")):
        raise ValueError(f"{cr.get('kind')} CR is invalid: {metadata}")

    return {
        "name": metadata["name"],
        "namespace": metadata["namespace"],
        "uid": metadata.get("uid"),
        "labels": dict(metadata.get("labels") or {}),
        "annotations": dict(metadata.get("annotations") or {}),
        "creation_timestamp": parse_timestamp(metadata.get("creationTimestamp")),
        "conditions": get_conditions_from_status(cr.get("status") or {}),
    }


def get_pytorchjob_from_cr(cr: dict[str, Any]) -> types.PyTorchJob:
    spec = cr.get("spec") or {}
    status = cr.get("status") or {}
    replica_specs = spec.get("pytorchReplicaSpecs") or {}

    replica_statuses = {
        replica_type: types.ReplicaStatus(
            active=get_int(s.get("active")),
            succeeded=get_int(s.get("succeeded")),
            failed=get_int(s.get("failed")),
        )
        for replica_type, s in (status.get("replicaStatuses") or {}).items()
        if isinstance(s, dict)
    }

    return types.PyTorchJob(
        **get_job_metadata(cr),
        suspend=(spec.get("runPolicy") or {}).get("suspend") is True,
        completion_percentage=status.get("completionPercentage"),
        replica_statuses=replica_statuses,
        master_replicas=get_int(
            (replica_specs.get(constants.PYTORCHJOB_MASTER) or {}).get("replicas")
        ),
        worker_replicas=get_int(
            (replica_specs.get(constants.PYTORCHJOB_WORKER) or {}).get("replicas")
        ),
    )


def get_progression_status(progression: dict[str, Any]) -> types.ProgressionStatus:
    metrics = {
        k: str(v)
        for k, v in {
            **(progression.get("metrics") or {}),
            **(progression.get("trainingMetrics") or {}),
        }.items()
        if v is not None and v != ""
    }

    return types.ProgressionStatus(
        percentage_complete=progression.get("percentageComplete"),
        current_step=progression.get("currentStep"),
        total_steps=progression.get("totalSteps"),
        current_epoch=progression.get("currentEpoch"),
        total_epochs=progression.get("totalEpochs"),
        estimated_time_remaining=progression.get("estimatedTimeRemaining"),
        last_update_time=progression.get("lastUpdateTime"),
        message=progression.get("message"),
        metrics=metrics,
    )


def get_trainjob_from_cr(cr: dict[str, Any]) -> types.TrainJob:
    spec = cr.get("spec") or {}
    status = cr.get("status") or {}

    jobs_status = [
        types.ReplicatedJobStatus(
            name=s.get("name", ""),
            active=get_int(s.get("active")),
            ready=get_int(s.get("ready")),
            succeeded=get_int(s.get("succeeded")),
            failed=get_int(s.get("failed")),
            suspended=get_int(s.get("suspended")),
        )
        for s in status.get("jobsStatus") or []
        if isinstance(s, dict)
    ]

    progression = status.get("progressionStatus")

    return types.TrainJob(
        **get_job_metadata(cr),
        suspend=spec.get("suspend") is True,
        runtime_ref=(spec.get("runtimeRef") or {}).get("name"),
        num_nodes=(spec.get("trainer") or {}).get("numNodes"),
        jobs_status=jobs_status,
        progression=get_progression_status(progression) if progression else None,
    )


def get_rayjob_from_cr(cr: dict[str, Any]) -> types.RayJob:
    spec = cr.get("spec") or {}
    status = cr.get("status") or {}
    cluster_spec = spec.get("rayClusterSpec") or {}

    head_group = cluster_spec.get("headGroupSpec") or {}
    worker_replicas = sum(
        get_int(g.get("replicas")) for g in cluster_spec.get("workerGroupSpecs") or []
    )

    return types.RayJob(
        **get_job_metadata(cr),
        suspend=spec.get("suspend") is True,
        job_status=status.get("jobStatus") or None,
        job_deployment_status=status.get("jobDeploymentStatus") or None,
        head_replicas=get_int(head_group.get("replicas"), default=1),
        worker_replicas=worker_replicas,
        start_time=format_timestamp(status.get("startTime")),
        end_time=format_timestamp(status.get("endTime")),
        message=status.get("message"),
    )


def get_workload_from_cr(cr: dict[str, Any]) -> types.Workload:
    metadata = cr.get("metadata") or {}
    if not (metadata.get("name") and metadata.get("namespace")):
        raise ValueError(f"{constants.WORKLOAD_KIND} CR is invalid: {metadata}")

    spec = cr.get("spec") or {}

    return types.Workload(
        name=metadata["name"],
        namespace=metadata["namespace"],
        uid=metadata.get("uid"),
        labels=dict(metadata.get("labels") or {}),
        creation_timestamp=format_timestamp(metadata.get("creationTimestamp")),
        # Kueue defaults spec.active to true.
        active=spec.get("active") is not False,
        queue_name=spec.get("queueName"),
        conditions=get_conditions_from_status(cr.get("status") or {}),
    )


def get_error_message(e: Exception) -> str:
    """Get the error message together with the reason of the error that caused it.

    For Kubernetes API errors the reason is the message of the returned Status object, or the
    HTTP reason when the body is not a Status.
    """
    cause = e.__cause__
    if cause is None:
        return str(e)

    if isinstance(cause, ApiException):
        try:
            status = json.loads(cause.body)
        except (TypeError, ValueError):
            status = None
        reason = status.get("message") if isinstance(status, dict) else None
        reason = reason or cause.reason
        detail = f"{cause.status} {reason}" if cause.status else reason
    else:
        detail = str(cause)

    return f"{e}: {detail}" if detail else str(e)
