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
from datetime import datetime, timezone

import pytest
from kubernetes.client.exceptions import ApiException

import training_jobs.backends.kubernetes.utils as utils
from training_jobs.constants import constants
from training_jobs.test.common import (
    JOB_NAME,
    JOB_UID,
    QUEUE_NAME,
    TestCase,
    get_condition,
    get_pytorchjob_cr,
    get_trainjob_cr,
    get_workload_cr,
)


@pytest.mark.parametrize(
    "test_case",
    [
        TestCase(
            name="datetime timestamp",
            config={"value": datetime(2025, 6, 1, 10, 0, 5, tzinfo=timezone.utc)},
            expected_output="2025-06-01T10:00:05Z",
        ),
        TestCase(
            name="string timestamp",
            config={"value": "2025-06-01T10:00:05Z"},
            expected_output="2025-06-01T10:00:05Z",
        ),
        TestCase(
            name="missing timestamp",
            config={"value": None},
            expected_output=None,
        ),
    ],
)
def test_format_timestamp(test_case):
    print("Executing test:", test_case.name)
    assert utils.format_timestamp(test_case.config["value"]) == test_case.expected_output
    print("test execution complete")


def test_get_conditions_from_status():
    """Test that malformed conditions are skipped."""
    print("Executing test: get conditions from status")

    conditions = utils.get_conditions_from_status(
        {
            "conditions": [
                get_condition("Running", last_transition_time="2025-06-01T10:00:00Z"),
                {"status": "True"},
                "Created",
            ]
        }
    )

    assert len(conditions) == 1
    assert conditions[0].type == "Running"
    assert conditions[0].status == constants.CONDITION_TRUE
    assert conditions[0].last_transition_time == "2025-06-01T10:00:00Z"
    print("test execution complete")


def test_get_pytorchjob_from_cr():
    print("Executing test: get pytorchjob from CR")

    job = utils.get_pytorchjob_from_cr(
        get_pytorchjob_cr(
            replica_statuses={
                constants.PYTORCHJOB_MASTER: {"active": 1},
                constants.PYTORCHJOB_WORKER: {"active": 2, "failed": 1},
            },
            completion_percentage="42",
            labels={constants.QUEUE_NAME_LABEL: QUEUE_NAME},
            annotations={constants.DISPLAY_NAME_ANNOTATION: "Llama fine-tuning"},
        )
    )

    assert job.name == JOB_NAME
    assert job.identity == JOB_UID
    assert job.queue_name == QUEUE_NAME
    assert job.display_name == "Llama fine-tuning"
    assert job.creation_timestamp == datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)
    assert job.suspend is False
    assert job.completion_percentage == "42"
    assert job.replica_statuses[constants.PYTORCHJOB_WORKER].failed == 1
    assert (job.master_replicas, job.worker_replicas) == (1, 3)
    print("test execution complete")


def test_get_trainjob_from_cr():
    print("Executing test: get trainjob from CR")

    job = utils.get_trainjob_from_cr(
        get_trainjob_cr(
            uid=None,
            jobs_status=[{"name": "node", "active": 2, "ready": 2}],
            progression={
                "percentageComplete": "55",
                "currentStep": 550,
                "totalSteps": 1000,
                "metrics": {"loss": "0.42", "lr": None},
                "trainingMetrics": {"accuracy": 0.9},
            },
        )
    )

    assert job.identity == JOB_NAME
    assert job.display_name == JOB_NAME
    assert job.queue_name is None
    assert job.runtime_ref == "torch-distributed"
    assert job.jobs_status[0].active == 2
    assert job.progression.percentage_complete == "55"
    assert job.progression.current_step == 550
    assert job.progression.metrics == {"loss": "0.42", "accuracy": "0.9"}
    print("test execution complete")


@pytest.mark.parametrize(
    "test_case",
    [
        TestCase(
            name="active workload",
            config={"cr": get_workload_cr(active=True)},
            expected_output=True,
        ),
        TestCase(
            name="inactive workload",
            config={"cr": get_workload_cr(active=False)},
            expected_output=False,
        ),
        TestCase(
            name="workload without active flag",
            config={"cr": get_workload_cr(active=None)},
            expected_output=True,
        ),
    ],
)
def test_get_workload_from_cr(test_case):
    print("Executing test:", test_case.name)

    workload = utils.get_workload_from_cr(test_case.config["cr"])

    assert workload.active is test_case.expected_output
    assert workload.queue_name == QUEUE_NAME
    assert workload.labels[constants.WORKLOAD_JOB_UID_LABEL] == JOB_UID
    print("test execution complete")


def get_chained_error(cause: Exception, body=None) -> RuntimeError:
    if body is not None:
        cause.body = body
    error = RuntimeError(f"Failed to patch TrainJob: default/{JOB_NAME}")
    error.__cause__ = cause
    return error


@pytest.mark.parametrize(
    "test_case",
    [
        TestCase(
            name="error without cause",
            config={"error": TimeoutError(f"Timeout to get TrainJob: default/{JOB_NAME}")},
            expected_output=f"Timeout to get TrainJob: default/{JOB_NAME}",
        ),
        TestCase(
            name="api error with status message",
            config={
                "error": get_chained_error(
                    ApiException(status=422, reason="Unprocessable Entity"),
                    json.dumps({"kind": "Status", "message": "the server rejected our request"}),
                )
            },
            expected_output=f"Failed to patch TrainJob: default/{JOB_NAME}: "
            "422 the server rejected our request",
        ),
        TestCase(
            name="api error without body",
            config={"error": get_chained_error(ApiException(status=404, reason="Not Found"))},
            expected_output=f"Failed to patch TrainJob: default/{JOB_NAME}: 404 Not Found",
        ),
        TestCase(
            name="api error with plain text body",
            config={
                "error": get_chained_error(
                    ApiException(status=500, reason="Internal Server Error"), "etcd unavailable"
                )
            },
            expected_output=f"Failed to patch TrainJob: default/{JOB_NAME}: "
            "500 Internal Server Error",
        ),
        TestCase(
            name="other cause",
            config={"error": get_chained_error(ConnectionError("connection refused"))},
            expected_output=f"Failed to patch TrainJob: default/{JOB_NAME}: connection refused",
        ),
    ],
)
def test_get_error_message(test_case):
    print("Executing test:", test_case.name)

    assert utils.get_error_message(test_case.config["error"]) == test_case.expected_output
    print("test execution complete")
