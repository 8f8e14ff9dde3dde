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
from typing import Optional

import training_jobs.common.utils as common_utils
from training_jobs.constants import constants
from training_jobs.kinds import kinds
from training_jobs.status.resolver import WorkloadResolver
from training_jobs.types import types

logger = logging.getLogger(__name__)


def is_terminal(state: types.JobState) -> bool:
    return state in types.TERMINAL_STATES


def get_current_condition(conditions: list[types.Condition]) -> Optional[types.Condition]:
    """Get the most recent condition that is in effect."""
    sorted_conditions = sorted(
        conditions,
        key=lambda c: common_utils.timestamp_sort_key(c.last_transition_time),
        reverse=True,
    )
    for c in sorted_conditions:
        if c.status == constants.CONDITION_TRUE:
            return c
    return None


def get_basic_status(job: types.TrainingJob) -> types.JobState:
    """Get the job state from the job's own status, without the hibernation overlay."""
    strategy = kinds.get_strategy(job)
    conditions = strategy.get_conditions(job)

    # The job controller has not observed the job yet.
    if not conditions and not strategy.has_observed_status(job):
        return types.JobState.PENDING

    current = get_current_condition(conditions)
    if current is None:
        return types.JobState.UNKNOWN

    state = strategy.condition_states.get(current.type)
    if state is None:
        state = strategy.secondary_state(job)
    return state or types.JobState.UNKNOWN


def is_waiting_in_queue(workload: types.Workload) -> bool:
    quota_reserved = workload.get_condition(constants.WORKLOAD_QUOTA_RESERVED)
    pods_ready = workload.get_condition(constants.WORKLOAD_PODS_READY)
    return bool(
        quota_reserved
        and quota_reserved.status == constants.CONDITION_FALSE
        and quota_reserved.reason == constants.WORKLOAD_QUOTA_RESERVED_PENDING_REASON
        and pods_ready
        and pods_ready.status == constants.CONDITION_FALSE
        and pods_ready.reason == constants.WORKLOAD_PODS_READY_WAIT_FOR_START_REASON
    )


def derive_status(
    job: types.TrainingJob,
    workload: Optional[types.Workload] = None,
) -> types.JobState:
    """Get the canonical job state from the job and its optional Kueue Workload.

    Terminal states are returned as they are. Otherwise the hibernation state of the
    Workload takes precedence over the job conditions:

    1. Workload is not active: the job is paused.
    2. Workload is active but the job is suspended: the job was preempted.
    3. Workload waits for quota and for Pods to start: the job is queued.

    Without a Workload only the job's own suspend flag is checked.
    """
    state = get_basic_status(job)
    if is_terminal(state):
        return state

    strategy = kinds.get_strategy(job)
    suspended = strategy.get_suspend_flag(job)

    if workload is None:
        return strategy.paused_state if suspended else state

    if not workload.active:
        return strategy.paused_state
    if suspended:
        return types.JobState.PREEMPTED
    if is_waiting_in_queue(workload):
        return types.JobState.QUEUED
    return state


def get_job_status(job: types.TrainingJob, resolver: WorkloadResolver) -> types.JobState:
    """Get the job state and resolve its Workload for the hibernation overlay.

    The Workload is never looked up for terminal jobs. Failures degrade to the state
    derived from the job alone.
    """
    try:
        state = get_basic_status(job)
        if is_terminal(state):
            return state
        return derive_status(job, resolver.find_workload(job))
    except Exception as e:
        logger.warning(
            f"Failed to get status for {job.kind.value} {job.namespace}/{job.name}: {e}"
        )
        return derive_status(job, None)


def get_job_progress(job: types.TrainingJob) -> float:
    """Get the training progress percentage clamped to [0, 100].

    Missing or malformed values are reported as 0.
    """
    value = kinds.get_strategy(job).get_progress(job)
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        progress = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN fails every comparison.
    if progress != progress:
        return 0.0
    return min(max(progress, 0.0), 100.0)


def get_job_num_nodes(job: types.TrainingJob) -> int:
    return kinds.get_strategy(job).get_num_nodes(job)


def get_job_actions(
    job: types.TrainingJob,
    state: Optional[types.JobState] = None,
) -> list[str]:
    """Get the actions that callers can offer for the job in the given state.

    Hibernation can't be toggled for terminal jobs.
    """
    state = state or derive_status(job)
    if is_terminal(state):
        return [constants.ACTION_DELETE]

    strategy = kinds.get_strategy(job)
    hibernated = state in types.HIBERNATED_STATES or strategy.get_suspend_flag(job)
    return [
        constants.ACTION_RESUME if hibernated else constants.ACTION_PAUSE,
        constants.ACTION_DELETE,
    ]


def filter_jobs(
    jobs: list[types.TrainingJob],
    statuses: Optional[dict[str, types.JobState]] = None,
    name: Optional[str] = None,
    status: Optional[str] = None,
    queue: Optional[str] = None,
) -> list[types.TrainingJob]:
    """Filter the jobs by display name, status, and queue name substrings, ignoring case.

    The status of a job is taken from `statuses` by the job identity, or derived from the job
    when it is not there.
    """
    statuses = statuses or {}
    result = []
    for job in jobs:
        if name and name.lower() not in job.display_name.lower():
            continue
        if status:
            job_status = statuses.get(job.identity) or derive_status(job)
            if status.lower() not in job_status.value.lower():
                continue
        if queue and queue.lower() not in (job.queue_name or "").lower():
            continue
        result.append(job)
    return result
