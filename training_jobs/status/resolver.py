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

from training_jobs.backends.base import ResourceBackend
import training_jobs.backends.kubernetes.utils as utils
import training_jobs.common.utils as common_utils
from training_jobs.constants import constants
from training_jobs.types import types

logger = logging.getLogger(__name__)


class WorkloadResolver:
    """Find the Kueue Workload that admits a training job.

    Kueue writes the job UID and the job name as labels on the Workload. The labels may be
    missing while Kueue has not processed the job yet, so the absence of a Workload is a
    regular outcome and never an error.
    """

    def __init__(self, backend: ResourceBackend):
        self.backend = backend

    def find_workload(self, job: types.TrainingJob) -> Optional[types.Workload]:
        try:
            # The UID is the most reliable correlation.
            if job.uid:
                workload = self._find_by_label(
                    job, constants.WORKLOAD_JOB_UID_LABEL, job.uid
                )
                if workload:
                    return workload

            return self._find_by_label(job, constants.WORKLOAD_JOB_NAME_LABEL, job.name)

        except Exception as e:
            logger.warning(
                f"Failed to get {constants.WORKLOAD_KIND} for {job.kind.value} "
                f"{job.namespace}/{job.name}: {utils.get_error_message(e)}"
            )
            return None

    def _find_by_label(
        self, job: types.TrainingJob, label: str, value: str
    ) -> Optional[types.Workload]:
        items = self.backend.list_resources(
            types.WORKLOAD_MODEL,
            namespace=job.namespace,
            label_selector=utils.get_label_selector(label, value),
        )
        if not items:
            return None

        workloads = [utils.get_workload_from_cr(item) for item in items]
        if len(workloads) > 1:
            logger.warning(
                f"Found {len(workloads)} {constants.WORKLOAD_KIND}s for {job.kind.value} "
                f"{job.namespace}/{job.name} with label {label}, using the most recent one"
            )
            # Sort is stable, so equal timestamps keep the list order.
            workloads.sort(
                key=lambda w: common_utils.timestamp_sort_key(w.creation_timestamp),
                reverse=True,
            )
        return workloads[0]
