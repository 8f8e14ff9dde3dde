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

import abc
from typing import Any, Optional

from training_jobs.types import types


class ResourceBackend(abc.ABC):
    """Base class for the resource backends.

    Backends exchange raw custom resources as dictionaries. The `namespace` argument is
    ignored for cluster scoped resources.
    """

    namespace: str

    @abc.abstractmethod
    def list_resources(
        self,
        model: types.ResourceModel,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError()

    @abc.abstractmethod
    def get_resource(
        self,
        model: types.ResourceModel,
        namespace: Optional[str],
        name: str,
    ) -> dict[str, Any]:
        raise NotImplementedError()

    @abc.abstractmethod
    def patch_resource(
        self,
        model: types.ResourceModel,
        namespace: Optional[str],
        name: str,
        patch: list[dict[str, Any]],
    ) -> dict[str, Any]:
        raise NotImplementedError()

    @abc.abstractmethod
    def delete_resource(
        self,
        model: types.ResourceModel,
        namespace: Optional[str],
        name: str,
    ) -> Any:
        raise NotImplementedError()
