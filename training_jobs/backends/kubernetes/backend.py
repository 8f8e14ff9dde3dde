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
import multiprocessing
from typing import Any, Optional

from kubernetes import client, config

import training_jobs.common.constants as common_constants
from training_jobs.common.types import KubernetesBackendConfig
import training_jobs.common.utils as common_utils
from training_jobs.backends.base import ResourceBackend
from training_jobs.types import types

logger = logging.getLogger(__name__)


class KubernetesBackend(ResourceBackend):
    def __init__(self, cfg: KubernetesBackendConfig):
        if cfg.namespace is None:
            cfg.namespace = common_utils.get_default_target_namespace(cfg.context)

        # If client configuration is not set, use kube-config to access Kubernetes APIs.
        if cfg.client_configuration is None:
            # Load kube-config or in-cluster config.
            if cfg.config_file or not common_utils.is_running_in_k8s():
                config.load_kube_config(config_file=cfg.config_file, context=cfg.context)
            else:
                config.load_incluster_config()

        k8s_client = client.ApiClient(cfg.client_configuration)
        self.custom_api = client.CustomObjectsApi(k8s_client)

        self.namespace = cfg.namespace

    def list_resources(
        self,
        model: types.ResourceModel,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        namespace = namespace or self.namespace
        kwargs = {"label_selector": label_selector} if label_selector else {}
        try:
            if model.namespaced:
                thread = self.custom_api.list_namespaced_custom_object(
                    model.group,
                    model.version,
                    namespace,
                    model.plural,
                    async_req=True,
                    **kwargs,
                )
            else:
                thread = self.custom_api.list_cluster_custom_object(
                    model.group,
                    model.version,
                    model.plural,
                    async_req=True,
                    **kwargs,
                )

            response = thread.get(common_constants.DEFAULT_TIMEOUT)

        except multiprocessing.TimeoutError as e:
            raise TimeoutError(
                f"Timeout to list {model.kind}s in namespace: {namespace}"
            ) from e
        except Exception as e:
            raise RuntimeError(f"Failed to list {model.kind}s in namespace: {namespace}") from e

        items = (response or {}).get("items") or []
        logger.debug(
            f"Listed {len(items)} {model.kind}s in namespace: {namespace}, "
            f"label selector: {label_selector}"
        )
        return items

    def get_resource(
        self,
        model: types.ResourceModel,
        namespace: Optional[str],
        name: str,
    ) -> dict[str, Any]:
        namespace = namespace or self.namespace
        try:
            if model.namespaced:
                thread = self.custom_api.get_namespaced_custom_object(
                    model.group,
                    model.version,
                    namespace,
                    model.plural,
                    name,
                    async_req=True,
                )
            else:
                thread = self.custom_api.get_cluster_custom_object(
                    model.group,
                    model.version,
                    model.plural,
                    name,
                    async_req=True,
                )

            return thread.get(common_constants.DEFAULT_TIMEOUT)

        except multiprocessing.TimeoutError as e:
            raise TimeoutError(f"Timeout to get {model.kind}: {namespace}/{name}") from e
        except Exception as e:
            raise RuntimeError(f"Failed to get {model.kind}: {namespace}/{name}") from e

    def patch_resource(
        self,
        model: types.ResourceModel,
        namespace: Optional[str],
        name: str,
        patch: list[dict[str, Any]],
    ) -> dict[str, Any]:
        namespace = namespace or self.namespace
        try:
            # The list body is sent as the application/json-patch+json content type.
            if model.namespaced:
                thread = self.custom_api.patch_namespaced_custom_object(
                    model.group,
                    model.version,
                    namespace,
                    model.plural,
                    name,
                    patch,
                    async_req=True,
                )
            else:
                thread = self.custom_api.patch_cluster_custom_object(
                    model.group,
                    model.version,
                    model.plural,
                    name,
                    patch,
                    async_req=True,
                )

            result = thread.get(common_constants.DEFAULT_TIMEOUT)

        except multiprocessing.TimeoutError as e:
            raise TimeoutError(f"Timeout to patch {model.kind}: {namespace}/{name}") from e
        except Exception as e:
            raise RuntimeError(f"Failed to patch {model.kind}: {namespace}/{name}") from e

        logger.debug(f"{model.kind} {namespace}/{name} has been patched: {patch}")
        return result

    def delete_resource(
        self,
        model: types.ResourceModel,
        namespace: Optional[str],
        name: str,
    ) -> Any:
        namespace = namespace or self.namespace
        try:
            if model.namespaced:
                result = self.custom_api.delete_namespaced_custom_object(
                    model.group,
                    model.version,
                    namespace,
                    model.plural,
                    name=name,
                )
            else:
                result = self.custom_api.delete_cluster_custom_object(
                    model.group,
                    model.version,
                    model.plural,
                    name=name,
                )
        except multiprocessing.TimeoutError as e:
            raise TimeoutError(f"Timeout to delete {model.kind}: {namespace}/{name}") from e
        except Exception as e:
            raise RuntimeError(f"Failed to delete {model.kind}: {namespace}/{name}") from e

        logger.debug(f"{model.kind} {namespace}/{name} has been deleted")
        return result
