# /*
# Copyright 2026 The Grove Authors.
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
# */

"""Explicit context object carrying the ready-to-use clients for one run."""

from __future__ import annotations

from dataclasses import dataclass

import boto3
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from capi_e2e.config import (
    ClusterApiConfig,
    InventoryConfig,
    RetryConfig,
    TimeoutConfig,
    ToolServerConfig,
)
from capi_e2e.inventory import ResourceInventory
from capi_e2e.observer import ClusterStateObserver
from capi_e2e.retry import RetryPolicy
from capi_e2e.tool_client import ToolClient


@dataclass(frozen=True)
class EnvironmentContext:
    """Clients and budgets shared by every scenario of a run.

    Built once and passed to the orchestrator; every client in it is safe
    for concurrent use.
    """

    tool_client: ToolClient
    observer: ClusterStateObserver
    inventory: ResourceInventory
    retry_policy: RetryPolicy
    timeouts: TimeoutConfig
    namespace: str
    terminate_leftovers: bool = True

    @classmethod
    def from_settings(
        cls,
        tool_cfg: ToolServerConfig | None = None,
        capi_cfg: ClusterApiConfig | None = None,
        inventory_cfg: InventoryConfig | None = None,
        retry_cfg: RetryConfig | None = None,
        timeouts: TimeoutConfig | None = None,
    ) -> EnvironmentContext:
        """Build the context from configuration, loading kubeconfig and AWS sessions.

        Args:
            tool_cfg: Tool server settings; defaults come from E2E_TOOL_* env vars.
            capi_cfg: Cluster API settings; defaults come from E2E_CAPI_* env vars.
            inventory_cfg: AWS settings; defaults come from E2E_AWS_* env vars.
            retry_cfg: Retry budget; defaults come from E2E_RETRY_* env vars.
            timeouts: Scenario budgets; defaults come from E2E_TIMEOUT_* env vars.
        """
        tool_cfg = tool_cfg or ToolServerConfig()
        capi_cfg = capi_cfg or ClusterApiConfig()
        inventory_cfg = inventory_cfg or InventoryConfig()
        retry_cfg = retry_cfg or RetryConfig()
        timeouts = timeouts or TimeoutConfig()

        k8s_config.load_kube_config(context=capi_cfg.kube_context)
        session = boto3.session.Session(region_name=inventory_cfg.region)

        return cls(
            tool_client=ToolClient(tool_cfg),
            observer=ClusterStateObserver(
                k8s_client.CustomObjectsApi(), capi_cfg, poll_interval=timeouts.poll_interval),
            inventory=ResourceInventory(
                session.client("ec2"), session.client("elbv2"), inventory_cfg),
            retry_policy=RetryPolicy.from_config(retry_cfg),
            timeouts=timeouts,
            namespace=capi_cfg.namespace,
            terminate_leftovers=inventory_cfg.terminate_leftovers,
        )
