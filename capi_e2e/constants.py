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

"""Defaults, tool names, Cluster API coordinates and ownership tag helpers."""

from __future__ import annotations

# -- Tool names --
TOOL_LIST_CLUSTERS = "list_clusters"
TOOL_GET_CLUSTER = "get_cluster"
TOOL_CREATE_CLUSTER = "create_cluster"
TOOL_SCALE_CLUSTER = "scale_cluster"
TOOL_DELETE_CLUSTER = "delete_cluster"
TOOL_GET_KUBECONFIG = "get_cluster_kubeconfig"
TOOL_GET_NODES = "get_cluster_nodes"

# -- Tool server endpoints --
TOOL_CALL_PATH = "/tools/call"
TOOL_HEALTH_PATH = "/health"

# -- Cluster API coordinates --
CAPI_GROUP = "cluster.x-k8s.io"
CAPI_VERSION = "v1beta1"
CAPI_CLUSTER_PLURAL = "clusters"

# -- Ownership tags --
DEFAULT_OWNERSHIP_NAMESPACE = "sigs.k8s.io/cluster-api-provider-aws"
OWNERSHIP_TAG_VALUE = "owned"

# ELBv2 DescribeTags accepts at most 20 ARNs per call
ELB_DESCRIBE_TAGS_BATCH = 20

# -- Tool server defaults --
DEFAULT_TOOL_SERVER_URL = "http://localhost:8080"
DEFAULT_TOOL_API_KEY = "test-api-key"
DEFAULT_TOOL_TIMEOUT_SECONDS = 30.0

# -- Cluster API defaults --
DEFAULT_NAMESPACE = "default"
DEFAULT_KUBE_REQUEST_TIMEOUT_SECONDS = 30.0

# -- Cloud defaults --
DEFAULT_AWS_REGION = "us-west-2"

# -- Cluster parameter defaults --
DEFAULT_TEMPLATE_NAME = "aws-cluster-template"
DEFAULT_KUBERNETES_VERSION = "v1.28.0"
DEFAULT_CONTROL_PLANE_INSTANCE_TYPE = "t3.medium"
DEFAULT_WORKER_INSTANCE_TYPE = "t3.small"
DEFAULT_VPC_CIDR = "10.0.0.0/16"
DEFAULT_SUBNET_CIDR = "10.0.1.0/24"
DEFAULT_NODE_POOL_NAME = "workers"

# -- Retry defaults --
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 30.0
DEFAULT_RETRY_MAX_DELAY_SECONDS = 300.0

# -- Timeout defaults (seconds) --
DEFAULT_CREATE_TIMEOUT = 20 * 60
DEFAULT_SCALE_TIMEOUT = 10 * 60
DEFAULT_DELETE_TIMEOUT = 15 * 60
DEFAULT_CLEANUP_TIMEOUT = 10 * 60
DEFAULT_PROVISIONING_TIMEOUT = 5 * 60
DEFAULT_SETTLE_TIMEOUT = 5 * 60
DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_DELETE_POLL_INTERVAL = 10.0

# -- Responsiveness check defaults --
DEFAULT_RESPONSIVENESS_CALLS = 10
DEFAULT_RESPONSIVENESS_CONCURRENCY = 5
DEFAULT_MAX_PARALLEL_SCENARIOS = 4

# Legacy servers omit the structured error code; these fragments identify not-found messages.
NOT_FOUND_MESSAGE_FRAGMENTS = ("not found", "notfound", "does not exist")


def ownership_tag_key(ownership_namespace: str, cluster_name: str) -> str:
    """Build the ownership tag key a provider stamps on cluster resources.

    Args:
        ownership_namespace: Provider tag namespace (e.g. ``sigs.k8s.io/cluster-api-provider-aws``).
        cluster_name: Name of the managed cluster.

    Returns:
        Tag key of the form ``<ownership-namespace>/cluster/<name>``.
    """
    return f"{ownership_namespace}/cluster/{cluster_name}"
