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

"""Typed request variants and response payloads for the tool-invocation protocol.

Requests form a tagged union on the ``tool`` field so a loose parameter map
is decoded (and rejected when incomplete) once, at the protocol boundary.
Every successful response payload is decoded a second time into the output
model registered for its tool.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from capi_e2e.constants import (
    TOOL_CREATE_CLUSTER,
    TOOL_DELETE_CLUSTER,
    TOOL_GET_CLUSTER,
    TOOL_GET_KUBECONFIG,
    TOOL_GET_NODES,
    TOOL_LIST_CLUSTERS,
    TOOL_SCALE_CLUSTER,
)
from capi_e2e.models import LifecycleRequest, Operation

ClusterName = Annotated[str, Field(min_length=1)]


# ============================================================================
# Requests
# ============================================================================

class _ToolRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    def parameters(self) -> dict[str, Any]:
        """Wire form of the parameters, without the ``tool`` tag."""
        return self.model_dump(mode="json", by_alias=True, exclude={"tool"}, exclude_none=True)


class ClusterVariables(BaseModel):
    """Template variables sent with create_cluster, in the server's camelCase form."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    region: str | None = None
    node_count: int = Field(default=1, ge=0, alias="nodeCount")
    control_plane_instance_type: str = Field(alias="controlPlaneInstanceType")
    worker_instance_type: str = Field(alias="workerInstanceType")
    vpc_cidr: str = Field(alias="vpcCIDR")
    subnet_cidr: str = Field(alias="subnetCIDR")
    ssh_key_name: str | None = Field(default=None, alias="sshKeyName")


class ListClustersRequest(_ToolRequest):
    tool: Literal["list_clusters"] = TOOL_LIST_CLUSTERS


class GetClusterRequest(_ToolRequest):
    tool: Literal["get_cluster"] = TOOL_GET_CLUSTER
    cluster_name: ClusterName


class CreateClusterRequest(_ToolRequest):
    tool: Literal["create_cluster"] = TOOL_CREATE_CLUSTER
    cluster_name: ClusterName
    template_name: str = Field(min_length=1)
    kubernetes_version: str = Field(min_length=1)
    variables: ClusterVariables | None = None


class ScaleClusterRequest(_ToolRequest):
    tool: Literal["scale_cluster"] = TOOL_SCALE_CLUSTER
    cluster_name: ClusterName
    node_pool_name: str = Field(min_length=1)
    replicas: int = Field(ge=0)


class DeleteClusterRequest(_ToolRequest):
    tool: Literal["delete_cluster"] = TOOL_DELETE_CLUSTER
    cluster_name: ClusterName


class GetKubeconfigRequest(_ToolRequest):
    tool: Literal["get_cluster_kubeconfig"] = TOOL_GET_KUBECONFIG
    cluster_name: ClusterName


class GetNodesRequest(_ToolRequest):
    tool: Literal["get_cluster_nodes"] = TOOL_GET_NODES
    cluster_name: ClusterName


ToolRequest = Annotated[
    Union[
        ListClustersRequest,
        GetClusterRequest,
        CreateClusterRequest,
        ScaleClusterRequest,
        DeleteClusterRequest,
        GetKubeconfigRequest,
        GetNodesRequest,
    ],
    Field(discriminator="tool"),
]

_REQUEST_ADAPTER: TypeAdapter[ToolRequest] = TypeAdapter(ToolRequest)


def parse_tool_request(tool: str, parameters: dict[str, Any] | None = None) -> ToolRequest:
    """Decode a loose ``(tool, parameters)`` pair into its typed request variant.

    Raises:
        pydantic.ValidationError: If the tool is unknown or a field is missing or invalid.
    """
    return _REQUEST_ADAPTER.validate_python({**(parameters or {}), "tool": tool})


def request_for(lifecycle: LifecycleRequest) -> CreateClusterRequest | ScaleClusterRequest | DeleteClusterRequest:
    """Build the tool request that submits a lifecycle request."""
    name = lifecycle.identity.name
    params = lifecycle.parameters
    if lifecycle.operation is Operation.CREATE:
        return CreateClusterRequest(
            cluster_name=name,
            template_name=params.template_name,
            kubernetes_version=params.kubernetes_version,
            variables=ClusterVariables(
                region=params.region,
                node_count=params.node_count,
                control_plane_instance_type=params.control_plane_instance_type,
                worker_instance_type=params.worker_instance_type,
                vpc_cidr=params.vpc_cidr,
                subnet_cidr=params.subnet_cidr,
                ssh_key_name=params.ssh_key_name,
            ),
        )
    if lifecycle.operation is Operation.SCALE:
        return ScaleClusterRequest(
            cluster_name=name,
            node_pool_name=params.node_pool_name,
            replicas=params.replicas,
        )
    return DeleteClusterRequest(cluster_name=name)


# ============================================================================
# Responses
# ============================================================================

class _ToolOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ClusterSummary(_ToolOutput):
    name: str
    namespace: str = ""
    provider: str = ""
    kubernetes_version: str = ""
    status: str = ""
    created_at: str = ""
    node_count: int = 0


class ListClustersOutput(_ToolOutput):
    clusters: list[ClusterSummary] = []


class NodePool(_ToolOutput):
    name: str
    replicas: int = 0
    ready_replicas: int = 0
    machine_type: str = ""


class ClusterCondition(_ToolOutput):
    type: str
    status: str = ""
    last_transition_time: str = ""
    reason: str = ""
    message: str = ""


class ClusterDetails(_ToolOutput):
    name: str
    namespace: str = ""
    provider: str = ""
    region: str = ""
    kubernetes_version: str = ""
    status: str = ""
    created_at: str = ""
    endpoint: str = ""
    node_pools: list[NodePool] = []
    conditions: list[ClusterCondition] = []
    infrastructure_ref: dict[str, Any] = {}

    def node_pool(self, name: str) -> NodePool | None:
        return next((pool for pool in self.node_pools if pool.name == name), None)


class GetClusterOutput(_ToolOutput):
    cluster: ClusterDetails


class CreateClusterOutput(_ToolOutput):
    cluster_name: str = ""
    status: str = ""
    message: str = ""


class DeleteClusterOutput(_ToolOutput):
    status: str = ""
    message: str = ""


class ScaleClusterOutput(_ToolOutput):
    status: str = ""
    message: str = ""
    old_replicas: int = 0
    new_replicas: int = 0


class GetKubeconfigOutput(_ToolOutput):
    kubeconfig: str


class NodeInfo(_ToolOutput):
    name: str
    status: str = ""
    roles: list[str] = []
    kubelet_version: str = ""
    internal_ip: str = ""
    external_ip: str = ""
    instance_type: str = ""
    availability_zone: str = ""
    labels: dict[str, str] = {}


class GetNodesOutput(_ToolOutput):
    nodes: list[NodeInfo] = []

    @property
    def ready_count(self) -> int:
        return sum(1 for node in self.nodes if node.status == "Ready")


OUTPUT_TYPES: dict[str, type[_ToolOutput]] = {
    TOOL_LIST_CLUSTERS: ListClustersOutput,
    TOOL_GET_CLUSTER: GetClusterOutput,
    TOOL_CREATE_CLUSTER: CreateClusterOutput,
    TOOL_SCALE_CLUSTER: ScaleClusterOutput,
    TOOL_DELETE_CLUSTER: DeleteClusterOutput,
    TOOL_GET_KUBECONFIG: GetKubeconfigOutput,
    TOOL_GET_NODES: GetNodesOutput,
}
