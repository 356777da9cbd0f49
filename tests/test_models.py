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

"""Tests for lifecycle models and tool request decoding."""

import pytest
from pydantic import ValidationError

from capi_e2e.models import (
    ClusterIdentity,
    ClusterParameters,
    LifecyclePhase,
    LifecycleRequest,
    Operation,
    ResourceKind,
    ResourceSnapshot,
    ResourceState,
)
from capi_e2e.tools import (
    CreateClusterRequest,
    DeleteClusterRequest,
    ListClustersRequest,
    ScaleClusterRequest,
    parse_tool_request,
    request_for,
)


class TestLifecyclePhase:

    @pytest.mark.parametrize("raw", ["Pending", "Provisioning", "Provisioned", "Deleting", "Failed"])
    def test_known_phases(self, raw):
        assert LifecyclePhase.from_api(raw).value == raw

    @pytest.mark.parametrize("raw", [None, "", "Unknown", "Absent", "provisioned"])
    def test_everything_else_is_pending(self, raw):
        assert LifecyclePhase.from_api(raw) is LifecyclePhase.PENDING

    def test_terminal_phases(self):
        terminal = {phase for phase in LifecyclePhase if phase.is_terminal}
        assert terminal == {LifecyclePhase.PROVISIONED, LifecyclePhase.FAILED, LifecyclePhase.ABSENT}


class TestRequests:

    @pytest.mark.parametrize("name", ["", "C1", "-c1", "c1-", "c_1", "a" * 64])
    def test_identity_rejects_invalid_names(self, name):
        with pytest.raises(ValidationError):
            ClusterIdentity(name=name)

    def test_identity_is_hashable_and_printable(self):
        identity = ClusterIdentity(name="c1", namespace="e2e")
        assert identity == ClusterIdentity(name="c1", namespace="e2e")
        assert len({identity, ClusterIdentity(name="c1", namespace="e2e")}) == 1
        assert str(identity) == "e2e/c1"

    def test_scale_needs_pool_and_replicas(self):
        with pytest.raises(ValidationError, match="node_pool_name"):
            LifecycleRequest(
                identity=ClusterIdentity(name="c1"),
                operation=Operation.SCALE,
                parameters=ClusterParameters(replicas=3),
            )

    def test_invalid_cidr_rejected(self):
        with pytest.raises(ValidationError):
            ClusterParameters(vpc_cidr="10.0.0.0/33")

    def test_unknown_parameter_rejected(self):
        with pytest.raises(ValidationError):
            ClusterParameters(nodes=3)

    def test_snapshot_activity(self):
        running = ResourceSnapshot(ResourceKind.NETWORK, "vpc-1", "k", ResourceState.RUNNING)
        gone = ResourceSnapshot(ResourceKind.COMPUTE_INSTANCE, "i-1", "k", ResourceState.TERMINATED)
        assert running.active
        assert not gone.active


class TestToolRequests:

    def test_request_for_create_uses_camel_case_variables(self):
        request = request_for(LifecycleRequest(
            identity=ClusterIdentity(name="c1"),
            operation=Operation.CREATE,
            parameters=ClusterParameters(node_count=2, region="us-west-2"),
        ))
        assert isinstance(request, CreateClusterRequest)
        wire = request.parameters()
        assert wire["cluster_name"] == "c1"
        assert wire["variables"]["nodeCount"] == 2
        assert wire["variables"]["region"] == "us-west-2"
        assert "sshKeyName" not in wire["variables"]
        assert "tool" not in wire

    def test_request_for_scale_and_delete(self):
        identity = ClusterIdentity(name="c1")
        scale = request_for(LifecycleRequest(
            identity=identity,
            operation=Operation.SCALE,
            parameters=ClusterParameters(node_pool_name="workers", replicas=4),
        ))
        assert isinstance(scale, ScaleClusterRequest)
        assert scale.parameters() == {"cluster_name": "c1", "node_pool_name": "workers", "replicas": 4}
        delete = request_for(LifecycleRequest(identity=identity, operation=Operation.DELETE))
        assert isinstance(delete, DeleteClusterRequest)
        assert delete.parameters() == {"cluster_name": "c1"}

    def test_parse_dispatches_on_tool(self):
        assert isinstance(parse_tool_request("list_clusters"), ListClustersRequest)
        request = parse_tool_request("scale_cluster", {
            "cluster_name": "c1", "node_pool_name": "workers", "replicas": 2})
        assert isinstance(request, ScaleClusterRequest)
        assert request.replicas == 2

    def test_parse_accepts_wire_aliases(self):
        request = parse_tool_request("create_cluster", {
            "cluster_name": "c1",
            "template_name": "aws-cluster-template",
            "kubernetes_version": "v1.28.0",
            "variables": {
                "nodeCount": 3,
                "controlPlaneInstanceType": "t3.medium",
                "workerInstanceType": "t3.small",
                "vpcCIDR": "10.0.0.0/16",
                "subnetCIDR": "10.0.1.0/24",
            },
        })
        assert request.variables.node_count == 3

    @pytest.mark.parametrize("tool, parameters", [
        ("get_cluster", {}),
        ("scale_cluster", {"cluster_name": "c1", "node_pool_name": "workers", "replicas": -1}),
        ("delete_cluster", {"cluster_name": "c1", "force": True}),
        ("reboot_cluster", {"cluster_name": "c1"}),
    ])
    def test_parse_rejects_invalid(self, tool, parameters):
        with pytest.raises(ValidationError):
            parse_tool_request(tool, parameters)
