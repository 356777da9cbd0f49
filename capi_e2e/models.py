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

"""Lifecycle requests, observed phases and cloud resource snapshots."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from capi_e2e.constants import (
    DEFAULT_CONTROL_PLANE_INSTANCE_TYPE,
    DEFAULT_KUBERNETES_VERSION,
    DEFAULT_NAMESPACE,
    DEFAULT_SUBNET_CIDR,
    DEFAULT_TEMPLATE_NAME,
    DEFAULT_VPC_CIDR,
    DEFAULT_WORKER_INSTANCE_TYPE,
)


# ============================================================================
# Declarative state
# ============================================================================

class LifecyclePhase(str, Enum):
    """Cluster phase as reported by the declarative state API."""

    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    PROVISIONED = "Provisioned"
    DELETING = "Deleting"
    FAILED = "Failed"
    ABSENT = "Absent"

    @classmethod
    def from_api(cls, value: str | None) -> LifecyclePhase:
        """Map a raw ``status.phase`` string; unknown or empty values count as Pending."""
        for phase in cls:
            if phase is not cls.ABSENT and phase.value == value:
                return phase
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in (LifecyclePhase.PROVISIONED, LifecyclePhase.FAILED, LifecyclePhase.ABSENT)


@dataclass(frozen=True)
class ClusterStatus:
    """Phase and readiness flags read from one Cluster object.

    Attributes:
        phase: Lifecycle phase, Absent when the object does not exist.
        control_plane_ready: ``status.controlPlaneReady``.
        infrastructure_ready: ``status.infrastructureReady``.
    """

    phase: LifecyclePhase
    control_plane_ready: bool = False
    infrastructure_ready: bool = False

    @property
    def ready(self) -> bool:
        return (
            self.phase is LifecyclePhase.PROVISIONED
            and self.control_plane_ready
            and self.infrastructure_ready
        )


ABSENT_STATUS = ClusterStatus(phase=LifecyclePhase.ABSENT)


# ============================================================================
# Lifecycle requests
# ============================================================================

class Operation(str, Enum):
    CREATE = "create"
    SCALE = "scale"
    DELETE = "delete"


class ClusterIdentity(BaseModel):
    """Name and namespace of a managed cluster."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=63, pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
    namespace: str = DEFAULT_NAMESPACE

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class ResourceKind(str, Enum):
    NETWORK = "network"
    SECURITY_BOUNDARY = "security_boundary"
    COMPUTE_INSTANCE = "compute_instance"
    LOAD_BALANCER = "load_balancer"


class ClusterParameters(BaseModel):
    """Operation parameters for a lifecycle request.

    Attributes:
        node_count: Worker nodes requested at creation.
        control_plane_instance_type: Instance class for control-plane machines.
        worker_instance_type: Instance class for worker machines.
        kubernetes_version: Kubernetes version of the workload cluster.
        template_name: Cluster template the tool server instantiates.
        region: Cloud region, or None to let the server choose.
        vpc_cidr: Network range of the cluster VPC.
        subnet_cidr: Network range of the cluster subnet.
        ssh_key_name: Optional SSH key pair for the machines.
        node_pool_name: Node pool targeted by a scale request.
        replicas: Desired replica count for a scale request.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    node_count: int = Field(default=1, ge=0)
    control_plane_instance_type: str = DEFAULT_CONTROL_PLANE_INSTANCE_TYPE
    worker_instance_type: str = DEFAULT_WORKER_INSTANCE_TYPE
    kubernetes_version: str = Field(default=DEFAULT_KUBERNETES_VERSION, pattern=r"^v\d+\.\d+\.\d+")
    template_name: str = DEFAULT_TEMPLATE_NAME
    region: str | None = None
    vpc_cidr: str = DEFAULT_VPC_CIDR
    subnet_cidr: str = DEFAULT_SUBNET_CIDR
    ssh_key_name: str | None = None
    node_pool_name: str | None = None
    replicas: int | None = Field(default=None, ge=0)

    @field_validator("vpc_cidr", "subnet_cidr")
    @classmethod
    def _check_cidr(cls, value: str) -> str:
        ipaddress.ip_network(value)
        return value


class LifecycleRequest(BaseModel):
    """One lifecycle operation against one cluster. Immutable once built.

    ``minimum_resources`` overrides the owned-resource counts that must be
    present after a create or scale converges.
    """

    model_config = ConfigDict(frozen=True)

    identity: ClusterIdentity
    operation: Operation
    parameters: ClusterParameters = ClusterParameters()
    minimum_resources: dict[ResourceKind, int] | None = None

    @model_validator(mode="after")
    def _check_scale_target(self) -> LifecycleRequest:
        if self.operation is Operation.SCALE and (
            self.parameters.node_pool_name is None or self.parameters.replicas is None
        ):
            raise ValueError("scale requests need parameters.node_pool_name and parameters.replicas")
        return self

    def __str__(self) -> str:
        return f"{self.operation.value} {self.identity}"


# ============================================================================
# Cloud inventory
# ============================================================================

class ResourceState(str, Enum):
    RUNNING = "running"
    TERMINATED = "terminated"
    ABSENT = "absent"


@dataclass(frozen=True)
class ResourceSnapshot:
    """A tagged cloud resource owned by a managed cluster.

    Attributes:
        kind: Resource category.
        resource_id: Provider identifier (VPC id, instance id, LB ARN, ...).
        ownership_key: The ownership tag key found on the resource.
        state: Coarse lifecycle state.
    """

    kind: ResourceKind
    resource_id: str
    ownership_key: str
    state: ResourceState

    @property
    def active(self) -> bool:
        return self.state is ResourceState.RUNNING
