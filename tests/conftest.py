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

"""Shared fakes for the three external systems.

- FakeClusterApi: scripted Cluster objects behind the CustomObjectsApi calls
- FakeToolClient: scripted tool outcomes with hooks that move the fakes along
- FakeEc2 / FakeElb: in-memory tagged resources behind the boto3 calls
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable

import pytest
from kubernetes.client.exceptions import ApiException

from capi_e2e.config import ClusterApiConfig, InventoryConfig, TimeoutConfig
from capi_e2e.constants import DEFAULT_OWNERSHIP_NAMESPACE, ownership_tag_key
from capi_e2e.environment import EnvironmentContext
from capi_e2e.errors import LifecycleError
from capi_e2e.inventory import ResourceInventory
from capi_e2e.observer import ClusterStateObserver
from capi_e2e.retry import RetryPolicy
from capi_e2e.tool_client import ToolInvocationResult
from capi_e2e.tools import OUTPUT_TYPES, parse_tool_request

ABSENT = "Absent"


# ---------------------------------------------------------------------------
# Declarative state API
# ---------------------------------------------------------------------------

def cluster_object(name: str, namespace: str, phase: str, ready: bool | None = None) -> dict:
    if ready is None:
        ready = phase == "Provisioned"
    return {
        "apiVersion": "cluster.x-k8s.io/v1beta1",
        "kind": "Cluster",
        "metadata": {"name": name, "namespace": namespace},
        "status": {
            "phase": phase,
            "controlPlaneReady": ready,
            "infrastructureReady": ready,
        },
    }


class FakeClusterApi:
    """Stands in for CustomObjectsApi.

    Each cluster has a script of steps consumed one per read; the last step
    repeats. A step is a phase string, ``"Absent"``, a ``(phase, ready)``
    tuple or an exception to raise.
    """

    def __init__(self) -> None:
        self._scripts: dict[tuple[str, str], list] = {}
        self._lock = threading.Lock()
        self.reads: dict[str, int] = defaultdict(int)

    def script(self, name: str, *steps, namespace: str = "default") -> None:
        with self._lock:
            self._scripts[(namespace, name)] = list(steps)

    def _next(self, namespace: str, name: str):
        with self._lock:
            self.reads[name] += 1
            steps = self._scripts.get((namespace, name))
            if not steps:
                return ABSENT
            return steps.pop(0) if len(steps) > 1 else steps[0]

    def _render(self, namespace: str, name: str, step) -> dict | None:
        if isinstance(step, Exception):
            raise step
        if step == ABSENT:
            return None
        if isinstance(step, tuple):
            phase, ready = step
            return cluster_object(name, namespace, phase, ready)
        return cluster_object(name, namespace, step)

    def get_namespaced_custom_object(self, group, version, namespace, plural, name, **kwargs):
        obj = self._render(namespace, name, self._next(namespace, name))
        if obj is None:
            raise ApiException(status=404, reason="Not Found")
        return obj

    def list_namespaced_custom_object(self, group, version, namespace, plural, **kwargs):
        with self._lock:
            current = {key: steps[0] for key, steps in self._scripts.items() if steps and key[0] == namespace}
        items = []
        for (ns, name), step in current.items():
            obj = self._render(ns, name, step)
            if obj is not None:
                items.append(obj)
        return {"items": items}


# ---------------------------------------------------------------------------
# Cloud inventory
# ---------------------------------------------------------------------------

def owned_tags(cluster_name: str) -> list[dict]:
    return [
        {"Key": ownership_tag_key(DEFAULT_OWNERSHIP_NAMESPACE, cluster_name), "Value": "owned"},
        {"Key": "Name", "Value": f"{cluster_name}-resource"},
    ]


class FakePaginator:
    def __init__(self, pages_fn: Callable[[], list[dict]], calls: list) -> None:
        self._pages_fn = pages_fn
        self._calls = calls

    def paginate(self, **kwargs):
        self._calls.append(kwargs)
        return iter(self._pages_fn())


class FakeEc2:
    """In-memory EC2. Ignores filters so the client-side ownership check is what counts."""

    def __init__(self) -> None:
        self.vpcs: list[dict] = []
        self.security_groups: list[dict] = []
        self.instances: list[dict] = []
        self.paginate_calls: dict[str, list] = defaultdict(list)
        self.terminate_calls: list[list[str]] = []
        self.error: Exception | None = None
        self._lock = threading.Lock()
        self._counter = 0

    def _id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:08x}"

    def provision(self, cluster_name: str, *, vpcs: int = 1, security_groups: int = 2, instances: int = 2) -> None:
        with self._lock:
            for _ in range(vpcs):
                self.vpcs.append({"VpcId": self._id("vpc"), "Tags": owned_tags(cluster_name)})
            for _ in range(security_groups):
                self.security_groups.append({"GroupId": self._id("sg"), "Tags": owned_tags(cluster_name)})
            for _ in range(instances):
                self.instances.append({
                    "InstanceId": self._id("i"),
                    "State": {"Name": "running"},
                    "Tags": owned_tags(cluster_name),
                })

    def teardown(self, cluster_name: str) -> None:
        key = ownership_tag_key(DEFAULT_OWNERSHIP_NAMESPACE, cluster_name)

        def _keep(item: dict) -> bool:
            return not any(tag["Key"] == key for tag in item.get("Tags", []))

        with self._lock:
            self.vpcs = [vpc for vpc in self.vpcs if _keep(vpc)]
            self.security_groups = [sg for sg in self.security_groups if _keep(sg)]
            for instance in self.instances:
                if not _keep(instance):
                    instance["State"] = {"Name": "terminated"}

    def get_paginator(self, operation: str) -> FakePaginator:
        if self.error is not None:
            raise self.error
        pages = {
            "describe_vpcs": lambda: [{"Vpcs": list(self.vpcs)}],
            "describe_security_groups": lambda: [{"SecurityGroups": list(self.security_groups)}],
            "describe_instances": lambda: [
                {"Reservations": [{"Instances": list(self.instances[:1])}]},
                {"Reservations": [{"Instances": list(self.instances[1:])}]},
            ],
        }[operation]
        return FakePaginator(pages, self.paginate_calls[operation])

    def terminate_instances(self, InstanceIds: list[str]) -> dict:
        self.terminate_calls.append(list(InstanceIds))
        with self._lock:
            for instance in self.instances:
                if instance["InstanceId"] in InstanceIds:
                    instance["State"] = {"Name": "shutting-down"}
        return {"TerminatingInstances": [{"InstanceId": iid} for iid in InstanceIds]}


class FakeElb:
    def __init__(self) -> None:
        self.load_balancers: dict[str, list[dict]] = {}
        self.describe_tags_batches: list[list[str]] = []
        self.paginate_calls: list = []

    def add(self, cluster_name: str | None, count: int = 1) -> None:
        for _ in range(count):
            arn = f"arn:aws:elasticloadbalancing:us-west-2:000000000000:loadbalancer/net/lb-{len(self.load_balancers)}"
            self.load_balancers[arn] = owned_tags(cluster_name) if cluster_name else []

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "describe_load_balancers"
        return FakePaginator(
            lambda: [{"LoadBalancers": [{"LoadBalancerArn": arn} for arn in self.load_balancers]}],
            self.paginate_calls)

    def describe_tags(self, ResourceArns: list[str]) -> dict:
        assert len(ResourceArns) <= 20
        self.describe_tags_batches.append(list(ResourceArns))
        return {"TagDescriptions": [
            {"ResourceArn": arn, "Tags": self.load_balancers[arn]} for arn in ResourceArns]}


# ---------------------------------------------------------------------------
# Tool server
# ---------------------------------------------------------------------------

class FakeToolClient:
    """Scripted ToolClient.

    ``queue(tool, *outcomes)`` lines up outcomes consumed one per call; an
    outcome is a payload dict or a LifecycleError. With nothing queued a call
    succeeds with an empty payload. ``on_success`` hooks run when a call
    succeeds, which is how the fakes of the other two systems move along.
    """

    def __init__(self) -> None:
        self.calls = []
        self.timeouts = []
        self._queued: dict[str, list] = defaultdict(list)
        self.on_success: dict[str, Callable] = {}
        self._lock = threading.Lock()

    def queue(self, tool: str, *outcomes) -> None:
        self._queued[tool].extend(outcomes)

    def calls_to(self, tool: str) -> list:
        return [call for call in self.calls if call.tool == tool]

    def submit(self, request, timeout=None) -> ToolInvocationResult:
        with self._lock:
            self.calls.append(request)
            self.timeouts.append(timeout)
            queued = self._queued[request.tool]
            outcome = queued.pop(0) if queued else {}
        if isinstance(outcome, LifecycleError):
            return ToolInvocationResult(tool=request.tool, success=False, error=outcome)
        hook = self.on_success.get(request.tool)
        if hook is not None:
            hook(request)
        payload = OUTPUT_TYPES[request.tool].model_validate(outcome)
        return ToolInvocationResult(tool=request.tool, success=True, payload=payload)

    def invoke(self, tool: str, parameters=None) -> ToolInvocationResult:
        return self.submit(parse_tool_request(tool, parameters))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def cluster_api() -> FakeClusterApi:
    return FakeClusterApi()


@pytest.fixture
def ec2() -> FakeEc2:
    return FakeEc2()


@pytest.fixture
def elb() -> FakeElb:
    return FakeElb()


@pytest.fixture
def tool_client() -> FakeToolClient:
    return FakeToolClient()


@pytest.fixture
def observer(cluster_api) -> ClusterStateObserver:
    return ClusterStateObserver(cluster_api, ClusterApiConfig(), poll_interval=0.01)


@pytest.fixture
def inventory(ec2, elb) -> ResourceInventory:
    return ResourceInventory(ec2, elb, InventoryConfig())


@pytest.fixture
def timeouts() -> TimeoutConfig:
    return TimeoutConfig(
        create=5.0,
        scale=5.0,
        delete=5.0,
        cleanup=2.0,
        provisioning=2.0,
        settle=0.5,
        poll_interval=0.01,
        delete_poll_interval=0.01,
    )


@pytest.fixture
def env(tool_client, observer, inventory, timeouts) -> EnvironmentContext:
    return EnvironmentContext(
        tool_client=tool_client,
        observer=observer,
        inventory=inventory,
        retry_policy=RetryPolicy(attempts=3, delay=0.0),
        timeouts=timeouts,
        namespace="default",
    )


@pytest.fixture
def lifecycle(tool_client, cluster_api, ec2):
    """Wire create and delete calls to a well-behaved provider."""

    def _on_create(request):
        cluster_api.script(request.cluster_name, ABSENT, "Pending", "Provisioning", ("Provisioned", False),
                           "Provisioned")
        ec2.provision(request.cluster_name)

    def _on_delete(request):
        cluster_api.script(request.cluster_name, "Deleting", ABSENT)
        ec2.teardown(request.cluster_name)

    tool_client.on_success["create_cluster"] = _on_create
    tool_client.on_success["delete_cluster"] = _on_delete
    return tool_client
