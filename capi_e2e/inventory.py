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

"""Cross-checks of the cloud inventory against a cluster's declared phase.

Resources are matched by the ownership tag the infrastructure provider
stamps on everything it creates for a cluster. The tag key embeds the
cluster name, so the match is on exact key equality: ``c1`` never picks up
resources owned by ``c10``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from capi_e2e import logger
from capi_e2e.config import InventoryConfig
from capi_e2e.constants import ELB_DESCRIBE_TAGS_BATCH, OWNERSHIP_TAG_VALUE, ownership_tag_key
from capi_e2e.errors import (
    ApplicationError,
    AuthenticationError,
    DeadlineExceededError,
    InventoryMismatchError,
    LifecycleError,
    TransportError,
)
from capi_e2e.models import ClusterIdentity, ResourceKind, ResourceSnapshot, ResourceState
from capi_e2e.poller import PollOutcome, poll_until

_AUTH_ERROR_CODES = frozenset({
    "AuthFailure",
    "UnauthorizedOperation",
    "InvalidClientTokenId",
    "ExpiredToken",
    "AccessDenied",
    "AccessDeniedException",
    "SignatureDoesNotMatch",
})

_TERMINATED_INSTANCE_STATES = frozenset({"shutting-down", "terminated"})
_TERMINABLE_INSTANCE_STATES = ("pending", "running", "stopping", "stopped")

_SHORT_KIND = {
    ResourceKind.NETWORK: "vpc",
    ResourceKind.SECURITY_BOUNDARY: "sg",
    ResourceKind.COMPUTE_INSTANCE: "instance",
    ResourceKind.LOAD_BALANCER: "lb",
}


def classify_aws_error(err: Exception, action: str) -> LifecycleError:
    """Map a botocore failure onto the lifecycle error taxonomy."""
    if isinstance(err, NoCredentialsError):
        return AuthenticationError(f"{action}: no AWS credentials")
    if isinstance(err, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return TransportError(f"{action}: {err}")
    if isinstance(err, ClientError):
        code = err.response.get("Error", {}).get("Code", "")
        if code in _AUTH_ERROR_CODES:
            return AuthenticationError(f"{action}: {code}")
        if code in ("RequestLimitExceeded", "Throttling", "ThrottlingException", "ServiceUnavailable"):
            return TransportError(f"{action}: {code}")
        return ApplicationError(f"{action}: {err}")
    return TransportError(f"{action}: {err}")


def _owned_tag(tags: Iterable[Mapping[str, str]] | None, key: str) -> bool:
    return any(tag.get("Key") == key and tag.get("Value") == OWNERSHIP_TAG_VALUE for tag in tags or ())


def _format_counts(counts: Mapping[ResourceKind, int]) -> str:
    return ", ".join(f"{_SHORT_KIND[kind]}={count}" for kind, count in counts.items())


class ResourceInventory:
    """Lists and validates the cloud resources owned by a cluster.

    Read-only except for ``terminate_owned_instances``. The boto3 clients are
    thread-safe, so one instance is shared by every scenario.
    """

    def __init__(self, ec2_client: Any, elb_client: Any, inventory_cfg: InventoryConfig) -> None:
        self._ec2 = ec2_client
        self._elb = elb_client
        self._cfg = inventory_cfg
        self._listers: dict[ResourceKind, Callable[[str], list[ResourceSnapshot]]] = {
            ResourceKind.NETWORK: self._list_networks,
            ResourceKind.SECURITY_BOUNDARY: self._list_security_groups,
            ResourceKind.COMPUTE_INSTANCE: self._list_instances,
            ResourceKind.LOAD_BALANCER: self._list_load_balancers,
        }

    def ownership_key(self, identity: ClusterIdentity) -> str:
        return ownership_tag_key(self._cfg.ownership_namespace, identity.name)

    # ========================================================================
    # Listing
    # ========================================================================

    def list_owned(self, identity: ClusterIdentity, kind: ResourceKind) -> list[ResourceSnapshot]:
        """Return the snapshots of one kind owned by ``identity``.

        Args:
            identity: Cluster whose resources to list.
            kind: Resource category.

        Returns:
            Snapshots whose ownership tag key equals the cluster's key exactly.

        Raises:
            AuthenticationError: If AWS rejects the credentials.
            TransportError: On connectivity problems or throttling.
            ApplicationError: On any other AWS API error.
        """
        key = self.ownership_key(identity)
        try:
            snapshots = self._listers[kind](key)
        except (BotoCoreError, ClientError) as err:
            raise classify_aws_error(err, f"Listing {kind.value} resources of {identity}") from err
        return [snap for snap in snapshots if snap.ownership_key == key]

    def list_all_owned(self, identity: ClusterIdentity) -> dict[ResourceKind, list[ResourceSnapshot]]:
        return {kind: self.list_owned(identity, kind) for kind in ResourceKind}

    def _tag_filter(self, key: str) -> list[dict[str, Any]]:
        return [{"Name": f"tag:{key}", "Values": [OWNERSHIP_TAG_VALUE]}]

    def _list_networks(self, key: str) -> list[ResourceSnapshot]:
        snapshots = []
        paginator = self._ec2.get_paginator("describe_vpcs")
        for page in paginator.paginate(Filters=self._tag_filter(key)):
            for vpc in page.get("Vpcs", []):
                if _owned_tag(vpc.get("Tags"), key):
                    snapshots.append(ResourceSnapshot(
                        ResourceKind.NETWORK, vpc["VpcId"], key, ResourceState.RUNNING))
        return snapshots

    def _list_security_groups(self, key: str) -> list[ResourceSnapshot]:
        snapshots = []
        paginator = self._ec2.get_paginator("describe_security_groups")
        for page in paginator.paginate(Filters=self._tag_filter(key)):
            for group in page.get("SecurityGroups", []):
                if _owned_tag(group.get("Tags"), key):
                    snapshots.append(ResourceSnapshot(
                        ResourceKind.SECURITY_BOUNDARY, group["GroupId"], key, ResourceState.RUNNING))
        return snapshots

    def _list_instances(self, key: str) -> list[ResourceSnapshot]:
        snapshots = []
        paginator = self._ec2.get_paginator("describe_instances")
        for page in paginator.paginate(Filters=self._tag_filter(key)):
            for reservation in page.get("Reservations", []):
                for instance in reservation.get("Instances", []):
                    if not _owned_tag(instance.get("Tags"), key):
                        continue
                    state_name = instance.get("State", {}).get("Name", "")
                    state = (ResourceState.TERMINATED if state_name in _TERMINATED_INSTANCE_STATES
                             else ResourceState.RUNNING)
                    snapshots.append(ResourceSnapshot(
                        ResourceKind.COMPUTE_INSTANCE, instance["InstanceId"], key, state))
        return snapshots

    def _list_load_balancers(self, key: str) -> list[ResourceSnapshot]:
        # ELBv2 has no server-side tag filter; tags are fetched in batches.
        arns = []
        paginator = self._elb.get_paginator("describe_load_balancers")
        for page in paginator.paginate():
            arns.extend(lb["LoadBalancerArn"] for lb in page.get("LoadBalancers", []))

        snapshots = []
        for start in range(0, len(arns), ELB_DESCRIBE_TAGS_BATCH):
            batch = arns[start:start + ELB_DESCRIBE_TAGS_BATCH]
            response = self._elb.describe_tags(ResourceArns=batch)
            for description in response.get("TagDescriptions", []):
                if _owned_tag(description.get("Tags"), key):
                    snapshots.append(ResourceSnapshot(
                        ResourceKind.LOAD_BALANCER, description["ResourceArn"], key, ResourceState.RUNNING))
        return snapshots

    # ========================================================================
    # Validation
    # ========================================================================

    def count_active(self, identity: ClusterIdentity, kinds: Iterable[ResourceKind]) -> dict[ResourceKind, int]:
        return {
            kind: sum(1 for snap in self.list_owned(identity, kind) if snap.active)
            for kind in kinds
        }

    def validate_presence(
        self, identity: ClusterIdentity, minimum_counts: Mapping[ResourceKind, int]
    ) -> dict[ResourceKind, int]:
        """Check that every required kind has enough non-terminated owned resources.

        Returns:
            Active counts per required kind.

        Raises:
            InventoryMismatchError: Naming every kind that falls short.
        """
        counts = self.count_active(identity, minimum_counts)
        short = {kind: counts[kind] for kind, minimum in minimum_counts.items() if counts[kind] < minimum}
        if short:
            wanted = ", ".join(
                f"{_SHORT_KIND[kind]} {counts[kind]}/{minimum_counts[kind]}" for kind in short)
            raise InventoryMismatchError(
                f"Cluster {identity} is missing owned resources: {wanted}",
                last_observed=_format_counts(counts))
        logger.info("Inventory for %s: %s", identity, _format_counts(counts))
        return counts

    def validate_absence(self, identity: ClusterIdentity) -> None:
        """Check that no non-terminated owned resource of any kind remains.

        Raises:
            InventoryMismatchError: Listing the leftover resources.
        """
        leftovers = [
            snap
            for snapshots in self.list_all_owned(identity).values()
            for snap in snapshots
            if snap.active
        ]
        if leftovers:
            ids = ", ".join(f"{_SHORT_KIND[snap.kind]}:{snap.resource_id}" for snap in leftovers)
            raise InventoryMismatchError(
                f"Cluster {identity} still owns {len(leftovers)} resource(s): {ids}")

    def await_presence(
        self,
        identity: ClusterIdentity,
        minimum_counts: Mapping[ResourceKind, int],
        *,
        timeout: float,
        interval: float,
        cancel: threading.Event | None = None,
    ) -> dict[ResourceKind, int]:
        """Retry ``validate_presence`` until it passes or the settle window closes.

        A zero timeout performs a single check.
        """
        return self._await(lambda: self.validate_presence(identity, minimum_counts),
                           f"owned resources of {identity}", timeout, interval, cancel)

    def await_absence(
        self,
        identity: ClusterIdentity,
        *,
        timeout: float,
        interval: float,
        cancel: threading.Event | None = None,
    ) -> None:
        """Retry ``validate_absence`` until it passes or the settle window closes."""
        self._await(lambda: self.validate_absence(identity),
                    f"owned resources of {identity} to disappear", timeout, interval, cancel)

    def _await(self, check: Callable[[], Any], description: str, timeout: float,
               interval: float, cancel: threading.Event | None) -> Any:
        if timeout <= 0:
            return check()

        mismatch: list[InventoryMismatchError | None] = [None]

        def _predicate() -> PollOutcome:
            try:
                return PollOutcome.converged(check())
            except InventoryMismatchError as err:
                mismatch[0] = err
                return PollOutcome.pending(err.last_observed)
            except TransportError as err:
                logger.warning("Transient inventory error: %s", err)
                return PollOutcome.pending()
            except LifecycleError as err:
                return PollOutcome.fatal(err)

        try:
            return poll_until(_predicate, interval=interval, timeout=timeout, cancel=cancel,
                              description=description)
        except DeadlineExceededError as err:
            if mismatch[0] is not None:
                raise mismatch[0] from err
            raise

    # ========================================================================
    # Cleanup
    # ========================================================================

    def terminate_owned_instances(self, identity: ClusterIdentity) -> list[str]:
        """Terminate owned instances that are still alive.

        Returns:
            Ids of the instances a termination was requested for.
        """
        key = self.ownership_key(identity)
        filters = self._tag_filter(key) + [
            {"Name": "instance-state-name", "Values": list(_TERMINABLE_INSTANCE_STATES)}]
        try:
            instance_ids = []
            paginator = self._ec2.get_paginator("describe_instances")
            for page in paginator.paginate(Filters=filters):
                for reservation in page.get("Reservations", []):
                    for instance in reservation.get("Instances", []):
                        state_name = instance.get("State", {}).get("Name", "")
                        if _owned_tag(instance.get("Tags"), key) and state_name in _TERMINABLE_INSTANCE_STATES:
                            instance_ids.append(instance["InstanceId"])
            if not instance_ids:
                return []
            logger.info("Terminating %d leftover instance(s) of %s: %s",
                        len(instance_ids), identity, ", ".join(instance_ids))
            self._ec2.terminate_instances(InstanceIds=instance_ids)
        except (BotoCoreError, ClientError) as err:
            raise classify_aws_error(err, f"Terminating instances of {identity}") from err
        return instance_ids
