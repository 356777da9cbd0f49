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

"""Read-only observation of Cluster API lifecycle phases."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from kubernetes.client import CustomObjectsApi
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from capi_e2e import logger
from capi_e2e.config import ClusterApiConfig
from capi_e2e.errors import AuthenticationError, StateTransitionError, TransportError
from capi_e2e.models import ABSENT_STATUS, ClusterIdentity, ClusterStatus, LifecyclePhase
from capi_e2e.poller import Deadline, PollOutcome, poll_until


def _status_from_object(obj: dict) -> ClusterStatus:
    status = obj.get("status") or {}
    return ClusterStatus(
        phase=LifecyclePhase.from_api(status.get("phase")),
        control_plane_ready=bool(status.get("controlPlaneReady", False)),
        infrastructure_ready=bool(status.get("infrastructureReady", False)),
    )


class ClusterStateObserver:
    """Reads Cluster objects and waits for phase convergence.

    Never mutates the declarative object.
    """

    def __init__(self, api: CustomObjectsApi, capi_cfg: ClusterApiConfig, poll_interval: float) -> None:
        self._api = api
        self._cfg = capi_cfg
        self._poll_interval = poll_interval

    def read_status(self, identity: ClusterIdentity, timeout: float | None = None) -> ClusterStatus:
        """Read phase and readiness flags; a missing object yields the Absent status.

        Args:
            identity: Cluster to read.
            timeout: Request timeout in seconds, capped at the configured one.

        Raises:
            AuthenticationError: If the API rejects the credentials.
            TransportError: On any other API or network failure.
        """
        request_timeout = self._cfg.request_timeout
        if timeout is not None:
            request_timeout = min(request_timeout, timeout)
        try:
            obj = self._api.get_namespaced_custom_object(
                group=self._cfg.group,
                version=self._cfg.version,
                namespace=identity.namespace,
                plural=self._cfg.plural,
                name=identity.name,
                _request_timeout=request_timeout,
            )
        except ApiException as err:
            if err.status == 404:
                return ABSENT_STATUS
            if err.status in (401, 403):
                raise AuthenticationError(f"Cluster API rejected read of {identity}: {err.reason}") from err
            raise TransportError(f"Cluster API read of {identity} failed: {err.status} {err.reason}") from err
        except HTTPError as err:
            raise TransportError(f"Cluster API read of {identity} failed: {err}") from err
        return _status_from_object(obj)

    def observe(self, identity: ClusterIdentity) -> LifecyclePhase:
        return self.read_status(identity).phase

    def list_clusters(self, namespace: str | None = None) -> dict[str, LifecyclePhase]:
        """Return the phase of every Cluster in a namespace, keyed by name."""
        namespace = namespace or self._cfg.namespace
        try:
            listing = self._api.list_namespaced_custom_object(
                group=self._cfg.group,
                version=self._cfg.version,
                namespace=namespace,
                plural=self._cfg.plural,
                _request_timeout=self._cfg.request_timeout,
            )
        except ApiException as err:
            if err.status in (401, 403):
                raise AuthenticationError(f"Cluster API rejected listing in {namespace}: {err.reason}") from err
            raise TransportError(f"Cluster API listing in {namespace} failed: {err.status} {err.reason}") from err
        except HTTPError as err:
            raise TransportError(f"Cluster API listing in {namespace} failed: {err}") from err
        return {
            item["metadata"]["name"]: _status_from_object(item).phase
            for item in listing.get("items", [])
        }

    def await_phase(
        self,
        identity: ClusterIdentity,
        target: LifecyclePhase,
        *,
        timeout: float,
        cancel: threading.Event | None = None,
        also_accept: Iterable[LifecyclePhase] = (),
        interval: float | None = None,
    ) -> ClusterStatus:
        """Poll until the cluster reaches ``target`` (or one of ``also_accept``).

        A Provisioned target additionally requires both readiness flags.
        Failed ends the wait at once unless it is the target. An object that
        was seen and then disappears ends the wait as well, unless Absent is
        what is awaited; an object not yet visible keeps the wait going.

        Args:
            identity: Cluster to observe.
            target: Phase to wait for.
            timeout: Seconds before giving up.
            cancel: Cancellation signal propagated to the poller.
            also_accept: Additional phases that count as convergence.
            interval: Poll interval override.

        Returns:
            The converged ClusterStatus.

        Raises:
            StateTransitionError: On Failed or unexpected disappearance.
            AuthenticationError: If the API rejects the credentials.
            DeadlineExceededError: If ``timeout`` elapses first.
            PollCancelledError: If ``cancel`` fires.
        """
        accepted = frozenset((target, *also_accept))
        deadline = Deadline.after(timeout)
        seen = False

        def _check() -> PollOutcome:
            nonlocal seen
            if deadline.expired:
                return PollOutcome.pending()
            try:
                status = self.read_status(identity, timeout=deadline.remaining())
            except TransportError as err:
                logger.warning("Transient error observing %s: %s", identity, err)
                return PollOutcome.pending()
            except AuthenticationError as err:
                return PollOutcome.fatal(err)

            phase = status.phase
            logger.debug("Cluster %s phase=%s controlPlaneReady=%s infrastructureReady=%s",
                         identity, phase.value, status.control_plane_ready, status.infrastructure_ready)
            if phase in accepted and (phase is not LifecyclePhase.PROVISIONED or status.ready):
                return PollOutcome.converged(status)
            if phase is LifecyclePhase.FAILED:
                return PollOutcome.fatal(StateTransitionError(
                    f"Cluster {identity} entered Failed while waiting for {target.value}",
                    last_observed=phase))
            if phase is LifecyclePhase.ABSENT:
                if seen:
                    return PollOutcome.fatal(StateTransitionError(
                        f"Cluster {identity} disappeared while waiting for {target.value}",
                        last_observed=phase))
                return PollOutcome.pending(phase)
            seen = True
            return PollOutcome.pending(phase)

        interval = interval if interval is not None else self._poll_interval
        return poll_until(
            _check,
            interval=interval,
            timeout=timeout,
            cancel=cancel,
            description=f"cluster {identity} to reach {'/'.join(sorted(p.value for p in accepted))}",
        )
