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

"""Tests for ClusterStateObserver reads and phase waits."""

import time
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import ProtocolError, ReadTimeoutError

from capi_e2e.config import ClusterApiConfig
from capi_e2e.errors import (
    AuthenticationError,
    DeadlineExceededError,
    StateTransitionError,
    TransportError,
)
from capi_e2e.models import ClusterIdentity, LifecyclePhase
from capi_e2e.observer import ClusterStateObserver

ABSENT = "Absent"
C1 = ClusterIdentity(name="c1")


class SlowClusterApi:
    """Answers every read after ``delay`` seconds, or times out first like the real client."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.request_timeouts = []

    def get_namespaced_custom_object(self, group, version, namespace, plural, name, _request_timeout=None):
        self.request_timeouts.append(_request_timeout)
        if _request_timeout is not None and _request_timeout < self.delay:
            time.sleep(_request_timeout)
            raise ReadTimeoutError(None, name, "Read timed out.")
        time.sleep(self.delay)
        return {"status": {"phase": "Provisioning"}}


class TestReadStatus:

    def test_nonexistent_cluster_is_absent(self, observer):
        assert observer.observe(ClusterIdentity(name="nonexistent")) is LifecyclePhase.ABSENT

    def test_reads_phase_and_flags(self, observer, cluster_api):
        cluster_api.script("c1", ("Provisioned", True))
        status = observer.read_status(C1)
        assert status.phase is LifecyclePhase.PROVISIONED
        assert status.control_plane_ready and status.infrastructure_ready
        assert status.ready

    @pytest.mark.parametrize("raw", ["Unknown", ""])
    def test_unrecognised_phase_is_pending(self, observer, cluster_api, raw):
        cluster_api.script("c1", raw)
        assert observer.observe(C1) is LifecyclePhase.PENDING

    def test_missing_status_is_pending(self):
        api = MagicMock()
        api.get_namespaced_custom_object.return_value = {"metadata": {"name": "c1"}}
        observer = ClusterStateObserver(api, ClusterApiConfig(), poll_interval=0.01)
        status = observer.read_status(C1)
        assert status.phase is LifecyclePhase.PENDING
        assert not status.ready

    def test_call_uses_cluster_api_coordinates(self):
        api = MagicMock()
        api.get_namespaced_custom_object.return_value = {"status": {"phase": "Pending"}}
        observer = ClusterStateObserver(api, ClusterApiConfig(request_timeout=7.0), poll_interval=0.01)
        observer.observe(ClusterIdentity(name="c1", namespace="e2e"))
        api.get_namespaced_custom_object.assert_called_once_with(
            group="cluster.x-k8s.io",
            version="v1beta1",
            namespace="e2e",
            plural="clusters",
            name="c1",
            _request_timeout=7.0,
        )

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_rejection(self, observer, cluster_api, status):
        cluster_api.script("c1", ApiException(status=status, reason="Forbidden"))
        with pytest.raises(AuthenticationError):
            observer.observe(C1)

    def test_server_error_is_transport(self, observer, cluster_api):
        cluster_api.script("c1", ApiException(status=500, reason="Internal Server Error"))
        with pytest.raises(TransportError):
            observer.observe(C1)

    def test_connection_error_is_transport(self, observer, cluster_api):
        cluster_api.script("c1", ProtocolError("connection reset"))
        with pytest.raises(TransportError):
            observer.observe(C1)

    def test_list_clusters(self, observer, cluster_api):
        cluster_api.script("c1", "Provisioning")
        cluster_api.script("c2", "Provisioned")
        cluster_api.script("c3", ABSENT)
        assert observer.list_clusters() == {
            "c1": LifecyclePhase.PROVISIONING,
            "c2": LifecyclePhase.PROVISIONED,
        }


class TestAwaitPhase:

    def test_converges_on_target(self, observer, cluster_api):
        cluster_api.script("c1", "Pending", "Provisioning", "Provisioned")
        status = observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=2.0)
        assert status.phase is LifecyclePhase.PROVISIONED
        assert cluster_api.reads["c1"] == 3

    def test_provisioned_requires_readiness_flags(self, observer, cluster_api):
        cluster_api.script("c1", ("Provisioned", False))
        with pytest.raises(DeadlineExceededError) as exc_info:
            observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=0.2)
        assert exc_info.value.last_observed is LifecyclePhase.PROVISIONED

    def test_also_accept(self, observer, cluster_api):
        cluster_api.script("c1", "Pending", "Provisioned")
        status = observer.await_phase(
            C1, LifecyclePhase.PROVISIONING, also_accept=(LifecyclePhase.PROVISIONED,), timeout=2.0)
        assert status.phase is LifecyclePhase.PROVISIONED

    def test_failed_is_fatal_immediately(self, observer, cluster_api):
        cluster_api.script("c1", "Provisioning", "Failed")
        with pytest.raises(StateTransitionError) as exc_info:
            observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=5.0)
        assert exc_info.value.last_observed is LifecyclePhase.FAILED
        assert cluster_api.reads["c1"] == 2

    def test_failed_can_be_the_target(self, observer, cluster_api):
        cluster_api.script("c1", "Provisioning", "Failed")
        assert observer.await_phase(C1, LifecyclePhase.FAILED, timeout=2.0).phase is LifecyclePhase.FAILED

    def test_disappearance_after_seen_is_fatal(self, observer, cluster_api):
        cluster_api.script("c1", "Provisioning", ABSENT)
        with pytest.raises(StateTransitionError, match="disappeared"):
            observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=5.0)

    def test_not_yet_visible_keeps_waiting(self, observer, cluster_api):
        cluster_api.script("c1", ABSENT, ABSENT, "Pending", "Provisioned")
        assert observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=2.0).ready

    def test_absent_target(self, observer, cluster_api):
        cluster_api.script("c1", "Deleting", "Deleting", ABSENT)
        status = observer.await_phase(C1, LifecyclePhase.ABSENT, timeout=2.0)
        assert status.phase is LifecyclePhase.ABSENT

    def test_transient_errors_keep_waiting(self, observer, cluster_api):
        cluster_api.script("c1", "Provisioning", ApiException(status=503, reason="Unavailable"), "Provisioned")
        assert observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=2.0).ready

    def test_auth_error_ends_wait(self, observer, cluster_api):
        cluster_api.script("c1", "Provisioning", ApiException(status=401, reason="Unauthorized"))
        with pytest.raises(AuthenticationError):
            observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=5.0)

    def test_returns_or_fails_within_deadline(self, observer, cluster_api):
        cluster_api.script("c1", "Provisioning")
        started = time.monotonic()
        with pytest.raises(DeadlineExceededError) as exc_info:
            observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=0.3, interval=0.05)
        assert time.monotonic() - started <= 0.3 + 0.15
        assert "Provisioning" in str(exc_info.value)

    def test_slow_reads_are_bounded_by_the_deadline(self):
        api = SlowClusterApi(delay=0.5)
        observer = ClusterStateObserver(api, ClusterApiConfig(), poll_interval=0.01)
        started = time.monotonic()
        with pytest.raises(DeadlineExceededError):
            observer.await_phase(C1, LifecyclePhase.PROVISIONED, timeout=0.2)
        assert time.monotonic() - started <= 0.2 + 0.15
        assert api.request_timeouts
        assert all(t <= 0.2 for t in api.request_timeouts)

    def test_single_read_uses_configured_timeout(self):
        api = SlowClusterApi(delay=0.0)
        observer = ClusterStateObserver(api, ClusterApiConfig(request_timeout=7.0), poll_interval=0.01)
        observer.read_status(C1)
        observer.read_status(C1, timeout=60.0)
        observer.read_status(C1, timeout=2.5)
        assert api.request_timeouts == [7.0, 7.0, 2.5]
