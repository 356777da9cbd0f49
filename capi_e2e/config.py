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

"""Configuration classes, auto-loaded from E2E_* environment variables."""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from capi_e2e.constants import (
    CAPI_CLUSTER_PLURAL,
    CAPI_GROUP,
    CAPI_VERSION,
    DEFAULT_AWS_REGION,
    DEFAULT_CLEANUP_TIMEOUT,
    DEFAULT_CREATE_TIMEOUT,
    DEFAULT_DELETE_POLL_INTERVAL,
    DEFAULT_DELETE_TIMEOUT,
    DEFAULT_KUBE_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_NAMESPACE,
    DEFAULT_OWNERSHIP_NAMESPACE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROVISIONING_TIMEOUT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
    DEFAULT_SCALE_TIMEOUT,
    DEFAULT_SETTLE_TIMEOUT,
    DEFAULT_TOOL_API_KEY,
    DEFAULT_TOOL_SERVER_URL,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
)


# ============================================================================
# Remote endpoints
# ============================================================================

class ToolServerConfig(BaseSettings):
    """Tool server endpoint, auto-loaded from E2E_TOOL_* env vars.

    Attributes:
        url: Base URL of the tool server.
        api_key: Bearer token sent with every call.
        timeout: Hard timeout for a single tool call, in seconds.
    """

    model_config = SettingsConfigDict(env_prefix="E2E_TOOL_", extra="ignore")

    url: str = Field(default=DEFAULT_TOOL_SERVER_URL, pattern=r"^https?://")
    api_key: SecretStr = SecretStr(DEFAULT_TOOL_API_KEY)
    timeout: float = Field(default=DEFAULT_TOOL_TIMEOUT_SECONDS, gt=0)


class ClusterApiConfig(BaseSettings):
    """Declarative state API coordinates, auto-loaded from E2E_CAPI_* env vars.

    Attributes:
        namespace: Namespace holding the Cluster objects under test.
        group: API group of the Cluster resource.
        version: API version of the Cluster resource.
        plural: Resource plural used in custom object calls.
        request_timeout: Timeout for a single API read, in seconds.
        kube_context: kubeconfig context to use, or None for the current one.
    """

    model_config = SettingsConfigDict(env_prefix="E2E_CAPI_", extra="ignore")

    namespace: str = DEFAULT_NAMESPACE
    group: str = CAPI_GROUP
    version: str = CAPI_VERSION
    plural: str = CAPI_CLUSTER_PLURAL
    request_timeout: float = Field(default=DEFAULT_KUBE_REQUEST_TIMEOUT_SECONDS, gt=0)
    kube_context: str | None = None


class InventoryConfig(BaseSettings):
    """Cloud inventory settings, auto-loaded from E2E_AWS_* env vars.

    Attributes:
        region: AWS region holding the cluster resources.
        ownership_namespace: Tag namespace the provider uses for ownership tags.
        terminate_leftovers: Whether cleanup terminates owned instances left behind.
    """

    model_config = SettingsConfigDict(env_prefix="E2E_AWS_", extra="ignore")

    region: str = DEFAULT_AWS_REGION
    ownership_namespace: str = DEFAULT_OWNERSHIP_NAMESPACE
    terminate_leftovers: bool = True


# ============================================================================
# Retry and timing
# ============================================================================

class RetryConfig(BaseSettings):
    """Submission retry budget, auto-loaded from E2E_RETRY_* env vars.

    Attributes:
        attempts: Maximum submission attempts per lifecycle request.
        delay: Delay between attempts, or the multiplier when backoff is on.
        backoff: Whether to use exponential backoff instead of a fixed delay.
        max_delay: Upper bound on a single backoff delay.
    """

    model_config = SettingsConfigDict(env_prefix="E2E_RETRY_", extra="ignore")

    attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=1, le=10)
    delay: float = Field(default=DEFAULT_RETRY_DELAY_SECONDS, ge=0)
    backoff: bool = False
    max_delay: float = Field(default=DEFAULT_RETRY_MAX_DELAY_SECONDS, ge=0)


class TimeoutConfig(BaseSettings):
    """Scenario budgets and poll cadence in seconds, auto-loaded from E2E_TIMEOUT_* env vars.

    Attributes:
        create: Overall budget for a create scenario.
        scale: Overall budget for a scale scenario.
        delete: Overall budget for a delete scenario.
        cleanup: Separate budget for the best-effort cleanup pass.
        provisioning: Budget for a new cluster to leave Pending.
        settle: Window for the cloud inventory to catch up with the declared phase.
        poll_interval: Interval between phase observations.
        delete_poll_interval: Interval between observations while awaiting absence.
    """

    model_config = SettingsConfigDict(env_prefix="E2E_TIMEOUT_", extra="ignore")

    create: float = Field(default=DEFAULT_CREATE_TIMEOUT, gt=0)
    scale: float = Field(default=DEFAULT_SCALE_TIMEOUT, gt=0)
    delete: float = Field(default=DEFAULT_DELETE_TIMEOUT, gt=0)
    cleanup: float = Field(default=DEFAULT_CLEANUP_TIMEOUT, gt=0)
    provisioning: float = Field(default=DEFAULT_PROVISIONING_TIMEOUT, gt=0)
    settle: float = Field(default=DEFAULT_SETTLE_TIMEOUT, ge=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    delete_poll_interval: float = Field(default=DEFAULT_DELETE_POLL_INTERVAL, gt=0)
