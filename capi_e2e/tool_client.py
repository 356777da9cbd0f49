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

"""Authenticated client for the remote tool-invocation API."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import pydantic
import requests

from capi_e2e import logger
from capi_e2e.config import ToolServerConfig
from capi_e2e.constants import NOT_FOUND_MESSAGE_FRAGMENTS, TOOL_CALL_PATH, TOOL_HEALTH_PATH
from capi_e2e.errors import (
    ApplicationError,
    AuthenticationError,
    DeadlineExceededError,
    ErrorCode,
    ErrorKind,
    InvalidInputError,
    LifecycleError,
    NotFoundError,
    TransportError,
)
from capi_e2e.tools import (
    OUTPUT_TYPES,
    CreateClusterOutput,
    CreateClusterRequest,
    DeleteClusterOutput,
    DeleteClusterRequest,
    GetClusterOutput,
    GetClusterRequest,
    GetKubeconfigOutput,
    GetKubeconfigRequest,
    GetNodesOutput,
    GetNodesRequest,
    ListClustersOutput,
    ListClustersRequest,
    ScaleClusterOutput,
    ScaleClusterRequest,
    ToolRequest,
    parse_tool_request,
)

_AUTH_CODES = (ErrorCode.UNAUTHORIZED, ErrorCode.FORBIDDEN)


@dataclass(frozen=True)
class ToolInvocationResult:
    """Outcome of a single tool call. Carries no retry state.

    Attributes:
        tool: Name of the invoked tool.
        success: Whether the server reported success.
        payload: Typed output model on success.
        error: Classified error on failure.
        elapsed: Wall-clock seconds spent on the call.
    """

    tool: str
    success: bool
    payload: pydantic.BaseModel | None = None
    error: LifecycleError | None = None
    elapsed: float = 0.0

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> pydantic.BaseModel:
        """Return the payload, or raise the classified error."""
        if self.error is not None:
            raise self.error
        return self.payload


def classify_failure(message: str, code: ErrorCode | None) -> LifecycleError:
    """Map an unsuccessful envelope to the error taxonomy.

    The structured code decides when present; the message is only consulted
    for servers that omit the code.
    """
    if code in _AUTH_CODES:
        return AuthenticationError(message)
    if code is ErrorCode.NOT_FOUND:
        return NotFoundError(message)
    if code is ErrorCode.INVALID_INPUT:
        return InvalidInputError(message)
    if code is None and any(fragment in message.lower() for fragment in NOT_FOUND_MESSAGE_FRAGMENTS):
        return NotFoundError(message)
    return ApplicationError(message, code=code)


class ToolClient:
    """Stateless request/response client for ``POST /tools/call``.

    Safe for concurrent use: the only shared object is the requests session.
    """

    def __init__(self, tool_cfg: ToolServerConfig, session: requests.Session | None = None) -> None:
        self._base_url = tool_cfg.url.rstrip("/")
        self._timeout = tool_cfg.timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {tool_cfg.api_key.get_secret_value()}",
            "Content-Type": "application/json",
        })

    # ------------------------------------------------------------------
    # Generic invocation
    # ------------------------------------------------------------------

    def invoke(self, tool: str, parameters: dict[str, Any] | None = None) -> ToolInvocationResult:
        """Invoke a tool from a loose parameter map.

        The map is decoded into the tool's typed request first; an invalid map
        fails with INVALID_INPUT before anything is sent.
        """
        try:
            request = parse_tool_request(tool, parameters)
        except pydantic.ValidationError as err:
            return ToolInvocationResult(
                tool=tool,
                success=False,
                error=InvalidInputError(f"Invalid parameters for {tool}: {err.error_count()} error(s)"),
            )
        return self.submit(request)

    def submit(self, request: ToolRequest, timeout: float | None = None) -> ToolInvocationResult:
        """Send one typed request and classify the response envelope.

        Args:
            request: Typed tool request.
            timeout: Seconds left for this call, capped at the configured timeout.
        """
        started = time.monotonic()
        try:
            payload = self._call(request, self._timeout if timeout is None else min(self._timeout, timeout))
        except LifecycleError as err:
            elapsed = time.monotonic() - started
            logger.debug("Tool %s failed after %.2fs: [%s] %s", request.tool, elapsed, err.kind.value, err)
            return ToolInvocationResult(tool=request.tool, success=False, error=err, elapsed=elapsed)
        elapsed = time.monotonic() - started
        logger.debug("Tool %s succeeded in %.2fs", request.tool, elapsed)
        return ToolInvocationResult(tool=request.tool, success=True, payload=payload, elapsed=elapsed)

    def _call(self, request: ToolRequest, timeout: float) -> pydantic.BaseModel:
        if timeout <= 0:
            raise DeadlineExceededError(f"No time left to call {request.tool}")
        body = {"tool": request.tool, "parameters": request.parameters()}
        try:
            response = self._session.post(
                f"{self._base_url}{TOOL_CALL_PATH}", json=body, timeout=timeout)
        except requests.Timeout as err:
            raise TransportError(f"{request.tool} timed out after {timeout:.1f}s") from err
        except requests.RequestException as err:
            raise TransportError(f"{request.tool} request failed: {err}") from err

        if response.status_code in (401, 403):
            raise AuthenticationError(f"{request.tool} rejected with HTTP {response.status_code}")
        if response.status_code >= 500:
            raise TransportError(
                f"{request.tool} failed with HTTP {response.status_code}: {response.text[:200]}")

        try:
            envelope = response.json()
        except ValueError as err:
            raise ApplicationError(
                f"{request.tool} returned a non-JSON body (HTTP {response.status_code})",
                code=ErrorCode.INTERNAL_ERROR,
            ) from err
        if not isinstance(envelope, dict) or not isinstance(envelope.get("success"), bool):
            raise ApplicationError(
                f"{request.tool} returned a malformed envelope", code=ErrorCode.INTERNAL_ERROR)

        if not envelope["success"]:
            message = envelope.get("error") or f"{request.tool} failed (HTTP {response.status_code})"
            raise classify_failure(message, ErrorCode.parse(envelope.get("code")))
        if response.status_code >= 400:
            raise ApplicationError(f"{request.tool} failed with HTTP {response.status_code}")

        try:
            return OUTPUT_TYPES[request.tool].model_validate(envelope.get("data") or {})
        except pydantic.ValidationError as err:
            raise ApplicationError(
                f"{request.tool} returned an unexpected payload: {err.error_count()} error(s)",
                code=ErrorCode.INTERNAL_ERROR,
            ) from err

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    def list_clusters(self) -> ListClustersOutput:
        return self.submit(ListClustersRequest()).unwrap()

    def get_cluster(self, cluster_name: str) -> GetClusterOutput:
        return self.submit(GetClusterRequest(cluster_name=cluster_name)).unwrap()

    def create_cluster(self, request: CreateClusterRequest) -> CreateClusterOutput:
        return self.submit(request).unwrap()

    def scale_cluster(self, request: ScaleClusterRequest) -> ScaleClusterOutput:
        return self.submit(request).unwrap()

    def delete_cluster(self, cluster_name: str) -> DeleteClusterOutput:
        return self.submit(DeleteClusterRequest(cluster_name=cluster_name)).unwrap()

    def get_cluster_kubeconfig(self, cluster_name: str) -> GetKubeconfigOutput:
        return self.submit(GetKubeconfigRequest(cluster_name=cluster_name)).unwrap()

    def get_cluster_nodes(self, cluster_name: str) -> GetNodesOutput:
        return self.submit(GetNodesRequest(cluster_name=cluster_name)).unwrap()

    def health(self) -> None:
        """Check the server health endpoint.

        Raises:
            AuthenticationError: If the bearer token is rejected.
            TransportError: If the server is unreachable or unhealthy.
        """
        try:
            response = self._session.get(f"{self._base_url}{TOOL_HEALTH_PATH}", timeout=self._timeout)
        except requests.RequestException as err:
            raise TransportError(f"Health check failed: {err}") from err
        if response.status_code in (401, 403):
            raise AuthenticationError(f"Health check rejected with HTTP {response.status_code}")
        if response.status_code != 200:
            raise TransportError(
                f"Health check failed with status {response.status_code}: {response.text[:200]}")
