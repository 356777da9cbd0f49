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

"""Error taxonomy shared by the clients, the poller and the orchestrator."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification attached to every lifecycle error."""

    TRANSPORT = "transport"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    APPLICATION = "application"
    STATE_TRANSITION = "state_transition"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    CANCELLED = "cancelled"
    INVENTORY_MISMATCH = "inventory_mismatch"


class ErrorCode(str, Enum):
    """Structured error codes carried in the tool server's response envelope."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    KUBERNETES_API_ERROR = "KUBERNETES_API_ERROR"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    PROVIDER_VALIDATION = "PROVIDER_VALIDATION"
    DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
    WORKLOAD_CLUSTER = "WORKLOAD_CLUSTER"

    @classmethod
    def parse(cls, value: str | None) -> ErrorCode | None:
        """Return the matching code, or None for missing or unknown values."""
        if not value:
            return None
        try:
            return cls(value.upper())
        except ValueError:
            return None


class LifecycleError(Exception):
    """Base class for every classified failure.

    Attributes:
        kind: Error classification.
        retryable: Whether a retry policy may resubmit after this error.
        last_observed: Last state seen before the failure, reported alongside the message.
    """

    kind: ErrorKind = ErrorKind.APPLICATION
    retryable: bool = False

    def __init__(self, message: str, *, last_observed: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.last_observed = last_observed

    def __str__(self) -> str:
        if self.last_observed is None:
            return self.message
        observed = getattr(self.last_observed, "value", self.last_observed)
        return f"{self.message} (last observed: {observed})"


class TransportError(LifecycleError):
    """Network failure or timeout talking to a remote endpoint."""

    kind = ErrorKind.TRANSPORT
    retryable = True


class AuthenticationError(LifecycleError):
    """Credentials were rejected; never retried."""

    kind = ErrorKind.AUTHENTICATION


class NotFoundError(LifecycleError):
    """The remote system reports the target does not exist."""

    kind = ErrorKind.NOT_FOUND


class ApplicationError(LifecycleError):
    """The remote system accepted the call but reported a failure."""

    kind = ErrorKind.APPLICATION
    retryable = True

    def __init__(self, message: str, *, code: ErrorCode | None = None, last_observed: Any = None) -> None:
        super().__init__(message, last_observed=last_observed)
        self.code = code


class InvalidInputError(ApplicationError):
    """The request itself is invalid; resubmitting it cannot succeed."""

    retryable = False

    def __init__(self, message: str, *, last_observed: Any = None) -> None:
        super().__init__(message, code=ErrorCode.INVALID_INPUT, last_observed=last_observed)


class StateTransitionError(LifecycleError):
    """The cluster entered Failed or vanished while a different phase was awaited."""

    kind = ErrorKind.STATE_TRANSITION


class DeadlineExceededError(LifecycleError):
    """A bounded wait ran out of time before convergence."""

    kind = ErrorKind.DEADLINE_EXCEEDED


class PollCancelledError(LifecycleError):
    """The caller's cancellation signal fired during a wait."""

    kind = ErrorKind.CANCELLED


class InventoryMismatchError(LifecycleError):
    """Cloud inventory disagrees with the declared lifecycle phase."""

    kind = ErrorKind.INVENTORY_MISMATCH


def is_retryable(exc: BaseException) -> bool:
    """Return True for errors a retry policy may absorb."""
    return isinstance(exc, LifecycleError) and exc.retryable
