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

"""Bounded readiness polling shared by every convergence wait."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_before_delay,
    stop_when_event_set,
    wait_fixed,
)

from capi_e2e import logger
from capi_e2e.errors import DeadlineExceededError, PollCancelledError


class PollStatus(Enum):
    CONVERGED = "converged"
    CONTINUE = "continue"
    FATAL = "fatal"


@dataclass(frozen=True)
class PollOutcome:
    """Result of one predicate evaluation.

    Attributes:
        status: Whether polling converged, should continue, or must stop.
        value: Converged value, or the state observed on a Continue.
        error: The error to raise on a Fatal outcome.
    """

    status: PollStatus
    value: Any = None
    error: BaseException | None = None

    @classmethod
    def converged(cls, value: Any = None) -> PollOutcome:
        return cls(PollStatus.CONVERGED, value=value)

    @classmethod
    def pending(cls, observed: Any = None) -> PollOutcome:
        return cls(PollStatus.CONTINUE, value=observed)

    @classmethod
    def fatal(cls, error: BaseException) -> PollOutcome:
        return cls(PollStatus.FATAL, error=error)


@dataclass(frozen=True)
class Deadline:
    """Absolute expiry on the monotonic clock."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def bound(self, timeout: float) -> float:
        """Clamp a step timeout so it never outlives this deadline."""
        return min(timeout, self.remaining())


def _is_pending(outcome: PollOutcome) -> bool:
    return outcome.status is PollStatus.CONTINUE


def poll_until(
    predicate: Callable[[], PollOutcome],
    *,
    interval: float,
    timeout: float,
    cancel: threading.Event | None = None,
    description: str = "condition",
) -> Any:
    """Evaluate ``predicate`` every ``interval`` seconds until it converges.

    The first evaluation runs immediately. No sleep is started if it would
    end past the deadline, and no evaluation is started once the deadline
    has passed. Predicates that block should bound their own calls by the
    time left on the same deadline.

    Args:
        predicate: Callable returning a PollOutcome; it has no other contract with the poller.
        interval: Seconds to sleep between evaluations.
        timeout: Seconds before the wait is abandoned.
        cancel: Event checked at every iteration boundary; sleeps wake early when it is set.
        description: Human-readable name of the awaited condition for errors and logs.

    Returns:
        The value carried by the Converged outcome.

    Raises:
        DeadlineExceededError: If the timeout elapses first.
        PollCancelledError: If ``cancel`` is set.
        Exception: The error carried by a Fatal outcome, unchanged.
    """
    if cancel is None:
        cancel = threading.Event()
    if timeout <= 0:
        raise DeadlineExceededError(f"No time left to wait for {description}")

    deadline = Deadline.after(timeout)
    observed: list[Any] = [None]

    def _attempt() -> PollOutcome:
        if cancel.is_set():
            raise PollCancelledError(f"Wait for {description} cancelled", last_observed=observed[0])
        if deadline.expired:
            raise DeadlineExceededError(
                f"Timed out after {timeout:.0f}s waiting for {description}", last_observed=observed[0])
        outcome = predicate()
        if outcome.status is PollStatus.FATAL:
            raise outcome.error
        if outcome.status is PollStatus.CONTINUE and outcome.value is not None:
            observed[0] = outcome.value
        return outcome

    retrying = Retrying(
        stop=stop_before_delay(timeout) | stop_when_event_set(cancel),
        wait=wait_fixed(interval),
        retry=retry_if_result(_is_pending),
        sleep=cancel.wait,
        before_sleep=lambda rs: logger.debug(
            "Waiting for %s (poll %d, observed %s)", description, rs.attempt_number, observed[0]),
    )
    try:
        outcome = retrying(_attempt)
    except RetryError as err:
        if cancel.is_set():
            raise PollCancelledError(
                f"Wait for {description} cancelled", last_observed=observed[0]) from err
        raise DeadlineExceededError(
            f"Timed out after {timeout:.0f}s waiting for {description}", last_observed=observed[0]) from err
    return outcome.value
