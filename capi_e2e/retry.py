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

"""Submission retry policy and its tenacity rendition."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_before_delay,
    stop_when_event_set,
    wait_exponential,
    wait_fixed,
)
from tenacity.wait import wait_base

from capi_e2e.config import RetryConfig
from capi_e2e.errors import is_retryable


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded resubmission policy applied uniformly to create, scale and delete.

    Attributes:
        attempts: Total attempts, including the first.
        delay: Fixed delay between attempts, or the backoff multiplier.
        backoff: Whether delays grow exponentially.
        max_delay: Cap on a single backoff delay.
        retryable: Predicate separating retryable errors from fatal ones.
    """

    attempts: int = 3
    delay: float = 30.0
    backoff: bool = False
    max_delay: float = 300.0
    retryable: Callable[[BaseException], bool] = is_retryable

    @classmethod
    def from_config(cls, retry_cfg: RetryConfig) -> RetryPolicy:
        return cls(
            attempts=retry_cfg.attempts,
            delay=retry_cfg.delay,
            backoff=retry_cfg.backoff,
            max_delay=retry_cfg.max_delay,
        )

    def wait_strategy(self) -> wait_base:
        if self.backoff:
            return wait_exponential(multiplier=self.delay, max=self.max_delay)
        return wait_fixed(self.delay)

    def retrying(
        self,
        *,
        cancel: threading.Event | None = None,
        between_attempts: Callable[[RetryCallState], None] | None = None,
        time_limit: float | None = None,
    ) -> Retrying:
        """Build a tenacity controller for this policy.

        The last error is re-raised unchanged once attempts run out or a
        non-retryable error occurs.

        Args:
            cancel: Event that stops further attempts and wakes the delay early.
            between_attempts: Hook run after a failed attempt, before the delay.
            time_limit: Seconds after which no further delay or attempt is started.
        """
        if cancel is None:
            cancel = threading.Event()
        stop = stop_after_attempt(self.attempts) | stop_when_event_set(cancel)
        if time_limit is not None:
            stop = stop | stop_before_delay(time_limit)
        return Retrying(
            stop=stop,
            wait=self.wait_strategy(),
            retry=retry_if_exception(self.retryable),
            before_sleep=between_attempts,
            sleep=cancel.wait,
            reraise=True,
        )
