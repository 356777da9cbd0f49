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

"""Stability scenarios: submit, await convergence, validate, clean up."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum

from rich.panel import Panel
from tenacity import RetryCallState

from capi_e2e import ScenarioTranscript, console, logger
from capi_e2e.constants import DEFAULT_MAX_PARALLEL_SCENARIOS, DEFAULT_NODE_POOL_NAME
from capi_e2e.environment import EnvironmentContext
from capi_e2e.errors import (
    DeadlineExceededError,
    LifecycleError,
    NotFoundError,
    PollCancelledError,
    is_retryable,
)
from capi_e2e.models import (
    ClusterIdentity,
    ClusterParameters,
    LifecyclePhase,
    LifecycleRequest,
    Operation,
    ResourceKind,
)
from capi_e2e.poller import Deadline, PollOutcome, poll_until
from capi_e2e.tools import DeleteClusterRequest, GetClusterRequest, request_for

DEFAULT_MINIMUM_RESOURCES: dict[ResourceKind, int] = {
    ResourceKind.COMPUTE_INSTANCE: 1,
    ResourceKind.NETWORK: 1,
}


class ScenarioState(str, Enum):
    IDLE = "Idle"
    SUBMITTING = "Submitting"
    AWAITING_CONVERGENCE = "AwaitingConvergence"
    VALIDATING = "Validating"
    CLEANING_UP = "CleaningUp"
    DONE = "Done"


@dataclass
class ScenarioResult:
    """Everything a finished scenario reports.

    Attributes:
        request: The lifecycle request the scenario ran.
        success: Whether the scenario ended in Done(success).
        states: Every state entered, in order.
        attempts: Submission attempts made.
        last_phase: Last lifecycle phase observed.
        failed_in: State the scenario was in when it failed.
        error: The failure that ended the scenario.
        cleanup_ok: Outcome of the failure-path cleanup, None when it did not run.
        resource_counts: Active owned resources counted during validation.
        elapsed: Wall-clock seconds for the whole scenario.
    """

    request: LifecycleRequest
    success: bool = False
    states: list[ScenarioState] = field(default_factory=list)
    attempts: int = 0
    last_phase: LifecyclePhase | None = None
    failed_in: ScenarioState | None = None
    error: Exception | None = None
    cleanup_ok: bool | None = None
    resource_counts: dict[ResourceKind, int] = field(default_factory=dict)
    elapsed: float = 0.0

    @property
    def state(self) -> ScenarioState | None:
        return self.states[-1] if self.states else None

    def enter(self, state: ScenarioState) -> None:
        logger.debug("Scenario %s: %s -> %s", self.request, self.state.value if self.state else "-", state.value)
        self.states.append(state)

    def report(self) -> str:
        """One-line summary that always names the last observed phase."""
        phase = self.last_phase.value if self.last_phase is not None else "unknown"
        if self.success:
            return (f"{self.request}: succeeded after {self.attempts} attempt(s) in "
                    f"{self.elapsed:.1f}s (phase {phase})")
        kind = self.error.kind.value if isinstance(self.error, LifecycleError) else type(self.error).__name__
        failed_in = self.failed_in.value if self.failed_in is not None else "unknown"
        return (f"{self.request}: failed in {failed_in} after {self.attempts} attempt(s) "
                f"[{kind}] {self.error} (last observed phase: {phase})")


class StabilityOrchestrator:
    """Runs lifecycle scenarios against one environment.

    Holds no per-scenario state, so one instance can drive many scenarios
    concurrently as long as their cluster identities differ.
    """

    def __init__(self, ctx: EnvironmentContext) -> None:
        self._ctx = ctx
        self._tools = ctx.tool_client
        self._observer = ctx.observer
        self._inventory = ctx.inventory
        self._policy = ctx.retry_policy
        self._timeouts = ctx.timeouts

    def _budget(self, operation: Operation) -> float:
        return {
            Operation.CREATE: self._timeouts.create,
            Operation.SCALE: self._timeouts.scale,
            Operation.DELETE: self._timeouts.delete,
        }[operation]

    # ========================================================================
    # Scenario
    # ========================================================================

    def run(self, request: LifecycleRequest, *, cancel: threading.Event | None = None) -> ScenarioResult:
        """Drive one lifecycle request through the scenario state machine.

        Never raises for scenario failures; they are reported on the result
        after the cleanup pass.

        Args:
            request: Lifecycle request to run.
            cancel: Cancellation signal passed to every wait and retry delay.

        Returns:
            The finished ScenarioResult.
        """
        if cancel is None:
            cancel = threading.Event()
        started = time.monotonic()
        deadline = Deadline.after(self._budget(request.operation))
        result = ScenarioResult(request=request)
        result.enter(ScenarioState.IDLE)
        console.print(Panel.fit(f"Scenario: {request}", style="bold blue"))

        try:
            if cancel.is_set():
                raise PollCancelledError(f"Scenario {request} cancelled before submission")
            result.enter(ScenarioState.SUBMITTING)
            self._submit(request, result, deadline, cancel)
            result.enter(ScenarioState.AWAITING_CONVERGENCE)
            self._await_convergence(request, result, deadline, cancel)
            result.enter(ScenarioState.VALIDATING)
            self._validate(request, result, deadline, cancel)
            result.success = True
        except Exception as err:
            result.error = err
            result.failed_in = result.state
            observed = getattr(err, "last_observed", None)
            if isinstance(observed, LifecyclePhase):
                result.last_phase = observed
            if result.last_phase is None:
                result.last_phase = self._observe_after_failure(request.identity)
            console.print(f"[red]\u274c {request} failed: {err}[/red]")
            result.enter(ScenarioState.CLEANING_UP)
            result.cleanup_ok = self.cleanup(request.identity)

        result.enter(ScenarioState.DONE)
        result.elapsed = time.monotonic() - started
        if result.success:
            console.print(f"[green]\u2705 {result.report()}[/green]")
        else:
            console.print(f"[red]\u274c {result.report()}[/red]")
        return result

    def _submit(
        self, request: LifecycleRequest, result: ScenarioResult, deadline: Deadline, cancel: threading.Event
    ) -> None:
        tool_request = request_for(request)

        def _between_attempts(retry_state: RetryCallState) -> None:
            err = retry_state.outcome.exception()
            console.print(
                f"[yellow]\u26a0\ufe0f  Attempt {retry_state.attempt_number}/{self._policy.attempts} "
                f"for {request} failed: {err}[/yellow]")
            if request.operation is Operation.CREATE:
                self.cleanup(request.identity, cancel=cancel, timeout=deadline.bound(self._timeouts.cleanup))

        console.print(f"[yellow]\u2139\ufe0f  Submitting {tool_request.tool} for {request.identity}...[/yellow]")
        retrying = self._policy.retrying(
            cancel=cancel, between_attempts=_between_attempts, time_limit=deadline.remaining())
        for attempt in retrying:
            with attempt:
                if deadline.expired:
                    raise DeadlineExceededError(f"No time left to submit {request}")
                result.attempts = attempt.retry_state.attempt_number
                outcome = self._tools.submit(tool_request, timeout=deadline.remaining())
                if request.operation is Operation.DELETE and isinstance(outcome.error, NotFoundError):
                    console.print(f"[yellow]   {request.identity} already gone[/yellow]")
                    return
                outcome.unwrap()
        console.print(f"[green]\u2705 {tool_request.tool} accepted for {request.identity}[/green]")

    def _await_convergence(
        self, request: LifecycleRequest, result: ScenarioResult, deadline: Deadline, cancel: threading.Event
    ) -> None:
        identity = request.identity
        if request.operation is Operation.DELETE:
            console.print(f"[yellow]\u2139\ufe0f  Waiting for {identity} to be removed...[/yellow]")
            status = self._observer.await_phase(
                identity, LifecyclePhase.ABSENT, timeout=deadline.remaining(), cancel=cancel,
                interval=self._timeouts.delete_poll_interval)
            result.last_phase = status.phase
            console.print(f"[green]\u2705 {identity} is absent[/green]")
            return

        if request.operation is Operation.CREATE:
            console.print(f"[yellow]\u2139\ufe0f  Waiting for {identity} to start provisioning...[/yellow]")
            status = self._observer.await_phase(
                identity, LifecyclePhase.PROVISIONING, also_accept=(LifecyclePhase.PROVISIONED,),
                timeout=deadline.bound(self._timeouts.provisioning), cancel=cancel)
            result.last_phase = status.phase

        console.print(f"[yellow]\u2139\ufe0f  Waiting for {identity} to be provisioned...[/yellow]")
        status = self._observer.await_phase(
            identity, LifecyclePhase.PROVISIONED, timeout=deadline.remaining(), cancel=cancel)
        result.last_phase = status.phase
        console.print(f"[green]\u2705 {identity} is provisioned[/green]")

        if request.operation is Operation.SCALE:
            self._await_node_pool(request, deadline, cancel)

    def _await_node_pool(self, request: LifecycleRequest, deadline: Deadline, cancel: threading.Event) -> None:
        pool_name = request.parameters.node_pool_name
        replicas = request.parameters.replicas
        identity = request.identity
        console.print(
            f"[yellow]\u2139\ufe0f  Waiting for node pool '{pool_name}' of {identity} "
            f"to reach {replicas} ready replica(s)...[/yellow]")

        def _check() -> PollOutcome:
            outcome = self._tools.submit(GetClusterRequest(cluster_name=identity.name), timeout=deadline.remaining())
            if outcome.error is not None:
                if is_retryable(outcome.error):
                    logger.warning("Transient error reading %s: %s", identity, outcome.error)
                    return PollOutcome.pending()
                return PollOutcome.fatal(outcome.error)
            pool = outcome.payload.cluster.node_pool(pool_name)
            if pool is None:
                return PollOutcome.pending(f"node pool {pool_name} missing")
            if pool.ready_replicas == replicas and pool.replicas == replicas:
                return PollOutcome.converged(pool)
            return PollOutcome.pending(f"{pool.ready_replicas}/{replicas} ready")

        poll_until(_check, interval=self._timeouts.poll_interval, timeout=deadline.remaining(),
                   cancel=cancel, description=f"node pool {pool_name} of {identity}")
        console.print(f"[green]\u2705 Node pool '{pool_name}' has {replicas} ready replica(s)[/green]")

    def _validate(
        self, request: LifecycleRequest, result: ScenarioResult, deadline: Deadline, cancel: threading.Event
    ) -> None:
        identity = request.identity
        settle = deadline.bound(self._timeouts.settle)
        if request.operation is Operation.DELETE:
            self._inventory.await_absence(
                identity, timeout=settle, interval=self._timeouts.poll_interval, cancel=cancel)
            console.print(f"[green]\u2705 No owned resources of {identity} remain[/green]")
            return

        minimum = request.minimum_resources or DEFAULT_MINIMUM_RESOURCES
        result.resource_counts = self._inventory.await_presence(
            identity, minimum, timeout=settle, interval=self._timeouts.poll_interval, cancel=cancel)
        console.print(f"[green]\u2705 Owned resources of {identity} present[/green]")

    def _observe_after_failure(self, identity: ClusterIdentity) -> LifecyclePhase | None:
        try:
            return self._observer.observe(identity)
        except LifecycleError as err:
            logger.warning("Could not read the phase of %s after failure: %s", identity, err)
            return None

    # ========================================================================
    # Cleanup
    # ========================================================================

    def cleanup(
        self, identity: ClusterIdentity, *, cancel: threading.Event | None = None, timeout: float | None = None
    ) -> bool:
        """Best-effort removal of a cluster and its leftovers.

        Safe to call on an absent cluster and safe to call repeatedly. Errors
        are logged and never raised.

        Args:
            identity: Cluster to remove.
            cancel: Cancellation signal for the absence wait.
            timeout: Budget for the whole pass; defaults to the configured cleanup timeout.

        Returns:
            True if the cluster is confirmed absent and leftovers were handled.
        """
        console.print(f"[yellow]\u2139\ufe0f  Cleaning up {identity}...[/yellow]")
        deadline = Deadline.after(self._timeouts.cleanup if timeout is None else timeout)
        try:
            outcome = self._tools.submit(DeleteClusterRequest(cluster_name=identity.name), timeout=deadline.remaining())
            if outcome.error is not None and not isinstance(outcome.error, NotFoundError):
                raise outcome.error
            self._observer.await_phase(
                identity, LifecyclePhase.ABSENT, timeout=deadline.remaining(), cancel=cancel,
                interval=self._timeouts.delete_poll_interval)
            if self._ctx.terminate_leftovers:
                self._inventory.terminate_owned_instances(identity)
        except Exception as err:
            logger.warning("Cleanup of %s failed: %s", identity, err)
            console.print(f"[yellow]\u26a0\ufe0f  Cleanup of {identity} incomplete: {err}[/yellow]")
            return False
        console.print(f"[green]\u2705 {identity} cleaned up[/green]")
        return True

    # ========================================================================
    # Composite runs
    # ========================================================================

    def run_stability(
        self,
        identity: ClusterIdentity,
        parameters: ClusterParameters | None = None,
        *,
        scale_replicas: int | None = None,
        minimum_resources: dict[ResourceKind, int] | None = None,
        cancel: threading.Event | None = None,
    ) -> list[ScenarioResult]:
        """Create a cluster, optionally scale it, then delete it.

        Stops at the first failed step; that step's cleanup has already run.

        Args:
            identity: Cluster to cycle.
            parameters: Creation parameters; defaults apply when omitted.
            scale_replicas: Replica count for an intermediate scale step.
            minimum_resources: Owned-resource minimums checked after create and scale.
            cancel: Cancellation signal for every step.

        Returns:
            Results of the steps that ran, in order.
        """
        parameters = parameters or ClusterParameters()
        requests = [LifecycleRequest(identity=identity, operation=Operation.CREATE,
                                     parameters=parameters, minimum_resources=minimum_resources)]
        if scale_replicas is not None:
            pool = parameters.node_pool_name or DEFAULT_NODE_POOL_NAME
            requests.append(LifecycleRequest(
                identity=identity,
                operation=Operation.SCALE,
                parameters=parameters.model_copy(update={"node_pool_name": pool, "replicas": scale_replicas}),
                minimum_resources=minimum_resources,
            ))
        requests.append(LifecycleRequest(identity=identity, operation=Operation.DELETE, parameters=parameters))

        results = []
        for request in requests:
            result = self.run(request, cancel=cancel)
            results.append(result)
            if not result.success:
                break
        return results

    def run_parallel(
        self,
        requests: Sequence[LifecycleRequest],
        *,
        max_workers: int = DEFAULT_MAX_PARALLEL_SCENARIOS,
        cancel: threading.Event | None = None,
    ) -> list[ScenarioResult]:
        """Run independent scenarios concurrently, printing each one's output as a block.

        Raises:
            ValueError: If two requests target the same cluster identity.
        """
        _check_disjoint([request.identity for request in requests])
        return run_parallel_tasks(
            [(str(request), lambda req=request: self.run(req, cancel=cancel)) for request in requests],
            max_workers=max_workers,
        )


def _check_disjoint(identities: Sequence[ClusterIdentity]) -> None:
    seen: set[ClusterIdentity] = set()
    for identity in identities:
        if identity in seen:
            raise ValueError(f"Concurrent scenarios must target distinct clusters; {identity} appears twice")
        seen.add(identity)


def run_parallel_tasks(
    tasks: Sequence[tuple[str, Callable[[], ScenarioResult]]], *, max_workers: int
) -> list[ScenarioResult]:
    """Run labelled tasks on a thread pool, replaying each one's output as a block.

    Output captured before a task raised is still replayed before the error
    propagates.

    Args:
        tasks: ``(label, fn)`` pairs; each fn runs one scenario.
        max_workers: Upper bound on concurrent scenarios.

    Returns:
        Task results in submission order.
    """
    if not tasks:
        return []

    results: list[ScenarioResult | None] = [None] * len(tasks)
    transcripts: list[ScenarioTranscript | None] = [None] * len(tasks)
    lock = threading.Lock()

    def _run_task(index: int, label: str, fn: Callable[[], ScenarioResult]) -> None:
        with console.capture(label) as transcript:
            try:
                value = fn()
            finally:
                with lock:
                    transcripts[index] = transcript
        with lock:
            results[index] = value

    try:
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tasks)))) as executor:
            futures = [executor.submit(_run_task, index, label, fn) for index, (label, fn) in enumerate(tasks)]
            for future in as_completed(futures):
                future.result()
    finally:
        console.replay(t for t in transcripts if t is not None)
    return results
