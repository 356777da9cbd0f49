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

"""Scenario subcommands (run, run-file, stability)."""

from __future__ import annotations

from pathlib import Path

import typer

from capi_e2e import console
from capi_e2e.config import ClusterApiConfig, RetryConfig, TimeoutConfig
from capi_e2e.constants import DEFAULT_MAX_PARALLEL_SCENARIOS
from capi_e2e.environment import EnvironmentContext
from capi_e2e.models import (
    ClusterIdentity,
    ClusterParameters,
    LifecycleRequest,
    Operation,
)
from capi_e2e.orchestrator import ScenarioResult, StabilityOrchestrator
from capi_e2e.scenarios import load_scenarios

app = typer.Typer(help="Run lifecycle scenarios.")


def _orchestrator(attempts: int | None, retry_delay: float | None, timeout: float | None,
                  operation: Operation | None = None) -> StabilityOrchestrator:
    retry_cfg = RetryConfig()
    overrides: dict = {}
    if attempts is not None:
        overrides["attempts"] = attempts
    if retry_delay is not None:
        overrides["delay"] = retry_delay
    if overrides:
        retry_cfg = retry_cfg.model_copy(update=overrides)

    timeouts = TimeoutConfig()
    if timeout is not None:
        fields = [operation.value] if operation is not None else ["create", "scale", "delete"]
        timeouts = timeouts.model_copy(update={name: timeout for name in fields})

    return StabilityOrchestrator(EnvironmentContext.from_settings(retry_cfg=retry_cfg, timeouts=timeouts))


def _finish(results: list[ScenarioResult]) -> None:
    failed = [result for result in results if not result.success]
    if failed:
        for result in failed:
            console.print(f"[red]\u274c {result.report()}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]\u2705 {len(results)} scenario(s) passed[/green]")


@app.command()
def run(
    name: str = typer.Argument(..., help="Cluster name"),
    operation: Operation = typer.Option(Operation.CREATE, "--operation", "-o", help="Lifecycle operation"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Cluster namespace"),
    node_count: int | None = typer.Option(None, "--node-count", help="Worker nodes at creation"),
    region: str | None = typer.Option(None, "--region", help="Cloud region for the cluster"),
    kubernetes_version: str | None = typer.Option(None, "--kubernetes-version", help="Kubernetes version"),
    node_pool: str | None = typer.Option(None, "--node-pool", help="Node pool to scale"),
    replicas: int | None = typer.Option(None, "--replicas", help="Desired replicas when scaling"),
    attempts: int | None = typer.Option(None, "--attempts", help="Submission attempts (overrides E2E_RETRY_ATTEMPTS)"),
    retry_delay: float | None = typer.Option(None, "--retry-delay", help="Seconds between attempts"),
    timeout: float | None = typer.Option(None, "--timeout", help="Scenario budget in seconds"),
) -> None:
    """Run one lifecycle scenario: submit, await convergence, validate."""
    overrides: dict = {}
    if node_count is not None:
        overrides["node_count"] = node_count
    if region is not None:
        overrides["region"] = region
    if kubernetes_version is not None:
        overrides["kubernetes_version"] = kubernetes_version
    if node_pool is not None:
        overrides["node_pool_name"] = node_pool
    if replicas is not None:
        overrides["replicas"] = replicas

    identity = ClusterIdentity(name=name, namespace=namespace or ClusterApiConfig().namespace)
    request = LifecycleRequest(
        identity=identity, operation=operation, parameters=ClusterParameters(**overrides))
    orchestrator = _orchestrator(attempts, retry_delay, timeout, operation)
    _finish([orchestrator.run(request)])


@app.command("run-file")
def run_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scenario YAML file"),
    parallel: int = typer.Option(
        DEFAULT_MAX_PARALLEL_SCENARIOS, "--parallel", "-p", help="Scenarios to run concurrently"),
    attempts: int | None = typer.Option(None, "--attempts", help="Submission attempts"),
    retry_delay: float | None = typer.Option(None, "--retry-delay", help="Seconds between attempts"),
) -> None:
    """Run every scenario of a YAML file, several at a time."""
    requests = load_scenarios(path)
    console.print(f"[yellow]\u2139\ufe0f  Loaded {len(requests)} scenario(s) from {path}[/yellow]")
    orchestrator = _orchestrator(attempts, retry_delay, None)
    _finish(orchestrator.run_parallel(requests, max_workers=parallel))


@app.command()
def stability(
    name: str = typer.Argument(..., help="Cluster name"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Cluster namespace"),
    node_count: int = typer.Option(1, "--node-count", help="Worker nodes at creation"),
    scale_replicas: int | None = typer.Option(None, "--scale-replicas", help="Add a scale step to this many replicas"),
    attempts: int | None = typer.Option(None, "--attempts", help="Submission attempts"),
    retry_delay: float | None = typer.Option(None, "--retry-delay", help="Seconds between attempts"),
) -> None:
    """Create, optionally scale, then delete a cluster, checking each step."""
    identity = ClusterIdentity(name=name, namespace=namespace or ClusterApiConfig().namespace)
    orchestrator = _orchestrator(attempts, retry_delay, None)
    _finish(orchestrator.run_stability(
        identity, ClusterParameters(node_count=node_count), scale_replicas=scale_replicas))
