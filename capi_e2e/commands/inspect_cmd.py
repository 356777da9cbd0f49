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

"""Read-only inspection subcommands (phase, wait, resources, validate, health, responsiveness)."""

from __future__ import annotations

import typer
from rich.panel import Panel
from rich.table import Table

from capi_e2e import console
from capi_e2e.config import ClusterApiConfig
from capi_e2e.constants import DEFAULT_RESPONSIVENESS_CALLS, DEFAULT_RESPONSIVENESS_CONCURRENCY
from capi_e2e.environment import EnvironmentContext
from capi_e2e.health import check_environment, check_responsiveness
from capi_e2e.models import ClusterIdentity, LifecyclePhase, ResourceKind

app = typer.Typer(help="Inspect clusters, owned resources and the environment.")


def _identity(name: str, namespace: str | None) -> ClusterIdentity:
    return ClusterIdentity(name=name, namespace=namespace or ClusterApiConfig().namespace)


@app.command()
def phase(
    name: str = typer.Argument(..., help="Cluster name"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Cluster namespace"),
) -> None:
    """Print the current lifecycle phase and readiness flags of a cluster."""
    ctx = EnvironmentContext.from_settings()
    identity = _identity(name, namespace)
    status = ctx.observer.read_status(identity)
    console.print(
        f"{identity}: [bold]{status.phase.value}[/bold] "
        f"(controlPlaneReady={status.control_plane_ready}, infrastructureReady={status.infrastructure_ready})")


@app.command()
def wait(
    name: str = typer.Argument(..., help="Cluster name"),
    target: LifecyclePhase = typer.Option(LifecyclePhase.PROVISIONED, "--phase", help="Phase to wait for"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Cluster namespace"),
    timeout: float = typer.Option(600.0, "--timeout", help="Seconds to wait"),
) -> None:
    """Wait until a cluster reaches a lifecycle phase."""
    ctx = EnvironmentContext.from_settings()
    identity = _identity(name, namespace)
    console.print(f"[yellow]\u2139\ufe0f  Waiting for {identity} to reach {target.value}...[/yellow]")
    ctx.observer.await_phase(identity, target, timeout=timeout)
    console.print(f"[green]\u2705 {identity} reached {target.value}[/green]")


@app.command()
def resources(
    name: str = typer.Argument(..., help="Cluster name"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Cluster namespace"),
) -> None:
    """List the cloud resources owned by a cluster."""
    ctx = EnvironmentContext.from_settings()
    identity = _identity(name, namespace)
    table = Table(title=f"Resources owned by {identity}")
    table.add_column("Kind")
    table.add_column("ID")
    table.add_column("State")
    for kind, snapshots in ctx.inventory.list_all_owned(identity).items():
        for snap in snapshots:
            table.add_row(kind.value, snap.resource_id, snap.state.value)
    console.print(table)


@app.command()
def validate(
    name: str = typer.Argument(..., help="Cluster name"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Cluster namespace"),
    absent: bool = typer.Option(False, "--absent", help="Require that no owned resources remain"),
    min_instances: int = typer.Option(1, "--min-instances", help="Minimum running instances"),
    min_networks: int = typer.Option(1, "--min-networks", help="Minimum VPCs"),
    min_load_balancers: int = typer.Option(0, "--min-load-balancers", help="Minimum load balancers"),
) -> None:
    """Check the cloud inventory of a cluster once."""
    ctx = EnvironmentContext.from_settings()
    identity = _identity(name, namespace)
    if absent:
        ctx.inventory.validate_absence(identity)
        console.print(f"[green]\u2705 No owned resources of {identity} remain[/green]")
        return
    counts = ctx.inventory.validate_presence(identity, {
        ResourceKind.COMPUTE_INSTANCE: min_instances,
        ResourceKind.NETWORK: min_networks,
        ResourceKind.LOAD_BALANCER: min_load_balancers,
    })
    summary = ", ".join(f"{kind.value}={count}" for kind, count in counts.items())
    console.print(f"[green]\u2705 Owned resources of {identity} present: {summary}[/green]")


@app.command()
def health() -> None:
    """Check that the tool server, Cluster API and cloud inventory are reachable."""
    console.print(Panel.fit("Checking environment", style="bold blue"))
    results = check_environment(EnvironmentContext.from_settings())
    if not all(result.ok for result in results):
        raise typer.Exit(1)


@app.command()
def responsiveness(
    calls: int = typer.Option(DEFAULT_RESPONSIVENESS_CALLS, "--calls", help="Back-to-back calls"),
    concurrency: int = typer.Option(DEFAULT_RESPONSIVENESS_CONCURRENCY, "--concurrency", help="Simultaneous calls"),
) -> None:
    """Time rapid and concurrent tool calls against the tool server."""
    ctx = EnvironmentContext.from_settings()
    report = check_responsiveness(ctx.tool_client, calls=calls, concurrency=concurrency)
    console.print(f"  {report.sequential_calls} sequential calls: {report.sequential_elapsed:.2f}s")
    console.print(f"  {report.concurrent_calls} concurrent calls: {report.concurrent_elapsed:.2f}s")
    if not report.ok:
        for failure in report.failures:
            console.print(f"[red]\u274c {failure}[/red]")
        raise typer.Exit(1)
    console.print("[green]\u2705 Tool server is responsive[/green]")
