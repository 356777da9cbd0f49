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

"""Cleanup subcommand."""

from __future__ import annotations

import typer

from capi_e2e.config import ClusterApiConfig, InventoryConfig
from capi_e2e.environment import EnvironmentContext
from capi_e2e.models import ClusterIdentity
from capi_e2e.orchestrator import StabilityOrchestrator

app = typer.Typer(help="Remove clusters left behind by failed runs.")


@app.command("clusters")
def clusters(
    names: list[str] = typer.Argument(..., help="Cluster names"),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Cluster namespace"),
    keep_instances: bool = typer.Option(
        False, "--keep-instances", help="Do not terminate leftover owned instances"),
) -> None:
    """Delete clusters and terminate their leftover instances. Safe to repeat."""
    inventory_cfg = InventoryConfig()
    if keep_instances:
        inventory_cfg = inventory_cfg.model_copy(update={"terminate_leftovers": False})
    namespace = namespace or ClusterApiConfig().namespace
    orchestrator = StabilityOrchestrator(EnvironmentContext.from_settings(inventory_cfg=inventory_cfg))

    failed = [name for name in names
              if not orchestrator.cleanup(ClusterIdentity(name=name, namespace=namespace))]
    if failed:
        raise typer.Exit(1)
