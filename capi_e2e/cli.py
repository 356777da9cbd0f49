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

"""
cli.py - Lifecycle convergence checks for Cluster API managed clusters.

Subcommands:
    scenario   Run lifecycle scenarios (run, run-file, stability)
    inspect    Inspect clusters, owned resources and the environment
    cleanup    Remove clusters left behind by failed runs

Environment Variables:
    Every setting can be overridden via E2E_* environment variables:
    - E2E_TOOL_URL, E2E_TOOL_API_KEY, E2E_TOOL_TIMEOUT
    - E2E_CAPI_NAMESPACE, E2E_CAPI_KUBE_CONTEXT
    - E2E_AWS_REGION, E2E_AWS_OWNERSHIP_NAMESPACE
    - E2E_RETRY_ATTEMPTS, E2E_RETRY_DELAY, E2E_RETRY_BACKOFF
    - E2E_TIMEOUT_CREATE, E2E_TIMEOUT_DELETE, E2E_TIMEOUT_POLL_INTERVAL
    - And more (see config classes for full list)

Examples:
    # Check that all three systems are reachable
    capi-e2e inspect health

    # Create a cluster with 2 workers and validate its resources
    capi-e2e scenario run c1 --node-count 2

    # Full create/scale/delete cycle
    capi-e2e scenario stability c1 --scale-replicas 3

    # Several scenarios from a file, two at a time
    capi-e2e scenario run-file scenarios.yaml --parallel 2

    # Remove leftovers of a failed run
    capi-e2e cleanup clusters c1 c2
"""

from __future__ import annotations

import logging
import sys

import typer

from capi_e2e import console
from capi_e2e.commands import cleanup_cmd, inspect_cmd, scenario_cmd

app = typer.Typer(
    help="Lifecycle convergence checks for Cluster API managed clusters.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every poll and state transition"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(scenario_cmd.app, name="scenario")
app.add_typer(inspect_cmd.app, name="inspect")
app.add_typer(cleanup_cmd.app, name="cleanup")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
