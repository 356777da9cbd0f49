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

"""Pre-flight checks of the three systems a scenario depends on."""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from capi_e2e import console, logger
from capi_e2e.constants import (
    DEFAULT_RESPONSIVENESS_CALLS,
    DEFAULT_RESPONSIVENESS_CONCURRENCY,
    TOOL_LIST_CLUSTERS,
)
from capi_e2e.environment import EnvironmentContext
from capi_e2e.errors import LifecycleError
from capi_e2e.models import ClusterIdentity, ResourceKind
from capi_e2e.tool_client import ToolClient

_CHECK_IDENTITY = ClusterIdentity(name="validation-check")


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str = ""
    elapsed: float = 0.0


def _timed(name: str, fn: Callable[[], str]) -> CheckResult:
    started = time.monotonic()
    try:
        detail = fn()
    except LifecycleError as err:
        return CheckResult(name, False, f"[{err.kind.value}] {err}", time.monotonic() - started)
    return CheckResult(name, True, detail, time.monotonic() - started)


def check_environment(ctx: EnvironmentContext) -> list[CheckResult]:
    """Check the tool server, the Cluster API and the cloud inventory.

    Returns:
        One CheckResult per check, in a fixed order. Failures are reported,
        not raised.
    """

    def _tool_health() -> str:
        ctx.tool_client.health()
        return "healthy"

    def _tool_listing() -> str:
        return f"{len(ctx.tool_client.list_clusters().clusters)} cluster(s)"

    def _cluster_api() -> str:
        return f"{len(ctx.observer.list_clusters(ctx.namespace))} cluster(s) in {ctx.namespace}"

    def _inventory() -> str:
        ctx.inventory.list_owned(_CHECK_IDENTITY, ResourceKind.NETWORK)
        return "reachable"

    results = [
        _timed("tool server health", _tool_health),
        _timed("tool server list_clusters", _tool_listing),
        _timed("cluster API", _cluster_api),
        _timed("cloud inventory", _inventory),
    ]
    for result in results:
        if result.ok:
            console.print(f"[green]\u2705 {result.name}: {result.detail} ({result.elapsed:.2f}s)[/green]")
        else:
            console.print(f"[red]\u274c {result.name}: {result.detail}[/red]")
    return results


@dataclass
class ResponsivenessReport:
    """Latency of back-to-back and concurrent ``list_clusters`` calls.

    Attributes:
        sequential_calls: Number of back-to-back calls made.
        sequential_elapsed: Seconds taken by the back-to-back calls.
        concurrent_calls: Number of calls issued at once.
        concurrent_elapsed: Seconds until every concurrent call returned.
        failures: Messages of the calls that failed.
    """

    sequential_calls: int = 0
    sequential_elapsed: float = 0.0
    concurrent_calls: int = 0
    concurrent_elapsed: float = 0.0
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def check_responsiveness(
    tool_client: ToolClient,
    *,
    calls: int = DEFAULT_RESPONSIVENESS_CALLS,
    concurrency: int = DEFAULT_RESPONSIVENESS_CONCURRENCY,
) -> ResponsivenessReport:
    """Measure the tool server under rapid and concurrent load.

    Args:
        tool_client: Client to exercise.
        calls: Back-to-back calls to make.
        concurrency: Calls to issue simultaneously.

    Returns:
        The timings and any failures.
    """
    report = ResponsivenessReport(sequential_calls=calls, concurrent_calls=concurrency)

    started = time.monotonic()
    for _ in range(calls):
        result = tool_client.invoke(TOOL_LIST_CLUSTERS)
        if not result.success:
            report.failures.append(str(result.error))
    report.sequential_elapsed = time.monotonic() - started
    logger.info("%d sequential list_clusters calls took %.2fs", calls, report.sequential_elapsed)

    started = time.monotonic()
    with ThreadPoolExecutor(max_workers=concurrency) as executor:
        futures = [executor.submit(tool_client.invoke, TOOL_LIST_CLUSTERS) for _ in range(concurrency)]
        for future in as_completed(futures):
            result = future.result()
            if not result.success:
                report.failures.append(str(result.error))
    report.concurrent_elapsed = time.monotonic() - started
    logger.info("%d concurrent list_clusters calls took %.2fs", concurrency, report.concurrent_elapsed)
    return report
