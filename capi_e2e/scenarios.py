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

"""Scenario files: a YAML list of lifecycle requests sharing common defaults.

Example::

    defaults:
      namespace: e2e
      parameters:
        region: us-west-2
        node_count: 2
    scenarios:
      - name: c1
        operation: create
        minimum_resources:
          compute_instance: 3
      - name: c2
        operation: create
        parameters:
          worker_instance_type: t3.medium
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from capi_e2e.constants import DEFAULT_NAMESPACE
from capi_e2e.models import (
    ClusterIdentity,
    ClusterParameters,
    LifecycleRequest,
    Operation,
    ResourceKind,
)


class ScenarioDefaults(BaseModel):
    model_config = ConfigDict(extra="forbid")

    namespace: str = DEFAULT_NAMESPACE
    parameters: dict[str, Any] = Field(default_factory=dict)
    minimum_resources: dict[ResourceKind, int] | None = None


class ScenarioSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    operation: Operation
    namespace: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    minimum_resources: dict[ResourceKind, int] | None = None


class ScenarioFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    defaults: ScenarioDefaults = Field(default_factory=ScenarioDefaults)
    scenarios: list[ScenarioSpec] = Field(min_length=1)

    def requests(self) -> list[LifecycleRequest]:
        """Merge each scenario over the defaults into a validated LifecycleRequest."""
        return [
            LifecycleRequest(
                identity=ClusterIdentity(
                    name=spec.name, namespace=spec.namespace or self.defaults.namespace),
                operation=spec.operation,
                parameters=ClusterParameters(**{**self.defaults.parameters, **spec.parameters}),
                minimum_resources=(
                    spec.minimum_resources if spec.minimum_resources is not None
                    else self.defaults.minimum_resources),
            )
            for spec in self.scenarios
        ]


def load_scenarios(path: Path) -> list[LifecycleRequest]:
    """Load and validate a scenario file.

    Args:
        path: YAML file to read.

    Returns:
        One LifecycleRequest per scenario, in file order.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a scenario is incomplete or invalid.
    """
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return ScenarioFile.model_validate(raw).requests()
