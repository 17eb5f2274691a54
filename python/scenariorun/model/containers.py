# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Dict, List, Optional

import pydantic
from pydantic import ConfigDict, Field

from scenariorun.model.domain import ResourceSizing

# VV: Sentinel dependency that marks a container as part of the first layer of the DAG
DAG_ROOT = "DAG_ROOT"


class ScenarioRunContainer(pydantic.BaseModel):
    """One stage of a compiled scenario run"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    image: str
    entrypoint: Optional[str] = Field(
        None, description="Command to run inside the image, None means the entrypoint of the image")
    runArgs: Optional[List[str]] = None
    envVars: Optional[Dict[str, str]] = None
    labels: Optional[Dict[str, str]] = None
    dependencies: Optional[List[str]] = Field(
        None, description=f"Names of containers that must complete first, or [{DAG_ROOT}]")
    solutionContainer: bool = Field(False, description="True for stages that run the Solution image")
    runSizing: Optional[ResourceSizing] = None

    @property
    def mode(self) -> Optional[str]:
        if self.envVars is None:
            return None
        return self.envVars.get('CSM_CONTAINER_MODE')


class ScenarioRunStartContainers(pydantic.BaseModel):
    """The compiled pipeline of a scenario run, consumed by the workflow lowering"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    containers: List[ScenarioRunContainer]
    nodeLabel: Optional[str] = None
    generateName: Optional[str] = None
    csmSimulationId: str
    labels: Optional[Dict[str, str]] = None

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.containers]

    def get(self, name: str) -> ScenarioRunContainer:
        for container in self.containers:
            if container.name == name:
                return container
        raise KeyError(name)
