# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Read-only platform objects that the scenario run compiler consumes

The field names follow the JSON documents that the platform API returns so that the objects can be
instantiated directly from them, e.g. Solution(**json.loads(response)). Unknown keys are ignored.
'''

from __future__ import annotations

import enum
from typing import Dict, List, Optional

import pydantic
from pydantic import ConfigDict, Field


class DomainModel(pydantic.BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ResourceSizeInfo(DomainModel):
    cpu: str
    memory: str


class ResourceSizing(DomainModel):
    requests: ResourceSizeInfo
    limits: ResourceSizeInfo


class Organization(DomainModel):
    id: str
    name: Optional[str] = None


class Workspace(DomainModel):
    id: str
    key: str
    name: Optional[str] = None
    useDedicatedEventHubNamespace: Optional[bool] = None
    sendInputToDataWarehouse: Optional[bool] = None


class ParameterValue(DomainModel):
    parameterId: str
    value: str = ""
    varType: Optional[str] = None


class Scenario(DomainModel):
    id: str
    name: Optional[str] = None
    runTemplateId: str
    datasetList: List[str] = []
    parametersValues: List[ParameterValue] = []
    resourceSizing: Optional[ResourceSizing] = None


class RunTemplateStepSource(str, enum.Enum):
    local = "local"
    cloud = "cloud"
    platform = "platform"
    git = "git"


class RunTemplate(DomainModel):
    """Stage configuration of a Solution

    Stage toggles that are not set (None) mean that the stage is enabled, stackSteps defaults to off.
    """
    id: str
    name: Optional[str] = None
    csmSimulation: Optional[str] = None
    computeSize: Optional[str] = None
    resourceSizing: Optional[ResourceSizing] = None
    parametersJson: Optional[bool] = None

    fetchDatasets: Optional[bool] = None
    fetchScenarioParameters: Optional[bool] = None
    applyParameters: Optional[bool] = None
    validateData: Optional[bool] = None
    sendDatasetsToDataWarehouse: Optional[bool] = None
    sendInputParametersToDataWarehouse: Optional[bool] = None
    preRun: Optional[bool] = None
    run: Optional[bool] = None
    postRun: Optional[bool] = None
    stackSteps: Optional[bool] = None

    parametersHandlerSource: Optional[RunTemplateStepSource] = None
    datasetValidatorSource: Optional[RunTemplateStepSource] = None
    preRunSource: Optional[RunTemplateStepSource] = None
    runSource: Optional[RunTemplateStepSource] = None
    postRunSource: Optional[RunTemplateStepSource] = None

    gitRepositoryUrl: Optional[str] = None
    gitBranchName: Optional[str] = None
    runTemplateSourceDir: Optional[str] = None

    parameterGroups: Optional[List[str]] = None
    executionTimeout: Optional[int] = Field(None, description="Seconds before the workflow engine stops the run")


class RunTemplateParameter(DomainModel):
    id: str
    varType: Optional[str] = None
    defaultValue: Optional[str] = None


class RunTemplateParameterGroup(DomainModel):
    id: str
    parameters: List[str] = []


class Solution(DomainModel):
    id: str
    key: Optional[str] = None
    name: Optional[str] = None
    repository: str
    version: Optional[str] = None
    alwaysPull: Optional[bool] = None
    runTemplates: List[RunTemplate] = []
    parameters: List[RunTemplateParameter] = []
    parameterGroups: List[RunTemplateParameterGroup] = []


class ConnectorParameter(DomainModel):
    id: str
    label: Optional[str] = None
    valueType: Optional[str] = None
    default: Optional[str] = None
    envVar: Optional[str] = None


class ConnectorParameterGroup(DomainModel):
    id: str
    label: Optional[str] = None
    parameters: List[ConnectorParameter] = []


class Connector(DomainModel):
    id: str
    key: Optional[str] = None
    name: Optional[str] = None
    repository: str
    version: Optional[str] = None
    azureManagedIdentity: Optional[bool] = None
    azureAuthenticationWithCustomerAppRegistration: Optional[bool] = None
    parameterGroups: List[ConnectorParameterGroup] = []

    def iter_parameters(self):
        """Yields the ConnectorParameter objects in declaration order"""
        for group in self.parameterGroups:
            for parameter in group.parameters:
                yield parameter


class DatasetConnector(DomainModel):
    id: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    parametersValues: Dict[str, str] = {}


class Dataset(DomainModel):
    id: str
    name: Optional[str] = None
    connector: Optional[DatasetConnector] = None
