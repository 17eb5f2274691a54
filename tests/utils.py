# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Optional

import yaml

from scenariorun.model.domain import (
    Connector,
    Dataset,
    Organization,
    Scenario,
    Solution,
    Workspace,
)
from scenariorun.settings import PlatformSettings

CSM_SIMULATION_ID = "simulationrunid"
CONNECTOR_ID = "AzErTyUiOp"

PLATFORM = yaml.safe_load("""
api:
  baseUrl: https://api.cosmotech.com
  version: v1
  basePath: basepath
azure:
  appIdUri: http://dev.api.cosmotech.com
  credentials:
    core:
      tenantId: "12345678"
      clientId: "98765432"
      clientSecret: azertyuiop
      aadPodIdBinding: phoenixdev-pod-identity
    customer:
      tenantId: customer-app-registration-tenantId
      clientId: customer-app-registration-clientId
      clientSecret: customer-app-registration-clientSecret
  storage:
    connectionString: csmphoenix_storage_connection_string
    baseUri: Not Used
    resourceUri: Not Used
  containerRegistries:
    core: ghcr.io
    solutions: twinengines.azurecr.io
  eventBus:
    baseUri: amqps://csm-phoenix.servicebus.windows.net
  dataWarehouseCluster:
    baseUri: https://phoenix.westeurope.kusto.windows.net
    options:
      ingestionUri: https://ingest-phoenix.westeurope.kusto.windows.net
images:
  scenarioFetchParameters: cosmotech/scenariofetchparameters:1.0.0
  sendDataWarehouse: cosmotech/senddatawarehouse:1.0.0
argo:
  imagePullSecrets:
  - argo-pull-secret
  - " "
  workflows:
    namespace: phoenix
    serviceAccountName: workflowcsmv2
    storageClass: cosmotech-retain
    accessModes:
    - ReadWriteOnce
    requests:
      storage: 100Gi
""")

CONNECTOR = yaml.safe_load("""
id: AzErTyUiOp
key: ADTConnector
name: ADT Connector
repository: cosmotech/test_connector
version: 1.0.0
parameterGroups:
- id: parameters
  label: Parameters
  parameters:
  - id: EnvParam1
    envVar: ENV_PARAM_1
  - id: EnvParam2
    envVar: ENV_PARAM_2
  - id: EnvParam3
    envVar: ENV_PARAM_3
  - id: Param1
  - id: Param2
  - id: Param3
""")

SOLUTION = yaml.safe_load("""
id: "1"
key: TestSolution
name: Test Solution
repository: cosmotech/testsolution_simulator
version: 1.0.0
runTemplates:
- id: testruntemplate
  name: Test Run
  csmSimulation: testCsmSimulation
  computeSize: highcpu
parameters:
- id: prefix
  varType: string
parameterGroups:
- id: default
  parameters:
  - prefix
""")


def platform_settings(update: Optional[Callable[[Dict[str, Any]], None]] = None) -> PlatformSettings:
    """Returns PlatformSettings built from PLATFORM, @update may modify the dictionary in place first"""
    data = copy.deepcopy(PLATFORM)
    if update is not None:
        update(data)
    return PlatformSettings(**data)


def organization(organization_id: str = "Organizationid") -> Organization:
    return Organization(id=organization_id, name="Organization Test")


def workspace(**fields) -> Workspace:
    data = {'id': "Workspaceid", 'key': "Test", 'name': "Test Workspace"}
    data.update(fields)
    return Workspace(**data)


def connector(**fields) -> Connector:
    data = copy.deepcopy(CONNECTOR)
    data.update(fields)
    return Connector(**data)


def dataset(
        dataset_id: str = "1",
        connector_id: str = CONNECTOR_ID,
        parameters_values: Optional[Dict[str, str]] = None,
) -> Dataset:
    if parameters_values is None:
        parameters_values = {
            'EnvParam1': "%WORKSPACE_FILE%/workspace.env",
            'EnvParam2': "env_param2_value",
            'EnvParam3': "env_param3_value",
            'Param1': "%WORKSPACE_FILE%/workspace.param",
            'Param2': "param2_value",
            'Param3': "param3_value",
        }
    return Dataset(id=dataset_id, name="Test Dataset",
                   connector={'id': connector_id, 'parametersValues': parameters_values})


def solution(
        run_template: Optional[Dict[str, Any]] = None,
        parameters: Optional[List[Dict[str, Any]]] = None,
        parameter_groups: Optional[List[Dict[str, Any]]] = None,
        **fields,
) -> Solution:
    """Returns the test Solution, @run_template updates the fields of its only RunTemplate"""
    data = copy.deepcopy(SOLUTION)
    if run_template:
        data['runTemplates'][0].update(run_template)
    if parameters is not None:
        data['parameters'] = parameters
    if parameter_groups is not None:
        data['parameterGroups'] = parameter_groups
    data.update(fields)
    return Solution(**data)


def scenario(
        dataset_list: Optional[List[str]] = None,
        parameters_values: Optional[List[Dict[str, str]]] = None,
        **fields,
) -> Scenario:
    data = {
        'id': "AQWXSZ",
        'name': "Test Scenario",
        'runTemplateId': "testruntemplate",
        'datasetList': dataset_list if dataset_list is not None else ["1"],
        'parametersValues': parameters_values or [],
    }
    data.update(fields)
    return Scenario(**data)


def all_steps(value: bool) -> Dict[str, bool]:
    """RunTemplate fields that toggle every stage"""
    return {
        'fetchDatasets': value,
        'fetchScenarioParameters': value,
        'applyParameters': value,
        'validateData': value,
        'sendDatasetsToDataWarehouse': value,
        'sendInputParametersToDataWarehouse': value,
        'preRun': value,
        'run': value,
        'postRun': value,
    }


def dataset_parameters(count: int, varType: str = "%DATASETID%") -> Dict[str, Any]:
    """Returns the parameters and parameterGroups of a Solution with @count dataset parameters"""
    parameters = [{'id': f"datasetparam{i}", 'varType': varType} for i in range(1, count + 1)]
    return {
        'parameters': parameters,
        'parameter_groups': [{'id': "datasets", 'parameters': [p['id'] for p in parameters]}],
    }
