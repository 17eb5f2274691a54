# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Builders for the containers of the individual stages of a scenario run'''

from __future__ import annotations

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence

import scenariorun.model.errors
from scenariorun.compiler import environment
from scenariorun.compiler.bindings import iter_dataset_parameters, resolve_bindings
from scenariorun.compiler.environment import EventHubExistsChecker
from scenariorun.model.containers import DAG_ROOT, ScenarioRunContainer
from scenariorun.model.domain import (
    Connector,
    Dataset,
    Organization,
    ResourceSizing,
    RunTemplate,
    RunTemplateStepSource,
    Scenario,
    Solution,
    Workspace,
)
from scenariorun.settings import PlatformSettings
from scenariorun.utilities.names import sanitize_for_azure_storage

CONTAINER_FETCH_DATASET = "fetchDatasetContainer"
CONTAINER_FETCH_PARAMETERS = "fetchScenarioParametersContainer"
CONTAINER_FETCH_DATASET_PARAMETERS = "fetchScenarioDatasetParametersContainer"
CONTAINER_SEND_DATAWAREHOUSE = "sendDataWarehouseContainer"
CONTAINER_APPLY_PARAMETERS = "applyParametersContainer"
CONTAINER_VALIDATE_DATA = "validateDataContainer"
CONTAINER_PRERUN = "preRunContainer"
CONTAINER_RUN = "runContainer"
CONTAINER_POSTRUN = "postRunContainer"

CONTAINER_APPLY_PARAMETERS_MODE = "handle-parameters"
CONTAINER_VALIDATE_DATA_MODE = "validate"
CONTAINER_PRERUN_MODE = "prerun"
CONTAINER_RUN_MODE = "engine"
CONTAINER_POSTRUN_MODE = "postrun"

FETCH_PATH_VAR = "CSM_FETCH_ABSOLUTE_PATH"
PARAMETERS_FETCH_CONTAINER_CSV_VAR = "WRITE_CSV"
PARAMETERS_FETCH_CONTAINER_JSON_VAR = "WRITE_JSON"
SEND_DATAWAREHOUSE_PARAMETERS_VAR = "CSM_SEND_DATAWAREHOUSE_PARAMETERS"
SEND_DATAWAREHOUSE_DATASETS_VAR = "CSM_SEND_DATAWAREHOUSE_DATASETS"
RUN_TEMPLATE_ID_VAR = "CSM_RUN_TEMPLATE_ID"
CONTAINER_MODE_VAR = "CSM_CONTAINER_MODE"
CSM_SIMULATION_VAR = "CSM_SIMULATION"
AZURE_STORAGE_CONNECTION_STRING = "AZURE_STORAGE_CONNECTION_STRING"
GIT_BRANCH_NAME_VAR = "CSM_RUN_TEMPLATE_GIT_BRANCH_NAME"
GIT_SOURCE_DIRECTORY_VAR = "CSM_RUN_TEMPLATE_SOURCE_DIRECTORY"
AZURE_AAD_POD_ID_BINDING_LABEL = "aadpodidbinding"
ENTRYPOINT_NAME = "entrypoint.py"

STEP_SOURCE_LOCAL = "local"
STEP_SOURCE_CLOUD = "azureStorage"
STEP_SOURCE_GIT = "git"
STEP_SOURCE_PLATFORM = "platform"

StepSourceProviders = {
    RunTemplateStepSource.local: STEP_SOURCE_LOCAL,
    RunTemplateStepSource.cloud: STEP_SOURCE_CLOUD,
    RunTemplateStepSource.git: STEP_SOURCE_GIT,
    RunTemplateStepSource.platform: STEP_SOURCE_PLATFORM,
}


class SolutionContainerStepSpec(NamedTuple):
    """How a stage that runs the Solution image locates the code of its step"""
    name: str
    mode: str
    provider_var: str
    path_var: str
    # VV: name of the RunTemplate field that holds the RunTemplateStepSource of the step
    source_field: str
    # VV: file name (without .zip) of the step archive in cloud storage
    resource: str

    def source(self, run_template: RunTemplate) -> Optional[str]:
        source = getattr(run_template, self.source_field)
        if source is None:
            return None
        return StepSourceProviders[RunTemplateStepSource(source)]

    def cloud_path(self, organization_id: str, solution_id: str, run_template_id: str) -> str:
        return sanitize_for_azure_storage(f"{organization_id}/{solution_id}/{run_template_id}/{self.resource}.zip")


SolutionSteps: Dict[str, SolutionContainerStepSpec] = {
    spec.mode: spec for spec in (
        SolutionContainerStepSpec(
            CONTAINER_APPLY_PARAMETERS, CONTAINER_APPLY_PARAMETERS_MODE,
            "CSM_PARAMETERS_HANDLER_PROVIDER", "CSM_PARAMETERS_HANDLER_PATH",
            "parametersHandlerSource", "parameters_handler"),
        SolutionContainerStepSpec(
            CONTAINER_VALIDATE_DATA, CONTAINER_VALIDATE_DATA_MODE,
            "CSM_DATASET_VALIDATOR_PROVIDER", "CSM_DATASET_VALIDATOR_PATH",
            "datasetValidatorSource", "validator"),
        SolutionContainerStepSpec(
            CONTAINER_PRERUN, CONTAINER_PRERUN_MODE,
            "CSM_PRERUN_PROVIDER", "CSM_PRERUN_PATH",
            "preRunSource", "prerun"),
        SolutionContainerStepSpec(
            CONTAINER_RUN, CONTAINER_RUN_MODE,
            "CSM_ENGINE_PROVIDER", "CSM_ENGINE_PATH",
            "runSource", "engine"),
        SolutionContainerStepSpec(
            CONTAINER_POSTRUN, CONTAINER_POSTRUN_MODE,
            "CSM_POSTRUN_PROVIDER", "CSM_POSTRUN_PATH",
            "postRunSource", "postrun"),
    )
}


def get_image_name(registry: str, repository: str, version: Optional[str] = None) -> str:
    """Returns ${registry}/${repository}:${version}, skipping the parts that are empty"""
    image = repository if not version else f"{repository}:{version}"
    return f"{registry}/{image}" if registry else image


def get_run_template(solution: Solution, run_template_id: str) -> RunTemplate:
    for run_template in solution.runTemplates:
        if run_template.id == run_template_id:
            return run_template
    raise scenariorun.model.errors.UnknownRunTemplateError(run_template_id, solution.id)


def get_send_option_value(workspace_option: Optional[bool], template_option: Optional[bool]) -> bool:
    """The RunTemplate option wins over the Workspace option, when neither is set the data is sent"""
    if template_option is not None:
        return template_option
    if workspace_option is not None:
        return workspace_option
    return True


def find_dataset(datasets: Dict[str, Dataset], dataset_id: str) -> Dataset:
    try:
        return datasets[dataset_id]
    except KeyError:
        raise scenariorun.model.errors.UnknownDatasetError(dataset_id) from None


def find_connector(connectors: Dict[str, Connector], dataset: Dataset) -> Connector:
    connector_id = dataset.connector.id if dataset.connector is not None else None
    if connector_id is None or connector_id not in connectors:
        raise scenariorun.model.errors.UnknownConnectorError(connector_id, dataset.id)
    return connectors[connector_id]


class ContainerFactory:
    """Builds one ScenarioRunContainer per call, a builder either returns a complete container or raises

    Arguments:
        settings: The platform settings
        event_hub_exists: Optional callable which reports whether an event hub exists, see
            scenariorun.compiler.environment.get_event_hub_env_vars()
    """

    def __init__(self, settings: PlatformSettings, event_hub_exists: Optional[EventHubExistsChecker] = None):
        self.settings = settings
        self.event_hub_exists = event_hub_exists
        self.log = logging.getLogger('ContainerFactory')

    @property
    def core_registry(self) -> str:
        return self.settings.azure.containerRegistries.core if self.settings.azure is not None else ""

    @property
    def solutions_registry(self) -> str:
        return self.settings.azure.containerRegistries.solutions if self.settings.azure is not None else ""

    def common_env_vars(
            self,
            csm_simulation_id: str,
            organization: Organization,
            workspace: Workspace,
            scenario_id: str,
            connector: Optional[Connector] = None,
    ) -> Dict[str, str]:
        return environment.get_common_env_vars(
            self.settings, csm_simulation_id, organization.id, workspace.id, scenario_id, workspace.key,
            azure_managed_identity=connector.azureManagedIdentity if connector is not None else None,
            azure_authentication_with_customer_app_registration=(
                connector.azureAuthenticationWithCustomerAppRegistration if connector is not None else None),
        )

    def build_from_dataset(
            self,
            dataset: Dataset,
            connector: Connector,
            index: int,
            organization: Organization,
            workspace: Workspace,
            scenario_id: str,
            csm_simulation_id: str,
            parameters_fetch: bool = False,
            fetch_id: Optional[str] = None,
            dependencies: Optional[Sequence[str]] = (DAG_ROOT,),
    ) -> ScenarioRunContainer:
        """Builds the container that downloads @dataset using @connector

        Arguments:
            dataset: The Dataset to fetch
            connector: The Connector that the DatasetConnector of @dataset references
            index: 1-based index of the container, becomes the suffix of its name
            organization: The Organization of the Scenario
            workspace: The Workspace of the Scenario
            scenario_id: Id of the Scenario
            csm_simulation_id: Correlation id of the run
            parameters_fetch: If True the Dataset is the value of a %DATASETID% parameter, it is downloaded
                under the parameters folder instead of the datasets folder
            fetch_id: Optional sub-folder of the download folder
            dependencies: The dependencies of the container

        Raises:
            scenariorun.model.errors.ConfigurationError: If the Dataset does not use @connector, or the
                authentication flags of @connector conflict
        """
        name_base = CONTAINER_FETCH_DATASET_PARAMETERS if parameters_fetch else CONTAINER_FETCH_DATASET
        fetch_path = environment.PARAMETERS_PATH if parameters_fetch else environment.DATASET_PATH
        if fetch_id is not None:
            fetch_path = f"{fetch_path}/{fetch_id}"

        binding_env_vars, run_args = resolve_bindings(
            self.settings, connector, dataset, organization.id, workspace.id)

        env_vars = self.common_env_vars(csm_simulation_id, organization, workspace, scenario_id, connector)
        env_vars[FETCH_PATH_VAR] = fetch_path
        env_vars.update(binding_env_vars)

        labels = None
        if connector.azureManagedIdentity:
            aad_pod_id_binding = self.settings.azure.credentials.core.aadPodIdBinding \
                if self.settings.azure is not None else None
            if aad_pod_id_binding is None:
                raise scenariorun.model.errors.MissingConfigurationError(
                    "csm.platform.azure.credentials.core.aadPodIdBinding")
            labels = {AZURE_AAD_POD_ID_BINDING_LABEL: aad_pod_id_binding}

        name = f"{name_base}-{index}"
        self.log.debug(f"Built {name} for Dataset {dataset.id} with Connector {connector.id}")

        return ScenarioRunContainer(
            name=name,
            image=get_image_name(self.core_registry, connector.repository, connector.version),
            labels=labels,
            dependencies=list(dependencies) if dependencies is not None else None,
            envVars=env_vars,
            runArgs=run_args,
        )

    def build_scenario_parameters_fetch_container(
            self,
            organization: Organization,
            workspace: Workspace,
            scenario_id: str,
            csm_simulation_id: str,
            json_file: Optional[bool] = None,
            dependencies: Optional[Sequence[str]] = (DAG_ROOT,),
    ) -> ScenarioRunContainer:
        env_vars = self.common_env_vars(csm_simulation_id, organization, workspace, scenario_id)
        env_vars[FETCH_PATH_VAR] = environment.PARAMETERS_PATH
        if json_file:
            env_vars[PARAMETERS_FETCH_CONTAINER_CSV_VAR] = "false"
            env_vars[PARAMETERS_FETCH_CONTAINER_JSON_VAR] = "true"

        return ScenarioRunContainer(
            name=CONTAINER_FETCH_PARAMETERS,
            image=get_image_name(self.core_registry, self.settings.images.scenarioFetchParameters),
            dependencies=list(dependencies) if dependencies is not None else None,
            envVars=env_vars,
        )

    def build_dataset_parameters_fetch_containers(
            self,
            scenario: Scenario,
            solution: Solution,
            datasets: Dict[str, Dataset],
            connectors: Dict[str, Connector],
            organization: Organization,
            workspace: Workspace,
            csm_simulation_id: str,
            dependencies: Optional[Sequence[str]] = (CONTAINER_FETCH_PARAMETERS,),
    ) -> List[ScenarioRunContainer]:
        """Builds one fetch container per Dataset id in the %DATASETID% parameter values of @scenario

        The containers are numbered from 1 across all parameters. A parameter with a single Dataset id
        downloads it to the folder named after the parameter, the Datasets of a list go to
        ${parameterId}-${index} (0-based index in the list).

        Raises:
            scenariorun.model.errors.MalformedDatasetIdListError: If a parameter value is a malformed list
            scenariorun.model.errors.ConfigurationError: If a parameter, Dataset or Connector is unknown
        """
        containers = []
        count = 1

        for parameter_id, dataset_ids in iter_dataset_parameters(scenario, solution):
            for index, dataset_id in enumerate(dataset_ids):
                dataset = find_dataset(datasets, dataset_id)
                connector = find_connector(connectors, dataset)
                fetch_id = parameter_id if len(dataset_ids) == 1 else f"{parameter_id}-{index}"
                containers.append(self.build_from_dataset(
                    dataset, connector, count, organization, workspace, scenario.id, csm_simulation_id,
                    parameters_fetch=True, fetch_id=fetch_id, dependencies=dependencies))
                count += 1

        return containers

    def send_data_warehouse_options(self, workspace: Workspace, run_template: RunTemplate):
        """Returns (send parameters, send datasets)"""
        return (
            get_send_option_value(workspace.sendInputToDataWarehouse, run_template.sendInputParametersToDataWarehouse),
            get_send_option_value(workspace.sendInputToDataWarehouse, run_template.sendDatasetsToDataWarehouse),
        )

    def build_send_data_warehouse_container(
            self,
            organization: Organization,
            workspace: Workspace,
            scenario_id: str,
            run_template: RunTemplate,
            csm_simulation_id: str,
            dependencies: Optional[Sequence[str]] = None,
    ) -> ScenarioRunContainer:
        send_parameters, send_datasets = self.send_data_warehouse_options(workspace, run_template)
        env_vars = self.common_env_vars(csm_simulation_id, organization, workspace, scenario_id)
        env_vars[SEND_DATAWAREHOUSE_PARAMETERS_VAR] = str(send_parameters).lower()
        env_vars[SEND_DATAWAREHOUSE_DATASETS_VAR] = str(send_datasets).lower()

        return ScenarioRunContainer(
            name=CONTAINER_SEND_DATAWAREHOUSE,
            image=get_image_name(self.core_registry, self.settings.images.sendDataWarehouse),
            dependencies=list(dependencies) if dependencies is not None else None,
            envVars=env_vars,
        )

    def build_solution_container(
            self,
            organization: Organization,
            workspace: Workspace,
            scenario_id: str,
            solution: Solution,
            run_template_id: str,
            mode: str,
            csm_simulation_id: str,
            dependencies: Optional[Sequence[str]] = None,
            run_sizing: Optional[ResourceSizing] = None,
    ) -> ScenarioRunContainer:
        """Builds a container that runs the Solution image in the step @mode

        Arguments:
            organization: The Organization of the Scenario
            workspace: The Workspace of the Scenario
            scenario_id: Id of the Scenario
            solution: The Solution
            run_template_id: Id of the RunTemplate in @solution
            mode: One of handle-parameters, validate, prerun, engine, postrun
            csm_simulation_id: Correlation id of the run
            dependencies: The dependencies of the container
            run_sizing: Optional cpu/memory requests and limits of the container

        Raises:
            scenariorun.model.errors.UnknownRunTemplateError: If @solution does not contain @run_template_id
            scenariorun.model.errors.ConfigurationError: If the platform settings lack credentials
        """
        step = SolutionSteps[mode]
        run_template = get_run_template(solution, run_template_id)

        env_vars = self.common_env_vars(csm_simulation_id, organization, workspace, scenario_id)
        env_vars[RUN_TEMPLATE_ID_VAR] = run_template_id
        env_vars[CONTAINER_MODE_VAR] = step.mode
        env_vars.update(environment.get_event_hub_env_vars(
            self.settings, organization, workspace, self.event_hub_exists))

        if run_template.csmSimulation is not None:
            env_vars[CSM_SIMULATION_VAR] = run_template.csmSimulation

        source = step.source(run_template)
        if source is not None:
            env_vars[step.provider_var] = source
            env_vars[AZURE_STORAGE_CONNECTION_STRING] = self.settings.azure.storage.connectionString \
                if self.settings.azure is not None else ""

            if source in (STEP_SOURCE_CLOUD, STEP_SOURCE_PLATFORM):
                env_vars[step.path_var] = step.cloud_path(organization.id, solution.id, run_template_id)
            elif source == STEP_SOURCE_GIT:
                env_vars[step.path_var] = run_template.gitRepositoryUrl or ""
                env_vars[GIT_BRANCH_NAME_VAR] = run_template.gitBranchName or ""
                env_vars[GIT_SOURCE_DIRECTORY_VAR] = run_template.runTemplateSourceDir or ""

        return ScenarioRunContainer(
            name=step.name,
            image=get_image_name(self.solutions_registry, solution.repository, solution.version),
            entrypoint=ENTRYPOINT_NAME,
            envVars=env_vars,
            dependencies=list(dependencies) if dependencies is not None else None,
            solutionContainer=True,
            runSizing=run_sizing,
        )
