# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Binds the parameter values of a DatasetConnector to the environment and arguments of a fetch container'''

from __future__ import annotations

import enum
import json
import logging
from typing import Dict, Iterator, List, Optional, Tuple

import scenariorun.model.errors
from scenariorun.model.domain import (
    Connector,
    ConnectorParameter,
    Dataset,
    RunTemplate,
    Scenario,
    Solution,
)
from scenariorun.settings import PlatformSettings
from scenariorun.utilities.names import sanitize_for_azure_storage

logger = logging.getLogger('bindings')


class ParameterSource(enum.Enum):
    """Placeholder tokens that parameter values may carry"""
    Literal = None
    WorkspaceFile = "%WORKSPACE_FILE%"
    StorageConnectionString = "%STORAGE_CONNECTION_STRING%"
    # VV: varType of Solution parameters whose value is one (or a list of) Dataset id(s)
    DatasetId = "%DATASETID%"
    # VV: computeSize of a RunTemplate that explicitly asks for the basic node pool
    NoneValue = "%NONE%"

    @classmethod
    def classify(cls, value: Optional[str]) -> ParameterSource:
        """Returns the placeholder that @value contains, or ParameterSource.Literal

        DatasetId and NoneValue must match the entire value, the other tokens may appear anywhere in it
        """
        if value is None:
            return cls.Literal
        if value in (cls.DatasetId.value, cls.NoneValue.value):
            return cls(value)
        for token in (cls.WorkspaceFile, cls.StorageConnectionString):
            if token.value in value:
                return token
        return cls.Literal


# VV: file names that an exact %WORKSPACE_FILE% value expands to, keyed on whether the value is env-bound
WORKSPACE_FILE_ENV = "workspace.env"
WORKSPACE_FILE_PARAM = "workspace.param"


def resolve_platform_vars(
        settings: PlatformSettings,
        value: str,
        organization_id: str,
        workspace_id: str,
        env_bound: bool = False,
) -> str:
    """Substitutes the placeholder tokens in @value

    %WORKSPACE_FILE% becomes the cloud-storage folder of the Workspace, if the value is exactly the token
    it points to the workspace.env (env-bound parameters) or workspace.param (positional parameters) file
    in that folder. %STORAGE_CONNECTION_STRING% becomes the storage connection string of the platform.
    """
    workspace_folder = sanitize_for_azure_storage(f"{organization_id}/{workspace_id}")

    if value == ParameterSource.WorkspaceFile.value:
        return "/".join((workspace_folder, WORKSPACE_FILE_ENV if env_bound else WORKSPACE_FILE_PARAM))

    connection_string = settings.azure.storage.connectionString if settings.azure is not None else ""
    value = value.replace(ParameterSource.WorkspaceFile.value, workspace_folder)
    value = value.replace(ParameterSource.StorageConnectionString.value, connection_string)
    return value


def _parameter_value(dataset: Dataset, parameter: ConnectorParameter) -> str:
    values = dataset.connector.parametersValues if dataset.connector is not None else {}
    if parameter.id in values:
        return values[parameter.id]
    return parameter.default or ""


def check_connector(dataset: Dataset, connector: Connector):
    """Raises an error unless the DatasetConnector of @dataset references @connector"""
    dataset_connector_id = dataset.connector.id if dataset.connector is not None else None
    if dataset_connector_id is None:
        raise scenariorun.model.errors.UnknownConnectorError(None, dataset.id)
    if dataset_connector_id != connector.id:
        raise scenariorun.model.errors.ConnectorMismatchError(dataset_connector_id, connector.id)


def resolve_bindings(
        settings: PlatformSettings,
        connector: Connector,
        dataset: Dataset,
        organization_id: str,
        workspace_id: str,
) -> Tuple[Dict[str, str], List[str]]:
    """Splits the parameter values of a Dataset into environment variables and positional arguments

    The parameters of @connector are visited in declaration order. Parameters with an envVar become
    environment variables, the rest become positional arguments. Values that the Dataset does not provide
    fall back to the default of the parameter, and then to the empty string.

    Returns:
        A tuple (environment variables, arguments)

    Raises:
        scenariorun.model.errors.ConnectorMismatchError: If the Dataset uses a different Connector
    """
    check_connector(dataset, connector)

    env_vars: Dict[str, str] = {}
    run_args: List[str] = []
    known = set()

    for parameter in connector.iter_parameters():
        known.add(parameter.id)
        env_bound = parameter.envVar is not None
        value = resolve_platform_vars(
            settings, _parameter_value(dataset, parameter), organization_id, workspace_id, env_bound)
        if env_bound:
            env_vars[parameter.envVar] = value
        else:
            run_args.append(value)

    unused = sorted(set(dataset.connector.parametersValues) - known)
    if unused:
        logger.log(15, f"Dataset {dataset.id} sets parameters {unused} which Connector {connector.id} "
                       f"does not define - will ignore them")

    return env_vars, run_args


def parse_dataset_id_list(value: str) -> List[str]:
    """Returns the Dataset ids in the value of a %DATASETID% parameter

    A value that does not start with "[" is a single id. Otherwise the value must end with "]" and
    contain a JSON array of ids, or a comma separated list of (optionally quoted) ids.

    Raises:
        scenariorun.model.errors.MalformedDatasetIdListError: If the list is not terminated, or it is a
            JSON array with an item that is not a string
    """
    if not value.startswith("["):
        return [value]

    if len(value) < 2 or not value.endswith("]"):
        raise scenariorun.model.errors.MalformedDatasetIdListError(value)

    try:
        decoded = json.loads(value)
    except ValueError:
        decoded = value[1:-1].split(",")
    else:
        if not isinstance(decoded, list) or not all(isinstance(x, str) for x in decoded):
            raise scenariorun.model.errors.MalformedDatasetIdListError(value, "items must be strings")

    ids = [str(x).strip().strip('"\'').strip() for x in decoded]
    return [x for x in ids if x]


def iter_dataset_parameters(scenario: Scenario, solution: Solution) -> Iterator[Tuple[str, List[str]]]:
    """Yields (parameter id, Dataset ids) for the %DATASETID% parameter values of @scenario

    Parameter values follow the order of scenario.parametersValues. Empty values are skipped.

    Raises:
        scenariorun.model.errors.UnknownParameterError: If a value references a parameter that the
            Solution does not define
        scenariorun.model.errors.MalformedDatasetIdListError: If a value is a malformed list
    """
    parameters = {p.id: p for p in solution.parameters}

    for parameter_value in scenario.parametersValues:
        parameter = parameters.get(parameter_value.parameterId)
        if parameter is None:
            raise scenariorun.model.errors.UnknownParameterError(parameter_value.parameterId, solution.id)
        if ParameterSource.classify(parameter.varType) != ParameterSource.DatasetId:
            continue
        if parameter_value.value == "":
            continue
        yield parameter.id, parse_dataset_id_list(parameter_value.value)


def collect_dataset_ids(scenario: Scenario, solution: Solution, run_template: RunTemplate) -> List[str]:
    """Returns the ids of the Datasets that the calling layer must look up before compiling the Scenario

    The list starts with the Datasets of the Scenario followed by the Datasets that %DATASETID%
    parameters reference. Only parameters in the parameterGroups of @run_template are considered.
    The ids are unique and keep their order of appearance.
    """
    ids: List[str] = list(scenario.datasetList)

    if run_template.parameterGroups:
        group_ids = set(run_template.parameterGroups)
        parameter_ids = set()
        for group in solution.parameterGroups:
            if group.id in group_ids:
                parameter_ids.update(group.parameters)

        dataset_parameters = [p.id for p in solution.parameters
                              if p.id in parameter_ids
                              and ParameterSource.classify(p.varType) == ParameterSource.DatasetId]

        for parameter_id in dataset_parameters:
            for parameter_value in scenario.parametersValues:
                if parameter_value.parameterId == parameter_id and parameter_value.value != "":
                    ids.extend(parse_dataset_id_list(parameter_value.value))

    return list(dict.fromkeys(ids))
