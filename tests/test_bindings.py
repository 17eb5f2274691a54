# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import pytest

import scenariorun.model.errors
from scenariorun.compiler.bindings import (
    ParameterSource,
    collect_dataset_ids,
    iter_dataset_parameters,
    parse_dataset_id_list,
    resolve_bindings,
    resolve_platform_vars,
)
from scenariorun.compiler.steps import get_run_template
from scenariorun.model.domain import Dataset

from . import utils


@pytest.mark.parametrize("value, expected", [
    (None, ParameterSource.Literal),
    ("plain", ParameterSource.Literal),
    ("%DATASETID%", ParameterSource.DatasetId),
    ("%NONE%", ParameterSource.NoneValue),
    ("%WORKSPACE_FILE%/file.csv", ParameterSource.WorkspaceFile),
    ("key=%STORAGE_CONNECTION_STRING%", ParameterSource.StorageConnectionString),
    ("prefix%DATASETID%", ParameterSource.Literal),
])
def test_classify(value, expected):
    assert ParameterSource.classify(value) == expected


def test_resolve_bindings(settings, connector, dataset):
    env, args = resolve_bindings(settings, connector, dataset, "Organizationid", "Workspaceid")

    assert env == {
        'ENV_PARAM_1': "organizationid/workspaceid/workspace.env",
        'ENV_PARAM_2': "env_param2_value",
        'ENV_PARAM_3': "env_param3_value",
    }
    assert args == [
        "organizationid/workspaceid/workspace.param",
        "param2_value",
        "param3_value",
    ]


def test_resolve_bindings_exact_workspace_file(settings, connector):
    dataset = utils.dataset(parameters_values={'EnvParam1': "%WORKSPACE_FILE%", 'Param1': "%WORKSPACE_FILE%"})

    env, args = resolve_bindings(settings, connector, dataset, "Organizationid", "Workspaceid")

    assert env['ENV_PARAM_1'] == "organizationid/workspaceid/workspace.env"
    assert args[0] == "organizationid/workspaceid/workspace.param"


def test_resolve_bindings_defaults(settings):
    connector = utils.connector(parameterGroups=[{'id': "parameters", 'parameters': [
        {'id': "EnvParam1", 'envVar': "ENV_PARAM_1", 'default': "env_default"},
        {'id': "Param1", 'default': "param_default"},
        {'id': "Param2"},
    ]}])
    dataset = utils.dataset(parameters_values={'Unknown': "ignored"})

    env, args = resolve_bindings(settings, connector, dataset, "Organizationid", "Workspaceid")

    assert env == {'ENV_PARAM_1': "env_default"}
    assert args == ["param_default", ""]


def test_resolve_bindings_storage_connection_string(settings):
    connector = utils.connector(parameterGroups=[{'id': "parameters", 'parameters': [
        {'id': "Storage", 'envVar': "STORAGE"},
    ]}])
    dataset = utils.dataset(parameters_values={'Storage': "%STORAGE_CONNECTION_STRING%"})

    env, _ = resolve_bindings(settings, connector, dataset, "Organizationid", "Workspaceid")

    assert env == {'STORAGE': "csmphoenix_storage_connection_string"}


def test_resolve_bindings_connector_mismatch(settings, connector):
    dataset = utils.dataset(connector_id="other")

    with pytest.raises(scenariorun.model.errors.ConnectorMismatchError) as e:
        resolve_bindings(settings, connector, dataset, "Organizationid", "Workspaceid")

    assert e.value.dataset_connector_id == "other"
    assert e.value.connector_id == utils.CONNECTOR_ID


def test_resolve_bindings_dataset_without_connector(settings, connector):
    dataset = Dataset(id="1")

    with pytest.raises(scenariorun.model.errors.UnknownConnectorError):
        resolve_bindings(settings, connector, dataset, "Organizationid", "Workspaceid")


def test_resolve_platform_vars_keeps_literals(settings):
    assert resolve_platform_vars(settings, "value", "Organizationid", "Workspaceid") == "value"


@pytest.mark.parametrize("value, expected", [
    ("d-1", ["d-1"]),
    ('["d-1", "d-2"]', ["d-1", "d-2"]),
    ("[d-1, d-2]", ["d-1", "d-2"]),
    ("['d-1','d-2']", ["d-1", "d-2"]),
    ("[]", []),
    ("[d-1,,d-2]", ["d-1", "d-2"]),
])
def test_parse_dataset_id_list(value, expected):
    assert parse_dataset_id_list(value) == expected


@pytest.mark.parametrize("value", [
    "[",
    "[d-1",
    "[d-1, d-2",
    "[null]",
    '[["d-1"]]',
    '[{"id": "d-1"}]',
    '["d-1", 2]',
])
def test_parse_dataset_id_list_malformed(value):
    with pytest.raises(scenariorun.model.errors.MalformedDatasetIdListError) as e:
        parse_dataset_id_list(value)

    assert isinstance(e.value, scenariorun.model.errors.ClientError)
    assert e.value.value == value


def test_iter_dataset_parameters():
    solution = utils.solution(**utils.dataset_parameters(3))
    scenario = utils.scenario(parameters_values=[
        {'parameterId': "datasetparam1", 'value': "d-1"},
        {'parameterId': "datasetparam2", 'value': ""},
        {'parameterId': "datasetparam3", 'value': "[d-2, d-3]"},
    ])

    assert list(iter_dataset_parameters(scenario, solution)) == [
        ("datasetparam1", ["d-1"]),
        ("datasetparam3", ["d-2", "d-3"]),
    ]


def test_iter_dataset_parameters_skips_other_types():
    solution = utils.solution()
    scenario = utils.scenario(parameters_values=[{'parameterId': "prefix", 'value': "hello"}])

    assert list(iter_dataset_parameters(scenario, solution)) == []


def test_iter_dataset_parameters_unknown_parameter():
    solution = utils.solution()
    scenario = utils.scenario(parameters_values=[{'parameterId': "unknown", 'value': "d-1"}])

    with pytest.raises(scenariorun.model.errors.UnknownParameterError) as e:
        list(iter_dataset_parameters(scenario, solution))

    assert e.value.parameter_id == "unknown"
    assert e.value.solution_id == "1"


def test_collect_dataset_ids():
    solution = utils.solution(run_template={'parameterGroups': ["datasets"]}, **utils.dataset_parameters(2))
    scenario = utils.scenario(dataset_list=["1", "d-2"], parameters_values=[
        {'parameterId': "datasetparam1", 'value': "d-1"},
        {'parameterId': "datasetparam2", 'value': '["d-2", "d-3"]'},
    ])
    run_template = get_run_template(solution, scenario.runTemplateId)

    assert collect_dataset_ids(scenario, solution, run_template) == ["1", "d-2", "d-1", "d-3"]


def test_collect_dataset_ids_outside_parameter_groups():
    solution = utils.solution(**utils.dataset_parameters(1))
    scenario = utils.scenario(parameters_values=[{'parameterId': "datasetparam1", 'value': "d-1"}])
    run_template = get_run_template(solution, scenario.runTemplateId)

    assert collect_dataset_ids(scenario, solution, run_template) == ["1"]
