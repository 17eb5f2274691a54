# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import logging

import networkx
import pytest

import scenariorun.model.errors
from scenariorun.compiler.pipeline import (
    PipelineCompiler,
    Stage,
    StageKind,
    dependency_graph,
    is_step_enabled,
    link_stages,
    stack_solution_containers,
)
from scenariorun.model.containers import DAG_ROOT, ScenarioRunContainer

from . import utils

logger = logging.getLogger('test')

SIZING = {
    'requests': {'cpu': "3", 'memory': "4Gi"},
    'limits': {'cpu': "3", 'memory': "4Gi"},
}


def compile_pipeline(compiler, solution=None, scenario=None, workspace=None, datasets=None, connectors=None):
    return compiler.build_containers_pipeline(
        utils.organization(),
        workspace or utils.workspace(),
        scenario or utils.scenario(),
        solution or utils.solution(),
        utils.CSM_SIMULATION_ID,
        datasets=datasets if datasets is not None else [utils.dataset()],
        connectors=connectors if connectors is not None else [utils.connector()],
    )


def dependencies(containers):
    return {c.name: c.dependencies for c in containers}


def test_is_step_enabled():
    assert is_step_enabled(None) is True
    assert is_step_enabled(True) is True
    assert is_step_enabled(False) is False


def container(name, deps=None, solution_container=False, mode=None):
    return ScenarioRunContainer(
        name=name, image="image", dependencies=deps, solutionContainer=solution_container,
        envVars={'CSM_CONTAINER_MODE': mode} if mode else None)


def test_link_stages_skips_disabled_and_empty_stages():
    def builder(*names):
        return lambda deps: [container(n, deps) for n in names]

    stages = [
        Stage(StageKind.DatasetFetch, True, builder(), root_when_first=True),
        Stage(StageKind.ScenarioParameterFetch, True, builder("params"), root_when_first=True),
        Stage(StageKind.ApplyParameters, False, builder("apply")),
        Stage(StageKind.Validate, True, builder("validate-1", "validate-2")),
        Stage(StageKind.SendToWarehouse, True, builder("send"), advances_frontier=False),
        Stage(StageKind.Run, True, builder("run")),
    ]

    containers = link_stages(stages, logger)

    assert dependencies(containers) == {
        'params': [DAG_ROOT],
        'validate-1': ["params"],
        'validate-2': ["params"],
        'send': ["validate-1", "validate-2"],
        'run': ["validate-1", "validate-2"],
    }


def test_link_stages_first_stage_without_root():
    stages = [Stage(StageKind.Run, True, lambda deps: [container("run", deps)])]

    assert dependencies(link_stages(stages)) == {'run': None}


def test_stack_solution_containers():
    containers = [
        container("fetch", [DAG_ROOT]),
        container("apply", ["fetch"], True, "handle-parameters"),
        container("validate", ["apply"], True, "validate"),
        container("send", ["validate"]),
        container("prerun", ["validate"], True, "prerun"),
        container("run", ["prerun"], True, "engine"),
        container("postrun", ["run"], True, "postrun"),
    ]

    stacked = stack_solution_containers(containers)

    assert dependencies(stacked) == {
        'fetch': [DAG_ROOT],
        'multipleStepsContainer-1': ["fetch"],
        'send': ["multipleStepsContainer-1"],
        'multipleStepsContainer-2': ["multipleStepsContainer-1"],
    }
    assert stacked[1].mode == "handle-parameters,validate"
    assert stacked[3].mode == "prerun,engine,postrun"
    assert stacked[3].solutionContainer is True


def test_stack_solution_containers_single_container_consumes_index():
    containers = [
        container("fetch", [DAG_ROOT]),
        container("apply", ["fetch"], True, "handle-parameters"),
        container("send", ["apply"]),
        container("prerun", ["apply"], True, "prerun"),
        container("run", ["prerun"], True, "engine"),
    ]

    stacked = stack_solution_containers(containers)

    assert dependencies(stacked) == {
        'fetch': [DAG_ROOT],
        'apply': ["fetch"],
        'send': ["apply"],
        'multipleStepsContainer-2': ["apply"],
    }
    assert stacked[3].mode == "prerun,engine"


def test_stack_solution_containers_keeps_single_containers():
    containers = [
        container("fetch", [DAG_ROOT]),
        container("run", ["fetch"], True, "engine"),
    ]

    assert stack_solution_containers(containers) == containers


def test_dependency_graph():
    graph = dependency_graph([
        container("a", [DAG_ROOT]),
        container("b", [DAG_ROOT]),
        container("c", ["a", "b"]),
    ])

    assert isinstance(graph, networkx.DiGraph)
    assert sorted(graph.predecessors("c")) == ["a", "b"]
    assert graph.in_degree("a") == 0


def test_dependency_graph_duplicate_name():
    with pytest.raises(scenariorun.model.errors.InvalidDependencyError) as e:
        dependency_graph([container("a", [DAG_ROOT]), container("a", [DAG_ROOT])])

    assert e.value.container_name == "a"


def test_dependency_graph_forward_reference():
    with pytest.raises(scenariorun.model.errors.InvalidDependencyError) as e:
        dependency_graph([container("a", ["b"]), container("b", [DAG_ROOT])])

    assert e.value.container_name == "a"
    assert e.value.dependencies == ["b"]


def test_compile_all_steps(compiler):
    containers = compile_pipeline(compiler)

    assert dependencies(containers) == {
        'fetchDatasetContainer-1': [DAG_ROOT],
        'fetchScenarioParametersContainer': ["fetchDatasetContainer-1"],
        'applyParametersContainer': ["fetchScenarioParametersContainer"],
        'validateDataContainer': ["applyParametersContainer"],
        'sendDataWarehouseContainer': ["validateDataContainer"],
        'preRunContainer': ["validateDataContainer"],
        'runContainer': ["preRunContainer"],
        'postRunContainer': ["runContainer"],
    }
    assert len(containers) == 8
    assert [c.solutionContainer for c in containers] == [False, False, True, True, False, True, True, True]


def test_compile_is_idempotent(compiler):
    assert compile_pipeline(compiler) == compile_pipeline(compiler)


def test_compile_only_run(compiler):
    run_template = utils.all_steps(False)
    run_template['run'] = True

    containers = compile_pipeline(compiler, solution=utils.solution(run_template=run_template))

    assert dependencies(containers) == {'runContainer': None}


def test_compile_without_datasets(compiler):
    containers = compile_pipeline(compiler, scenario=utils.scenario(dataset_list=[]))

    assert containers[0].name == "fetchScenarioParametersContainer"
    assert containers[0].dependencies == [DAG_ROOT]
    assert len(containers) == 7


def test_compile_without_fetch_steps(compiler):
    solution = utils.solution(run_template={'fetchDatasets': False, 'fetchScenarioParameters': False})

    containers = compile_pipeline(compiler, solution=solution)

    assert containers[0].name == "applyParametersContainer"
    assert containers[0].dependencies is None


def test_compile_without_data_warehouse(compiler):
    workspace = utils.workspace(sendInputToDataWarehouse=False)

    containers = compile_pipeline(compiler, workspace=workspace)

    assert "sendDataWarehouseContainer" not in [c.name for c in containers]
    assert len(containers) == 7


def test_compile_data_warehouse_template_overrides_workspace(compiler):
    workspace = utils.workspace(sendInputToDataWarehouse=False)
    solution = utils.solution(run_template={'sendInputParametersToDataWarehouse': True})

    containers = compile_pipeline(compiler, solution=solution, workspace=workspace)
    send = [c for c in containers if c.name == "sendDataWarehouseContainer"]

    assert len(send) == 1
    assert send[0].envVars['CSM_SEND_DATAWAREHOUSE_PARAMETERS'] == "true"
    assert send[0].envVars['CSM_SEND_DATAWAREHOUSE_DATASETS'] == "false"


def test_compile_without_prerun(compiler):
    solution = utils.solution(run_template={'preRun': False})

    containers = compile_pipeline(compiler, solution=solution)

    assert dependencies(containers)['runContainer'] == ["validateDataContainer"]


def test_compile_multiple_datasets(compiler):
    scenario = utils.scenario(dataset_list=["1", "2", "3"])
    datasets = [utils.dataset(x) for x in ("1", "2", "3")]

    containers = compile_pipeline(compiler, scenario=scenario, datasets=datasets)
    deps = dependencies(containers)

    assert deps['fetchDatasetContainer-1'] == [DAG_ROOT]
    assert deps['fetchDatasetContainer-2'] == [DAG_ROOT]
    assert deps['fetchDatasetContainer-3'] == [DAG_ROOT]
    assert deps['fetchScenarioParametersContainer'] == [
        "fetchDatasetContainer-1", "fetchDatasetContainer-2", "fetchDatasetContainer-3"]


def test_compile_dataset_parameters_fan_in(compiler):
    solution = utils.solution(**utils.dataset_parameters(3))
    scenario = utils.scenario(dataset_list=["1", "2", "3"], parameters_values=[
        {'parameterId': "datasetparam1", 'value': "d-1"},
        {'parameterId': "datasetparam2", 'value': "d-2"},
        {'parameterId': "datasetparam3", 'value': "d-3"},
    ])
    datasets = [utils.dataset(x) for x in ("1", "2", "3", "d-1", "d-2", "d-3")]

    containers = compile_pipeline(compiler, solution=solution, scenario=scenario, datasets=datasets)
    deps = dependencies(containers)
    parameter_fetches = [f"fetchScenarioDatasetParametersContainer-{i}" for i in (1, 2, 3)]

    assert len(containers) == 3 + 1 + 3 + 5 + 1
    for name in parameter_fetches:
        assert deps[name] == ["fetchScenarioParametersContainer"]
    assert deps['applyParametersContainer'] == parameter_fetches


def test_compile_stack_steps(compiler):
    solution = utils.solution(run_template={'stackSteps': True})

    containers = compile_pipeline(compiler, solution=solution)

    assert dependencies(containers) == {
        'fetchDatasetContainer-1': [DAG_ROOT],
        'fetchScenarioParametersContainer': ["fetchDatasetContainer-1"],
        'multipleStepsContainer-1': ["fetchScenarioParametersContainer"],
        'sendDataWarehouseContainer': ["multipleStepsContainer-1"],
        'multipleStepsContainer-2': ["multipleStepsContainer-1"],
    }
    assert containers[2].envVars['CSM_CONTAINER_MODE'] == "handle-parameters,validate"
    assert containers[4].envVars['CSM_CONTAINER_MODE'] == "prerun,engine,postrun"


@pytest.mark.parametrize("datasets_count, send, expected", [
    (1, True, 5),
    (3, True, 7),
    (2, False, 4),
])
def test_compile_stack_steps_size(compiler, datasets_count, send, expected):
    ids = [str(i) for i in range(1, datasets_count + 1)]
    solution = utils.solution(run_template={'stackSteps': True})
    workspace = utils.workspace(sendInputToDataWarehouse=send)

    containers = compile_pipeline(
        compiler, solution=solution, scenario=utils.scenario(dataset_list=ids), workspace=workspace,
        datasets=[utils.dataset(x) for x in ids])

    assert len(containers) == expected


def test_compile_unknown_dataset(compiler):
    with pytest.raises(scenariorun.model.errors.UnknownDatasetError) as e:
        compile_pipeline(compiler, scenario=utils.scenario(dataset_list=["unknown"]))

    assert e.value.dataset_id == "unknown"


def test_compile_unknown_connector(compiler):
    with pytest.raises(scenariorun.model.errors.UnknownConnectorError):
        compile_pipeline(compiler, connectors=[])


def test_compile_malformed_dataset_parameter(compiler):
    solution = utils.solution(**utils.dataset_parameters(1))
    scenario = utils.scenario(parameters_values=[{'parameterId': "datasetparam1", 'value': "[d-1"}])

    with pytest.raises(scenariorun.model.errors.ClientError):
        compile_pipeline(compiler, solution=solution, scenario=scenario)


def test_compile_unknown_run_template(compiler):
    with pytest.raises(scenariorun.model.errors.UnknownRunTemplateError):
        compile_pipeline(compiler, scenario=utils.scenario(runTemplateId="unknown"))


def test_compile_resource_sizing(compiler):
    scenario = utils.scenario(resourceSizing=SIZING)

    containers = compile_pipeline(compiler, scenario=scenario)

    for c in containers:
        if c.solutionContainer:
            assert c.runSizing.requests.memory == "4Gi"
        else:
            assert c.runSizing is None


def test_compile_run_template_resource_sizing(compiler):
    solution = utils.solution(run_template={'resourceSizing': SIZING})

    containers = compile_pipeline(compiler, solution=solution)

    assert [c.name for c in containers if c.runSizing is not None] == [
        "applyParametersContainer", "validateDataContainer", "preRunContainer", "runContainer", "postRunContainer"]


def test_build_containers_start(compiler, organization, workspace, connector, dataset):
    start = compiler.build_containers_start(
        organization, workspace, utils.scenario(), utils.solution(), datasets=[dataset], connectors=[connector],
        csm_simulation_id=utils.CSM_SIMULATION_ID, labels={'cosmotech.com/scenario': "AQWXSZ"})

    assert start.generateName == "workflow-aqwxsz-"
    assert start.nodeLabel == "highcpupool"
    assert start.csmSimulationId == utils.CSM_SIMULATION_ID
    assert start.labels == {'cosmotech.com/scenario': "AQWXSZ"}
    assert len(start.names) == 8
    assert start.get("runContainer").envVars['CSM_SIMULATION_ID'] == utils.CSM_SIMULATION_ID


def test_build_containers_start_generates_simulation_id(compiler, organization, workspace, connector, dataset):
    solution = utils.solution(run_template={'computeSize': None})

    start = compiler.build_containers_start(
        organization, workspace, utils.scenario(), solution, datasets=[dataset], connectors=[connector])

    assert start.csmSimulationId
    assert start.nodeLabel is None
    assert all(c.envVars['CSM_SIMULATION_ID'] == start.csmSimulationId for c in start.containers)

    with pytest.raises(KeyError):
        start.get("unknown")


def test_compiler_forwards_event_hub_checker(settings):
    compiler = PipelineCompiler(settings, event_hub_exists=lambda host, name: True)

    containers = compile_pipeline(compiler)

    for c in containers:
        if c.solutionContainer:
            assert 'CSM_CONTROL_PLANE_TOPIC' in c.envVars
        else:
            assert 'CSM_CONTROL_PLANE_TOPIC' not in c.envVars
