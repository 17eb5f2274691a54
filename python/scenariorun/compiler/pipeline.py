# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Compiles the RunTemplate of a Scenario into a DAG of containers

The stages of a run are described by an ordered table of Stage tuples. The compiler drops the disabled
stages and then links the remaining ones through a "frontier": the names of the containers that the
next stage has to wait for.
'''

from __future__ import annotations

import enum
import logging
import uuid
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional

import networkx

import scenariorun.model.errors
from scenariorun.compiler import steps
from scenariorun.compiler.environment import EventHubExistsChecker
from scenariorun.compiler.sizing import resolve_node_label
from scenariorun.compiler.steps import ContainerFactory, find_connector, find_dataset, get_run_template
from scenariorun.model.containers import DAG_ROOT, ScenarioRunContainer, ScenarioRunStartContainers
from scenariorun.model.domain import Connector, Dataset, Organization, RunTemplate, Scenario, Solution, Workspace
from scenariorun.settings import PlatformSettings
from scenariorun.utilities.names import sanitize_for_kubernetes

MULTIPLE_STEPS_NAME = "multipleStepsContainer"
GENERATE_NAME_PREFIX = "workflow-"
GENERATE_NAME_SUFFIX = "-"


class StageKind(enum.Enum):
    DatasetFetch = "DatasetFetch"
    ScenarioParameterFetch = "ScenarioParameterFetch"
    DatasetTypeParameterFetch = "DatasetTypeParameterFetch"
    ApplyParameters = "ApplyParameters"
    Validate = "Validate"
    SendToWarehouse = "SendToWarehouse"
    PreRun = "PreRun"
    Run = "Run"
    PostRun = "PostRun"


# VV: Receives the dependencies of the stage and returns its containers (in order)
StageBuilder = Callable[[Optional[List[str]]], List[ScenarioRunContainer]]


class Stage(NamedTuple):
    kind: StageKind
    enabled: bool
    builder: StageBuilder
    # VV: when False the stage is a side branch, the stages after it wait for the stage before it
    advances_frontier: bool = True
    # VV: when True and no stage precedes it, the containers depend on DAG_ROOT instead of nothing
    root_when_first: bool = False


def is_step_enabled(step: Optional[bool]) -> bool:
    """Stage toggles that are not set mean that the stage is enabled"""
    return step if step is not None else True


def link_stages(stages: Iterable[Stage], log: Optional[logging.Logger] = None) -> List[ScenarioRunContainer]:
    """Invokes the builders of the enabled @stages and returns the concatenation of their containers

    Each builder receives the frontier, i.e. the names of the containers of the closest enabled stage that
    advances the frontier and produced at least one container. Absent stages are skipped transparently.
    """
    log = log or logging.getLogger('compiler')
    containers: List[ScenarioRunContainer] = []
    frontier: List[str] = []

    for stage in stages:
        if not stage.enabled:
            log.log(13, f"Stage {stage.kind.value} is disabled")
            continue

        if frontier:
            dependencies = list(frontier)
        elif stage.root_when_first:
            dependencies = [DAG_ROOT]
        else:
            dependencies = None

        built = stage.builder(dependencies)
        log.log(13, f"Stage {stage.kind.value} depends on {dependencies} and produced {[c.name for c in built]}")
        containers.extend(built)

        if stage.advances_frontier and built:
            frontier = [c.name for c in built]

    return containers


def _merge_solution_containers(index: int, group: List[ScenarioRunContainer]) -> ScenarioRunContainer:
    first = group[0]
    env_vars = dict(first.envVars or {})
    env_vars[steps.CONTAINER_MODE_VAR] = ",".join(c.mode or "" for c in group)

    return first.model_copy(update={
        'name': f"{MULTIPLE_STEPS_NAME}-{index}",
        'envVars': env_vars,
    })


def stack_solution_containers(containers: List[ScenarioRunContainer]) -> List[ScenarioRunContainer]:
    """Merges consecutive Solution containers into multipleStepsContainer-${index} containers

    A merged container runs the modes of its members one after the other, it inherits the image,
    environment and dependencies of the first member. Runs of a single Solution container are kept as is
    but still consume an index.
    Containers which depend on a member of a merged group depend on the merged container instead.
    """
    groups: List[List[ScenarioRunContainer]] = []
    for container in containers:
        if container.solutionContainer and groups and groups[-1][-1].solutionContainer:
            groups[-1].append(container)
        else:
            groups.append([container])

    stacked: List[ScenarioRunContainer] = []
    renamed: Dict[str, str] = {}
    index = 0
    for group in groups:
        if group[0].solutionContainer:
            index += 1
        if len(group) == 1:
            stacked.append(group[0])
            continue
        merged = _merge_solution_containers(index, group)
        for member in group:
            renamed[member.name] = merged.name
        stacked.append(merged)

    ret = []
    for container in stacked:
        if container.dependencies is not None and any(d in renamed for d in container.dependencies):
            dependencies = list(dict.fromkeys(renamed.get(d, d) for d in container.dependencies))
            container = container.model_copy(update={'dependencies': dependencies})
        ret.append(container)
    return ret


def dependency_graph(containers: List[ScenarioRunContainer]) -> networkx.DiGraph:
    """Returns a DiGraph with one node per container and one edge per dependency (producer -> consumer)

    Raises:
        scenariorun.model.errors.InvalidDependencyError: If a container has the same name as an earlier one,
            if it references a container which does not precede it, or if the graph contains a cycle
    """
    graph = networkx.DiGraph()

    for container in containers:
        if container.name in graph:
            raise scenariorun.model.errors.InvalidDependencyError(
                container.name, container.dependencies or [], "the name is not unique")

        for dependency in container.dependencies or []:
            if dependency == DAG_ROOT:
                continue
            if dependency not in graph:
                raise scenariorun.model.errors.InvalidDependencyError(
                    container.name, container.dependencies, f"{dependency} does not precede it")

        graph.add_node(container.name, container=container)
        for dependency in container.dependencies or []:
            if dependency != DAG_ROOT:
                graph.add_edge(dependency, container.name)

    if not networkx.is_directed_acyclic_graph(graph):
        cycle = networkx.find_cycle(graph)
        raise scenariorun.model.errors.InvalidDependencyError(cycle[0][1], [cycle[0][0]], "cycle detected")

    return graph


class PipelineCompiler:
    """Turns a Scenario and the objects it references into the containers of a scenario run

    The compiler does not perform any I/O, the calling layer looks up all Datasets and Connectors
    beforehand (see scenariorun.compiler.bindings.collect_dataset_ids()).

    Arguments:
        settings: The platform settings
        event_hub_exists: Optional callable which reports whether an event hub exists, see
            scenariorun.compiler.environment.get_event_hub_env_vars()
    """

    def __init__(self, settings: PlatformSettings, event_hub_exists: Optional[EventHubExistsChecker] = None):
        self.settings = settings
        self.factory = ContainerFactory(settings, event_hub_exists)
        self.log = logging.getLogger('compiler')

    def stages(
            self,
            organization: Organization,
            workspace: Workspace,
            scenario: Scenario,
            solution: Solution,
            run_template: RunTemplate,
            datasets: Dict[str, Dataset],
            connectors: Dict[str, Connector],
            csm_simulation_id: str,
    ) -> List[Stage]:
        """Returns the stage table of @run_template, in execution order"""
        factory = self.factory
        run_sizing = scenario.resourceSizing or run_template.resourceSizing

        def fetch_datasets(dependencies):
            containers = []
            for index, dataset_id in enumerate(scenario.datasetList, start=1):
                dataset = find_dataset(datasets, dataset_id)
                connector = find_connector(connectors, dataset)
                containers.append(factory.build_from_dataset(
                    dataset, connector, index, organization, workspace, scenario.id, csm_simulation_id,
                    dependencies=[DAG_ROOT]))
            return containers

        def fetch_scenario_parameters(dependencies):
            return [factory.build_scenario_parameters_fetch_container(
                organization, workspace, scenario.id, csm_simulation_id,
                json_file=run_template.parametersJson, dependencies=dependencies)]

        def fetch_dataset_parameters(dependencies):
            return factory.build_dataset_parameters_fetch_containers(
                scenario, solution, datasets, connectors, organization, workspace, csm_simulation_id,
                dependencies=dependencies)

        def send_data_warehouse(dependencies):
            return [factory.build_send_data_warehouse_container(
                organization, workspace, scenario.id, run_template, csm_simulation_id, dependencies)]

        def solution_step(mode):
            def builder(dependencies):
                return [factory.build_solution_container(
                    organization, workspace, scenario.id, solution, run_template.id, mode, csm_simulation_id,
                    dependencies, run_sizing)]
            return builder

        fetch_parameters = is_step_enabled(run_template.fetchScenarioParameters)
        send_parameters, send_datasets = factory.send_data_warehouse_options(workspace, run_template)

        return [
            Stage(StageKind.DatasetFetch, is_step_enabled(run_template.fetchDatasets), fetch_datasets,
                  root_when_first=True),
            Stage(StageKind.ScenarioParameterFetch, fetch_parameters, fetch_scenario_parameters,
                  root_when_first=True),
            Stage(StageKind.DatasetTypeParameterFetch, fetch_parameters, fetch_dataset_parameters),
            Stage(StageKind.ApplyParameters, is_step_enabled(run_template.applyParameters),
                  solution_step(steps.CONTAINER_APPLY_PARAMETERS_MODE)),
            Stage(StageKind.Validate, is_step_enabled(run_template.validateData),
                  solution_step(steps.CONTAINER_VALIDATE_DATA_MODE)),
            Stage(StageKind.SendToWarehouse, send_parameters or send_datasets, send_data_warehouse,
                  advances_frontier=False),
            Stage(StageKind.PreRun, is_step_enabled(run_template.preRun), solution_step(steps.CONTAINER_PRERUN_MODE)),
            Stage(StageKind.Run, is_step_enabled(run_template.run), solution_step(steps.CONTAINER_RUN_MODE)),
            Stage(StageKind.PostRun, is_step_enabled(run_template.postRun), solution_step(steps.CONTAINER_POSTRUN_MODE)),
        ]

    def build_containers_pipeline(
            self,
            organization: Organization,
            workspace: Workspace,
            scenario: Scenario,
            solution: Solution,
            csm_simulation_id: str,
            datasets: Optional[Iterable[Dataset]] = None,
            connectors: Optional[Iterable[Connector]] = None,
    ) -> List[ScenarioRunContainer]:
        """Compiles the RunTemplate of @scenario into an ordered list of containers

        Arguments:
            organization: The Organization of the Scenario
            workspace: The Workspace of the Scenario
            scenario: The Scenario to run
            solution: The Solution of the Workspace, must contain the RunTemplate of @scenario
            csm_simulation_id: Correlation id of the run
            datasets: The Datasets of the Scenario plus those that its %DATASETID% parameters reference
            connectors: The Connectors of @datasets

        Returns:
            The containers in execution order. Every dependency references an earlier container or DAG_ROOT

        Raises:
            scenariorun.model.errors.ClientError: If a %DATASETID% parameter value is malformed
            scenariorun.model.errors.ConfigurationError: If the inputs or the platform settings are inconsistent
            scenariorun.model.errors.InvalidDependencyError: If the compiled graph is inconsistent
        """
        run_template = get_run_template(solution, scenario.runTemplateId)
        datasets = {d.id: d for d in (datasets or [])}
        connectors = {c.id: c for c in (connectors or [])}

        self.log.log(15, f"Compiling RunTemplate {run_template.id} of Solution {solution.id} "
                         f"for Scenario {scenario.id}")

        containers = link_stages(self.stages(
            organization, workspace, scenario, solution, run_template, datasets, connectors, csm_simulation_id),
            self.log)

        if run_template.stackSteps:
            containers = stack_solution_containers(containers)

        dependency_graph(containers)
        self.log.log(15, f"Compiled containers {[c.name for c in containers]}")
        return containers

    def build_containers_start(
            self,
            organization: Organization,
            workspace: Workspace,
            scenario: Scenario,
            solution: Solution,
            datasets: Optional[Iterable[Dataset]] = None,
            connectors: Optional[Iterable[Connector]] = None,
            csm_simulation_id: Optional[str] = None,
            labels: Optional[Dict[str, str]] = None,
    ) -> ScenarioRunStartContainers:
        """Compiles @scenario and decorates the containers with the information that the workflow needs

        Arguments:
            csm_simulation_id: Correlation id of the run, a new uuid4 when None
            labels: Optional labels of the workflow object

        See build_containers_pipeline() for the remaining arguments and the errors it raises
        """
        run_template = get_run_template(solution, scenario.runTemplateId)
        csm_simulation_id = csm_simulation_id or str(uuid.uuid4())

        containers = self.build_containers_pipeline(
            organization, workspace, scenario, solution, csm_simulation_id, datasets, connectors)

        return ScenarioRunStartContainers(
            containers=containers,
            nodeLabel=resolve_node_label(run_template.computeSize),
            generateName=sanitize_for_kubernetes(f"{GENERATE_NAME_PREFIX}{scenario.id}{GENERATE_NAME_SUFFIX}"),
            csmSimulationId=csm_simulation_id,
            labels=labels,
        )
