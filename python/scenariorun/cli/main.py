# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import enum
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pydantic
import typer
import yaml
from pydantic import ConfigDict
from rich.console import Console
from rich.markup import escape

import scenariorun.model.errors
import scenariorun.settings
from scenariorun.cli.exit_codes import ScenarioRunExitCodes
from scenariorun.compiler.pipeline import PipelineCompiler
from scenariorun.compiler.steps import get_run_template
from scenariorun.model.domain import Connector, Dataset, Organization, Scenario, Solution, Workspace
from scenariorun.workflow.argo import build_workflow, workflow_to_json, workflow_to_yaml

app = typer.Typer(
    context_settings={"help_option_names": ["-h", "--help"]},
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
    help="scenariorun compiles the RunTemplate of a Scenario into an Argo Workflow",
)

stderr = Console(stderr=True)
stdout = Console()


class OutputFormat(str, enum.Enum):
    yaml = "yaml"
    json = "json"


class RunRequest(pydantic.BaseModel):
    """The objects that a scenario run needs, as the platform API returns them"""
    model_config = ConfigDict(extra="forbid")

    organization: Organization
    workspace: Workspace
    solution: Solution
    scenario: Scenario
    datasets: List[Dataset] = []
    connectors: List[Connector] = []
    csmSimulationId: Optional[str] = None
    labels: Optional[Dict[str, str]] = None


def load_run_request(path: Path) -> RunRequest:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        stderr.print(f"[red]Error:[/red]\tUnable to load run request from file: {escape(str(e))}")
        raise typer.Exit(code=ScenarioRunExitCodes.IO_ERROR)

    try:
        return RunRequest(**(data or {}))
    except pydantic.ValidationError as e:
        stderr.print(f"[red]Error:[/red]\tInvalid run request {path}: {escape(str(e))}")
        raise typer.Exit(code=ScenarioRunExitCodes.INPUT_ERROR)


def load_settings(path: Path) -> scenariorun.settings.PlatformSettings:
    try:
        return scenariorun.settings.load_platform_settings(path=str(path), reuse_if_existing=False)
    except (OSError, yaml.YAMLError) as e:
        stderr.print(f"[red]Error:[/red]\tUnable to load platform settings from file: {escape(str(e))}")
        raise typer.Exit(code=ScenarioRunExitCodes.IO_ERROR)
    except scenariorun.model.errors.EnhancedException as e:
        stderr.print(f"[red]Error:[/red]\t{escape(str(e))}")
        raise typer.Exit(code=ScenarioRunExitCodes.CONFIGURATION_ERROR)


def report_compile_error(e: scenariorun.model.errors.ScenarioRunException):
    if isinstance(e, scenariorun.model.errors.ClientError):
        code = ScenarioRunExitCodes.INPUT_ERROR
    elif isinstance(e, scenariorun.model.errors.ConfigurationError):
        code = ScenarioRunExitCodes.CONFIGURATION_ERROR
    else:
        code = ScenarioRunExitCodes.INVARIANT_ERROR

    stderr.print(f"[red]Error:[/red]\tUnable to compile the scenario run: {escape(str(e))}")
    raise typer.Exit(code=code)


def compile_start_containers(request: RunRequest, settings, assume_control_plane: bool):
    compiler = PipelineCompiler(
        settings, event_hub_exists=(lambda host, name: True) if assume_control_plane else None)
    return compiler.build_containers_start(
        request.organization, request.workspace, request.scenario, request.solution,
        datasets=request.datasets, connectors=request.connectors,
        csm_simulation_id=request.csmSimulationId, labels=request.labels)


def dump(data, output_format: OutputFormat) -> str:
    if output_format == OutputFormat.json:
        return json.dumps(data, indent=2)
    return yaml.safe_dump(data, sort_keys=False)


PlatformOption = typer.Option(
    ...,
    "-p",
    "--platform",
    help="Path to the YAML file with the platform settings",
    envvar="SCENARIORUN_PLATFORM_SETTINGS",
    exists=True,
    readable=True,
    resolve_path=True,
)
RunRequestArgument = typer.Argument(
    ...,
    help="Path to the YAML file with the organization, workspace, solution, scenario, datasets and connectors",
    exists=True,
    readable=True,
    resolve_path=True,
)
OutputFormatOption = typer.Option(OutputFormat.yaml, "-o", "--output-format", help="Output format")
ControlPlaneOption = typer.Option(
    False, "--assume-control-plane", help="Assume that the control plane event hub exists")


@app.callback()
def common_options(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Use verbose output"),
):
    logging.basicConfig(format="%(levelname)-9s %(name)-15s: %(message)s")
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.command(name="compile")
def compile_workflow(
    run_request: Path = RunRequestArgument,
    platform: Path = PlatformOption,
    output_format: OutputFormat = OutputFormatOption,
    assume_control_plane: bool = ControlPlaneOption,
):
    """Prints the Argo Workflow of a scenario run"""
    settings = load_settings(platform)
    request = load_run_request(run_request)

    try:
        start_containers = compile_start_containers(request, settings, assume_control_plane)
        run_template = get_run_template(request.solution, request.scenario.runTemplateId)
    except scenariorun.model.errors.ScenarioRunException as e:
        report_compile_error(e)

    workflow = build_workflow(
        settings, start_containers, execution_timeout=run_template.executionTimeout,
        always_pull=request.solution.alwaysPull)

    if output_format == OutputFormat.json:
        text = workflow_to_json(workflow)
    else:
        text = workflow_to_yaml(workflow)
    stdout.print(text, markup=False, emoji=False, highlight=False, soft_wrap=True)


@app.command(name="pipeline")
def print_pipeline(
    run_request: Path = RunRequestArgument,
    platform: Path = PlatformOption,
    output_format: OutputFormat = OutputFormatOption,
    assume_control_plane: bool = ControlPlaneOption,
):
    """Prints the compiled containers of a scenario run"""
    settings = load_settings(platform)
    request = load_run_request(run_request)

    try:
        start_containers = compile_start_containers(request, settings, assume_control_plane)
    except scenariorun.model.errors.ScenarioRunException as e:
        report_compile_error(e)

    data = start_containers.model_dump(mode="json", exclude_none=True)
    stdout.print(dump(data, output_format), markup=False, emoji=False, highlight=False, soft_wrap=True)


def main():
    app()


if __name__ == '__main__':
    main()
