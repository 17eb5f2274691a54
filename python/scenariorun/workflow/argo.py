# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Lowers the compiled containers of a scenario run into an Argo Workflow'''

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import kubernetes.client
import yaml

from scenariorun.model.containers import DAG_ROOT, ScenarioRunContainer, ScenarioRunStartContainers
from scenariorun.model.domain import ResourceSizing
from scenariorun.settings import PlatformSettings
from scenariorun.workflow.models import (
    IoArgoprojWorkflowV1alpha1DAGTask,
    IoArgoprojWorkflowV1alpha1DAGTemplate,
    IoArgoprojWorkflowV1alpha1Metadata,
    IoArgoprojWorkflowV1alpha1Template,
    IoArgoprojWorkflowV1alpha1Workflow,
    IoArgoprojWorkflowV1alpha1WorkflowSpec,
    serialize,
)

CSM_DAG_ENTRYPOINT = "entrypoint"
CSM_DEFAULT_WORKFLOW_NAME = "default-workflow-"
VOLUME_CLAIM = "datadir"
VOLUME_CLAIM_DATASETS_SUBPATH = "datasetsdir"
VOLUME_CLAIM_PARAMETERS_SUBPATH = "parametersdir"
VOLUME_DATASETS_PATH = "/mnt/scenariorun-data"
VOLUME_PARAMETERS_PATH = "/mnt/scenariorun-parameters"
CSM_ARGO_WORKFLOWS_TIMEOUT = 28800
IMAGE_PULL_POLICY_ALWAYS = "Always"
NODE_SELECTOR_OS = {"kubernetes.io/os": "linux"}
NODE_SELECTOR_DEFAULT_TIER = {"cosmotech.com/tier": "compute"}
ARGO_API_VERSION = "argoproj.io/v1alpha1"
ARGO_KIND = "Workflow"

logger = logging.getLogger('argo')


def build_resources(run_sizing: Optional[ResourceSizing]) -> Optional[kubernetes.client.V1ResourceRequirements]:
    if run_sizing is None:
        return None
    return kubernetes.client.V1ResourceRequirements(
        requests={"cpu": run_sizing.requests.cpu, "memory": run_sizing.requests.memory},
        limits={"cpu": run_sizing.limits.cpu, "memory": run_sizing.limits.memory},
    )


def build_volume_mounts() -> List[kubernetes.client.V1VolumeMount]:
    return [
        kubernetes.client.V1VolumeMount(
            name=VOLUME_CLAIM, mount_path=VOLUME_DATASETS_PATH, sub_path=VOLUME_CLAIM_DATASETS_SUBPATH),
        kubernetes.client.V1VolumeMount(
            name=VOLUME_CLAIM, mount_path=VOLUME_PARAMETERS_PATH, sub_path=VOLUME_CLAIM_PARAMETERS_SUBPATH),
    ]


def image_pull_policy(settings: PlatformSettings, always_pull: Optional[bool] = None) -> str:
    if always_pull:
        return IMAGE_PULL_POLICY_ALWAYS
    return settings.argo.imagePullPolicy


def build_template(
        container: ScenarioRunContainer,
        settings: PlatformSettings,
        always_pull: Optional[bool] = None,
) -> IoArgoprojWorkflowV1alpha1Template:
    """Builds the Argo template which runs @container

    The environment variables keep the order of container.envVars. The command is [entrypoint] when the
    container overrides the entrypoint of its image and None otherwise.
    """
    env = None
    if container.envVars is not None:
        env = [kubernetes.client.V1EnvVar(name=name, value=value) for name, value in container.envVars.items()]

    k8s_container = kubernetes.client.V1Container(
        # VV: Argo ignores the name of the container of a template but the kubernetes model requires one
        name="main",
        image=container.image,
        image_pull_policy=image_pull_policy(settings, always_pull),
        command=[container.entrypoint] if container.entrypoint is not None else None,
        args=container.runArgs,
        env=env,
        volume_mounts=build_volume_mounts(),
        resources=build_resources(container.runSizing),
    )

    return IoArgoprojWorkflowV1alpha1Template(
        name=container.name,
        metadata=IoArgoprojWorkflowV1alpha1Metadata(labels=container.labels) if container.labels else None,
        container=k8s_container,
    )


def build_dag_task(container: ScenarioRunContainer) -> IoArgoprojWorkflowV1alpha1DAGTask:
    """A task without dependencies (None, empty, or only DAG_ROOT) has no dependencies field"""
    dependencies = [d for d in (container.dependencies or []) if d != DAG_ROOT] or None

    return IoArgoprojWorkflowV1alpha1DAGTask(
        name=container.name,
        template=container.name,
        dependencies=dependencies,
    )


def build_entrypoint_template(start_containers: ScenarioRunStartContainers) -> IoArgoprojWorkflowV1alpha1Template:
    tasks = [build_dag_task(container) for container in start_containers.containers]
    return IoArgoprojWorkflowV1alpha1Template(
        name=CSM_DAG_ENTRYPOINT,
        dag=IoArgoprojWorkflowV1alpha1DAGTemplate(tasks=tasks),
    )


def build_node_selector(settings: PlatformSettings, node_label: Optional[str]) -> Dict[str, str]:
    """Pins the pods to linux nodes of the node pool @node_label, or to the compute tier if it is None"""
    node_selector = dict(NODE_SELECTOR_OS)
    if node_label is not None:
        node_selector[settings.argo.workflows.nodePoolLabel] = node_label
    else:
        node_selector.update(NODE_SELECTOR_DEFAULT_TIER)
    return node_selector


def build_volume_claims(settings: PlatformSettings) -> List[kubernetes.client.V1PersistentVolumeClaim]:
    workflows = settings.argo.workflows
    storage_class = workflows.storageClass if workflows.storageClass and workflows.storageClass.strip() else None

    data_dir = kubernetes.client.V1PersistentVolumeClaim(
        metadata=kubernetes.client.V1ObjectMeta(name=VOLUME_CLAIM),
        spec=kubernetes.client.V1PersistentVolumeClaimSpec(
            access_modes=list(workflows.accessModes),
            storage_class_name=storage_class,
            resources=kubernetes.client.V1VolumeResourceRequirements(requests=dict(workflows.requests)),
        ),
    )
    return [data_dir]


def build_image_pull_secrets(settings: PlatformSettings) -> Optional[List[kubernetes.client.V1LocalObjectReference]]:
    secrets = [s for s in (settings.argo.imagePullSecrets or []) if s.strip()]
    return [kubernetes.client.V1LocalObjectReference(name=s) for s in secrets] or None


def build_workflow_spec(
        settings: PlatformSettings,
        start_containers: ScenarioRunStartContainers,
        execution_timeout: Optional[int] = None,
        always_pull: Optional[bool] = None,
) -> IoArgoprojWorkflowV1alpha1WorkflowSpec:
    """Builds the spec of the Workflow, one template per container plus the DAG entrypoint template

    Arguments:
        settings: The platform settings
        start_containers: The compiled containers of the run
        execution_timeout: Seconds before Argo stops the Workflow, defaults to CSM_ARGO_WORKFLOWS_TIMEOUT
        always_pull: The alwaysPull flag of the Solution, when True the images are always pulled
    """
    templates = [build_template(c, settings, always_pull) for c in start_containers.containers]
    templates.append(build_entrypoint_template(start_containers))

    return IoArgoprojWorkflowV1alpha1WorkflowSpec(
        entrypoint=CSM_DAG_ENTRYPOINT,
        templates=templates,
        node_selector=build_node_selector(settings, start_containers.nodeLabel),
        service_account_name=settings.argo.workflows.serviceAccountName,
        image_pull_secrets=build_image_pull_secrets(settings),
        tolerations=[kubernetes.client.V1Toleration(key="vendor", value="cosmotech", effect="NoSchedule")],
        volume_claim_templates=build_volume_claims(settings),
        active_deadline_seconds=execution_timeout if execution_timeout is not None else CSM_ARGO_WORKFLOWS_TIMEOUT,
    )


def build_workflow(
        settings: PlatformSettings,
        start_containers: ScenarioRunStartContainers,
        execution_timeout: Optional[int] = None,
        always_pull: Optional[bool] = None,
) -> IoArgoprojWorkflowV1alpha1Workflow:
    """Lowers @start_containers into an Argo Workflow, see build_workflow_spec() for the arguments"""
    logger.log(15, f"Lowering {len(start_containers.containers)} containers into Workflow "
                   f"{start_containers.generateName or CSM_DEFAULT_WORKFLOW_NAME}")

    return IoArgoprojWorkflowV1alpha1Workflow(
        api_version=ARGO_API_VERSION,
        kind=ARGO_KIND,
        metadata=kubernetes.client.V1ObjectMeta(
            generate_name=start_containers.generateName or CSM_DEFAULT_WORKFLOW_NAME,
            labels=start_containers.labels,
        ),
        spec=build_workflow_spec(settings, start_containers, execution_timeout, always_pull),
    )


def workflow_to_dict(workflow: IoArgoprojWorkflowV1alpha1Workflow) -> Dict[str, Any]:
    return serialize(workflow)


def workflow_to_yaml(workflow: IoArgoprojWorkflowV1alpha1Workflow) -> str:
    return yaml.dump(workflow_to_dict(workflow), Dumper=yaml.SafeDumper, sort_keys=False)


def workflow_to_json(workflow: IoArgoprojWorkflowV1alpha1Workflow, indent: Optional[int] = 2) -> str:
    return json.dumps(workflow_to_dict(workflow), indent=indent)
