# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Argo Workflow objects (argoproj.io/v1alpha1)

The classes follow the layout of the models in kubernetes.client: @openapi_types lists the python
attributes and @attribute_map their key in the JSON/YAML document. serialize() walks trees that mix
these objects with kubernetes.client.V1* objects. Attributes that are None are omitted from the
serialized document.
'''

from __future__ import annotations

import datetime
import pprint
from typing import Any, Dict, List, Optional

import kubernetes.client


def serialize(obj: Any) -> Any:
    """Returns the JSON representation of @obj

    Objects with an @openapi_types and @attribute_map (ArgoModel and kubernetes.client.V1* models) become
    dictionaries keyed by their @attribute_map names, lists and dictionaries are serialized item by item.

    Raises:
        TypeError: If @obj, or one of its attributes, cannot be represented in JSON
    """
    if obj is None or isinstance(obj, (str, bool, int, float)):
        return obj
    if isinstance(obj, (list, tuple)):
        return [serialize(x) for x in obj]
    if isinstance(obj, dict):
        return {key: serialize(value) for key, value in obj.items()}
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    openapi_types = getattr(obj, 'openapi_types', None)
    attribute_map = getattr(obj, 'attribute_map', None)
    if not isinstance(openapi_types, dict) or not isinstance(attribute_map, dict):
        raise TypeError(f"Cannot serialize object of type {type(obj).__name__}")

    ret = {}
    for attr in openapi_types:
        value = getattr(obj, attr, None)
        if value is not None:
            ret[attribute_map[attr]] = serialize(value)
    return ret


class ArgoModel(object):
    openapi_types: Dict[str, str] = {}
    attribute_map: Dict[str, str] = {}

    def __init__(self, **kwargs):
        for attr in self.openapi_types:
            setattr(self, attr, kwargs.pop(attr, None))

        if kwargs:
            raise TypeError(f"{type(self).__name__} got unexpected arguments {sorted(kwargs)}")

    def to_dict(self) -> Dict[str, Any]:
        """Returns the JSON representation of the object, using the keys of @attribute_map"""
        return serialize(self)

    def to_str(self):
        return pprint.pformat(self.to_dict())

    def __repr__(self):
        return self.to_str()

    def __eq__(self, other):
        if not isinstance(other, type(self)):
            return False
        return self.to_dict() == other.to_dict()

    def __ne__(self, other):
        return not self == other


class IoArgoprojWorkflowV1alpha1Metadata(ArgoModel):
    openapi_types = {
        'annotations': 'dict(str, str)',
        'labels': 'dict(str, str)',
    }
    attribute_map = {
        'annotations': 'annotations',
        'labels': 'labels',
    }

    annotations: Optional[Dict[str, str]]
    labels: Optional[Dict[str, str]]


class IoArgoprojWorkflowV1alpha1DAGTask(ArgoModel):
    openapi_types = {
        'name': 'str',
        'template': 'str',
        'dependencies': 'list[str]',
    }
    attribute_map = {
        'name': 'name',
        'template': 'template',
        'dependencies': 'dependencies',
    }

    name: str
    template: str
    dependencies: Optional[List[str]]


class IoArgoprojWorkflowV1alpha1DAGTemplate(ArgoModel):
    openapi_types = {
        'tasks': 'list[IoArgoprojWorkflowV1alpha1DAGTask]',
    }
    attribute_map = {
        'tasks': 'tasks',
    }

    tasks: List[IoArgoprojWorkflowV1alpha1DAGTask]


class IoArgoprojWorkflowV1alpha1Template(ArgoModel):
    openapi_types = {
        'name': 'str',
        'metadata': 'IoArgoprojWorkflowV1alpha1Metadata',
        'container': 'V1Container',
        'dag': 'IoArgoprojWorkflowV1alpha1DAGTemplate',
    }
    attribute_map = {
        'name': 'name',
        'metadata': 'metadata',
        'container': 'container',
        'dag': 'dag',
    }

    name: str
    metadata: Optional[IoArgoprojWorkflowV1alpha1Metadata]
    container: Optional[kubernetes.client.V1Container]
    dag: Optional[IoArgoprojWorkflowV1alpha1DAGTemplate]


class IoArgoprojWorkflowV1alpha1WorkflowSpec(ArgoModel):
    openapi_types = {
        'entrypoint': 'str',
        'templates': 'list[IoArgoprojWorkflowV1alpha1Template]',
        'node_selector': 'dict(str, str)',
        'service_account_name': 'str',
        'image_pull_secrets': 'list[V1LocalObjectReference]',
        'tolerations': 'list[V1Toleration]',
        'volume_claim_templates': 'list[V1PersistentVolumeClaim]',
        'active_deadline_seconds': 'int',
    }
    attribute_map = {
        'entrypoint': 'entrypoint',
        'templates': 'templates',
        'node_selector': 'nodeSelector',
        'service_account_name': 'serviceAccountName',
        'image_pull_secrets': 'imagePullSecrets',
        'tolerations': 'tolerations',
        'volume_claim_templates': 'volumeClaimTemplates',
        'active_deadline_seconds': 'activeDeadlineSeconds',
    }

    entrypoint: str
    templates: List[IoArgoprojWorkflowV1alpha1Template]
    node_selector: Optional[Dict[str, str]]
    service_account_name: Optional[str]
    image_pull_secrets: Optional[List[kubernetes.client.V1LocalObjectReference]]
    tolerations: Optional[List[kubernetes.client.V1Toleration]]
    volume_claim_templates: Optional[List[kubernetes.client.V1PersistentVolumeClaim]]
    active_deadline_seconds: Optional[int]


class IoArgoprojWorkflowV1alpha1Workflow(ArgoModel):
    openapi_types = {
        'api_version': 'str',
        'kind': 'str',
        'metadata': 'V1ObjectMeta',
        'spec': 'IoArgoprojWorkflowV1alpha1WorkflowSpec',
    }
    attribute_map = {
        'api_version': 'apiVersion',
        'kind': 'kind',
        'metadata': 'metadata',
        'spec': 'spec',
    }

    api_version: str
    kind: str
    metadata: kubernetes.client.V1ObjectMeta
    spec: IoArgoprojWorkflowV1alpha1WorkflowSpec
