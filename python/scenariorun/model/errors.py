# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Module containing exception definitions'''
from __future__ import annotations

from typing import List, Optional


class ScenarioRunException(Exception):

    def __repr__(self):
        return '%s(%s)' % (type(self), self.__str__())


class ScenarioRunExceptionWithMessageError(ScenarioRunException):
    def __init__(self, message: str):
        self.message = message

    def __str__(self):
        return self.message


class EnhancedException(ScenarioRunException):

    def __init__(self, desc, underlyingError):

        self.underlyingError = underlyingError

        super(EnhancedException, self).__init__(desc)

    def underlyingErrors(self):

        underlyingErrors = [self.underlyingError]
        if self.underlyingError is not None and isinstance(self.underlyingError, EnhancedException):
            underlyingErrors.extend(self.underlyingError.underlyingErrors())

        return underlyingErrors


# Configuration errors: the inputs handed to the compiler contradict each other or the platform settings

class ConfigurationError(ScenarioRunExceptionWithMessageError, ValueError):
    pass


class UnknownRunTemplateError(ConfigurationError):
    def __init__(self, run_template_id: str, solution_id: Optional[str]):
        self.run_template_id = run_template_id
        self.solution_id = solution_id

        super(UnknownRunTemplateError, self).__init__(
            f"runTemplateId {run_template_id} not found in Solution {solution_id}")


class UnknownDatasetError(ConfigurationError):
    def __init__(self, dataset_id: str):
        self.dataset_id = dataset_id

        super(UnknownDatasetError, self).__init__(f"Dataset {dataset_id} not found in Datasets")


class UnknownConnectorError(ConfigurationError):
    def __init__(self, connector_id: Optional[str], dataset_id: Optional[str] = None):
        self.connector_id = connector_id
        self.dataset_id = dataset_id

        msg = f"Connector id {connector_id} not found in connectors list"
        if dataset_id:
            msg += f" (referenced by Dataset {dataset_id})"
        super(UnknownConnectorError, self).__init__(msg)


class ConnectorMismatchError(ConfigurationError):
    def __init__(self, dataset_connector_id: Optional[str], connector_id: Optional[str]):
        self.dataset_connector_id = dataset_connector_id
        self.connector_id = connector_id

        super(ConnectorMismatchError, self).__init__(
            f"Dataset connector id {dataset_connector_id} and Connector id {connector_id} do not match")


class UnknownParameterError(ConfigurationError):
    def __init__(self, parameter_id: str, solution_id: Optional[str]):
        self.parameter_id = parameter_id
        self.solution_id = solution_id

        super(UnknownParameterError, self).__init__(
            f"Parameter {parameter_id} not found in Solution {solution_id}")


class ConflictingAuthenticationError(ConfigurationError):
    def __init__(self):
        super(ConflictingAuthenticationError, self).__init__(
            "Don't know which authentication mechanism to use to connect against Azure services. "
            "Both azureManagedIdentity and azureAuthenticationWithCustomerAppRegistration cannot be set to true")


class MissingConfigurationError(ConfigurationError):
    def __init__(self, property_path: str):
        self.property_path = property_path

        super(MissingConfigurationError, self).__init__(f"Missing configuration property: {property_path}")


# Client errors: the scenario submitted by the user is malformed

class ClientError(ScenarioRunExceptionWithMessageError):
    pass


class MalformedDatasetIdListError(ClientError):
    def __init__(self, value: str, reason: str = "must start with [ and end with ]"):
        self.value = value
        self.reason = reason

        super(MalformedDatasetIdListError, self).__init__(f"Malformed dataset id list, {reason}: {value}")


# Invariant violations: the compiler produced an inconsistent graph

class InvalidDependencyError(ScenarioRunExceptionWithMessageError):
    def __init__(self, container_name: str, dependencies: List[str], reason: str):
        self.container_name = container_name
        self.dependencies = list(dependencies)
        self.reason = reason

        super(InvalidDependencyError, self).__init__(
            f"Container {container_name} has invalid dependencies {self.dependencies}: {reason}")
