# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

'''Environment variables that every container of a scenario run receives

The functions in this module are pure: they read the platform settings and the identifiers of the run
and return new dictionaries. Probing the event bus is delegated to a callable supplied by the caller.
'''

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

import scenariorun.model.errors
from scenariorun.model.domain import Organization, Workspace
from scenariorun.settings import EventBus, EventBusAuthenticationStrategy, PlatformSettings

IDENTITY_PROVIDER = "IDENTITY_PROVIDER"
AZURE_TENANT_ID_VAR = "AZURE_TENANT_ID"
AZURE_CLIENT_ID_VAR = "AZURE_CLIENT_ID"
AZURE_CLIENT_SECRET_VAR = "AZURE_CLIENT_SECRET"
CSM_AZURE_MANAGED_IDENTITY_VAR = "CSM_AZURE_MANAGED_IDENTITY"
OKTA_CLIENT_ID = "OKTA_CLIENT_ID"
OKTA_CLIENT_SECRET = "OKTA_CLIENT_SECRET"
OKTA_CLIENT_ISSUER = "OKTA_CLIENT_ISSUER"
TWIN_CACHE_HOST = "TWIN_CACHE_HOST"
TWIN_CACHE_PORT = "TWIN_CACHE_PORT"
TWIN_CACHE_PASSWORD = "TWIN_CACHE_PASSWORD"
TWIN_CACHE_USERNAME = "TWIN_CACHE_USERNAME"
CSM_SIMULATION_ID = "CSM_SIMULATION_ID"
API_BASE_URL_VAR = "CSM_API_URL"
API_BASE_SCOPE_VAR = "CSM_API_SCOPE"
API_SCOPE_SUFFIX = "/.default"
DATASET_PATH_VAR = "CSM_DATASET_ABSOLUTE_PATH"
DATASET_PATH = "/mnt/scenariorun-data"
PARAMETERS_PATH_VAR = "CSM_PARAMETERS_ABSOLUTE_PATH"
PARAMETERS_PATH = "/mnt/scenariorun-parameters"
AZURE_DATA_EXPLORER_RESOURCE_URI_VAR = "AZURE_DATA_EXPLORER_RESOURCE_URI"
AZURE_DATA_EXPLORER_RESOURCE_INGEST_URI_VAR = "AZURE_DATA_EXPLORER_RESOURCE_INGEST_URI"
AZURE_DATA_EXPLORER_DATABASE_NAME = "AZURE_DATA_EXPLORER_DATABASE_NAME"
PARAMETERS_ORGANIZATION_VAR = "CSM_ORGANIZATION_ID"
PARAMETERS_WORKSPACE_VAR = "CSM_WORKSPACE_ID"
PARAMETERS_SCENARIO_VAR = "CSM_SCENARIO_ID"

EVENT_HUB_MEASURES_VAR = "CSM_PROBES_MEASURES_TOPIC"
EVENT_HUB_CONTROL_PLANE_VAR = "CSM_CONTROL_PLANE_TOPIC"
EVENT_HUB_SCENARIO_RUN_NAME = "scenariorun"
EVENT_HUB_PROBES_MEASURES_NAME = "probesmeasures"
AZURE_EVENT_HUB_SHARED_ACCESS_POLICY_ENV_VAR = "AZURE_EVENT_HUB_SHARED_ACCESS_POLICY"
AZURE_EVENT_HUB_SHARED_ACCESS_KEY_ENV_VAR = "AZURE_EVENT_HUB_SHARED_ACCESS_KEY"
CSM_AMQPCONSUMER_USER_ENV_VAR = "CSM_AMQPCONSUMER_USER"
CSM_AMQPCONSUMER_PASSWORD_ENV_VAR = "CSM_AMQPCONSUMER_PASSWORD"
CSM_CONTROL_PLANE_USER_ENV_VAR = "CSM_CONTROL_PLANE_USER"
CSM_CONTROL_PLANE_PASSWORD_ENV_VAR = "CSM_CONTROL_PLANE_PASSWORD"

SHARED_ACCESS_POLICY_PROPERTY = "csm.platform.azure.eventBus.authentication.sharedAccessPolicy.namespace"

# VV: Signature is (namespace host name, event hub name) -> whether the event hub exists
EventHubExistsChecker = Callable[[str, str], bool]

logger = logging.getLogger('environment')


def get_container_scopes(settings: PlatformSettings) -> str:
    """Returns the scopes that containers use to call the platform API, joined by ","
    """
    app_id_uri = settings.azure.appIdUri if settings.azure is not None else ""

    if settings.identityProvider is not None:
        container_scopes = ",".join(settings.identityProvider.containerScopes.keys())
        if not container_scopes.strip() and settings.identityProvider.code == "azure":
            return f"{app_id_uri}{API_SCOPE_SUFFIX}"
        return container_scopes
    return f"{app_id_uri}{API_SCOPE_SUFFIX}"


def _require(value: Optional[str], property_path: str) -> str:
    if value is None:
        raise scenariorun.model.errors.MissingConfigurationError(property_path)
    return value


def get_identity_env_vars(
        settings: PlatformSettings,
        azure_managed_identity: Optional[bool] = None,
        azure_authentication_with_customer_app_registration: Optional[bool] = None,
) -> Dict[str, str]:
    if azure_managed_identity and azure_authentication_with_customer_app_registration:
        raise scenariorun.model.errors.ConflictingAuthenticationError()

    if azure_managed_identity:
        return {CSM_AZURE_MANAGED_IDENTITY_VAR: "true"}

    if settings.azure is None:
        raise scenariorun.model.errors.MissingConfigurationError("csm.platform.azure.credentials")

    if azure_authentication_with_customer_app_registration:
        customer = settings.azure.credentials.customer
        if customer is None:
            raise scenariorun.model.errors.MissingConfigurationError("csm.platform.azure.credentials.customer")
        prefix = "csm.platform.azure.credentials.customer"
        return {
            AZURE_TENANT_ID_VAR: _require(customer.tenantId, f"{prefix}.tenantId"),
            AZURE_CLIENT_ID_VAR: _require(customer.clientId, f"{prefix}.clientId"),
            AZURE_CLIENT_SECRET_VAR: _require(customer.clientSecret, f"{prefix}.clientSecret"),
        }

    core = settings.azure.credentials.core
    return {
        AZURE_TENANT_ID_VAR: core.tenantId,
        AZURE_CLIENT_ID_VAR: core.clientId,
        AZURE_CLIENT_SECRET_VAR: core.clientSecret,
    }


def get_common_env_vars(
        settings: PlatformSettings,
        csm_simulation_id: str,
        organization_id: str,
        workspace_id: str,
        scenario_id: str,
        workspace_key: str,
        azure_managed_identity: Optional[bool] = None,
        azure_authentication_with_customer_app_registration: Optional[bool] = None,
) -> Dict[str, str]:
    """Builds the environment variables that all containers of a scenario run share

    Arguments:
        settings: The platform settings
        csm_simulation_id: Correlation id of the run
        organization_id: Id of the Organization
        workspace_id: Id of the Workspace
        scenario_id: Id of the Scenario
        workspace_key: Key of the Workspace, used to build the data warehouse database name
        azure_managed_identity: Whether the container authenticates with a managed identity
        azure_authentication_with_customer_app_registration: Whether the container uses the customer
            app registration instead of the platform one

    Returns:
        A new dictionary, callers are free to update it

    Raises:
        scenariorun.model.errors.ConflictingAuthenticationError: If both authentication flags are set
        scenariorun.model.errors.MissingConfigurationError: If the selected credentials are not configured
    """
    env_vars = get_identity_env_vars(
        settings, azure_managed_identity, azure_authentication_with_customer_app_registration)

    data_warehouse = settings.azure.dataWarehouseCluster if settings.azure is not None else None
    ingestion_uri = ""
    if data_warehouse is not None and data_warehouse.options is not None:
        ingestion_uri = data_warehouse.options.ingestionUri

    env_vars.update({
        IDENTITY_PROVIDER: settings.identityProvider.code if settings.identityProvider is not None else "azure",
        CSM_SIMULATION_ID: csm_simulation_id,
        API_BASE_URL_VAR: settings.api.baseUrl,
        API_BASE_SCOPE_VAR: get_container_scopes(settings),
        DATASET_PATH_VAR: DATASET_PATH,
        PARAMETERS_PATH_VAR: PARAMETERS_PATH,
        AZURE_DATA_EXPLORER_RESOURCE_URI_VAR: data_warehouse.baseUri if data_warehouse is not None else "",
        AZURE_DATA_EXPLORER_RESOURCE_INGEST_URI_VAR: ingestion_uri,
        AZURE_DATA_EXPLORER_DATABASE_NAME: f"{organization_id}-{workspace_key}",
        PARAMETERS_ORGANIZATION_VAR: organization_id,
        PARAMETERS_WORKSPACE_VAR: workspace_id,
        PARAMETERS_SCENARIO_VAR: scenario_id,
    })

    if settings.identityProvider is not None and settings.identityProvider.code == "okta":
        if settings.okta is None:
            raise scenariorun.model.errors.MissingConfigurationError("csm.platform.okta")
        env_vars.update({
            OKTA_CLIENT_ID: settings.okta.clientId,
            OKTA_CLIENT_SECRET: settings.okta.clientSecret,
            OKTA_CLIENT_ISSUER: settings.okta.issuer,
        })

    if settings.twincache is not None:
        env_vars.update({
            TWIN_CACHE_HOST: settings.twincache.host,
            TWIN_CACHE_PORT: settings.twincache.port,
            TWIN_CACHE_PASSWORD: settings.twincache.password,
            TWIN_CACHE_USERNAME: settings.twincache.username,
        })

    return env_vars


def _shared_access_policy_credentials(event_bus: EventBus):
    policy = event_bus.authentication.sharedAccessPolicy
    namespace = policy.namespace if policy is not None else None
    name = namespace.name if namespace is not None else None
    key = namespace.key if namespace is not None else None

    if name is None:
        raise scenariorun.model.errors.MissingConfigurationError(f"{SHARED_ACCESS_POLICY_PROPERTY}.name")
    if key is None:
        raise scenariorun.model.errors.MissingConfigurationError(f"{SHARED_ACCESS_POLICY_PROPERTY}.key")
    return name, key


def get_event_hub_authentication_env_vars(event_bus: EventBus) -> Dict[str, str]:
    """Returns the extra environment variables of the event bus authentication strategy

    TENANT_CLIENT_CREDENTIALS re-uses the tenant/client credentials of the common environment variables.
    SHARED_ACCESS_POLICY forwards the name and key of the shared access policy under the names that the
    AMQP consumers and the control plane expect.
    """
    if event_bus.authentication.strategy == EventBusAuthenticationStrategy.SharedAccessPolicy:
        name, key = _shared_access_policy_credentials(event_bus)
        return {
            AZURE_EVENT_HUB_SHARED_ACCESS_POLICY_ENV_VAR: name,
            AZURE_EVENT_HUB_SHARED_ACCESS_KEY_ENV_VAR: key,
            CSM_AMQPCONSUMER_USER_ENV_VAR: name,
            CSM_AMQPCONSUMER_PASSWORD_ENV_VAR: key,
            CSM_CONTROL_PLANE_USER_ENV_VAR: name,
            CSM_CONTROL_PLANE_PASSWORD_ENV_VAR: key,
        }

    logger.debug("Event bus strategy is TENANT_CLIENT_CREDENTIALS, using the tenant id, client id and "
                 "client secret of the common environment variables")
    return {}


def remove_amqp_protocol(uri: str) -> str:
    uri = uri.lower()
    if uri.startswith("amqps://"):
        return uri[len("amqps://"):]
    return uri


def get_event_hub_env_vars(
        settings: PlatformSettings,
        organization: Organization,
        workspace: Workspace,
        event_hub_exists: Optional[EventHubExistsChecker] = None,
) -> Dict[str, str]:
    """Builds the event bus environment variables of the Solution containers

    Arguments:
        settings: The platform settings, settings.azure.eventBus must be set
        organization: The Organization of the Scenario
        workspace: The Workspace of the Scenario, its useDedicatedEventHubNamespace flag selects the
            topic layout
        event_hub_exists: Optional callable that reports whether an event hub exists. The control plane
            topic is emitted only if the callable reports that the scenariorun event hub exists

    Raises:
        scenariorun.model.errors.MissingConfigurationError: If the event bus is not configured or the
            SHARED_ACCESS_POLICY strategy is missing its credentials
    """
    event_bus = settings.azure.eventBus if settings.azure is not None else None
    if event_bus is None:
        raise scenariorun.model.errors.MissingConfigurationError("csm.platform.azure.eventBus")

    # VV: the credentials are validated even when the control plane event hub does not exist
    auth_env_vars = get_event_hub_authentication_env_vars(event_bus)

    event_hub_name = f"{organization.id}-{workspace.key}".lower()
    env_vars: Dict[str, str] = {}

    if workspace.useDedicatedEventHubNamespace:
        logger.debug(f"Workspace {workspace.id} uses a dedicated event hub namespace")
        host_name = f"{event_hub_name}.servicebus.windows.net"
        base_uri = f"amqps://{host_name}"
        env_vars[EVENT_HUB_MEASURES_VAR] = f"{base_uri}/{EVENT_HUB_PROBES_MEASURES_NAME}"
        control_plane_hub = EVENT_HUB_SCENARIO_RUN_NAME
        control_plane_topic = f"{base_uri}/{EVENT_HUB_SCENARIO_RUN_NAME}"
    else:
        logger.debug(f"Workspace {workspace.id} uses the shared event hub namespace")
        host_name = remove_amqp_protocol(event_bus.baseUri)
        measures_topic = f"{event_bus.baseUri}/{event_hub_name}".lower()
        env_vars[EVENT_HUB_MEASURES_VAR] = measures_topic
        control_plane_hub = f"{event_hub_name}-{EVENT_HUB_SCENARIO_RUN_NAME}"
        control_plane_topic = f"{measures_topic}-{EVENT_HUB_SCENARIO_RUN_NAME}"

    if event_hub_exists is not None and event_hub_exists(host_name, control_plane_hub):
        logger.debug(f"Control Plane Event Hub {host_name}/{control_plane_hub} exists, the engine will send "
                     f"a summary message at the end of the simulation")
        env_vars[EVENT_HUB_CONTROL_PLANE_VAR] = control_plane_topic
    else:
        logger.debug(f"Control Plane Event Hub {host_name}/{control_plane_hub} does not exist, the engine will "
                     f"not send a summary message at the end of the simulation")

    env_vars.update(auth_env_vars)
    return env_vars
