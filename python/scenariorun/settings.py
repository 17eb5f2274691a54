# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import enum
import json
import threading

import pydantic
from typing import Any
from typing import Optional
from typing import Dict
from typing import List
import os

import yaml

import scenariorun.model.errors
from pydantic import Field, ConfigDict


class SettingsModel(pydantic.BaseModel):
    model_config = ConfigDict(extra="forbid")


class Api(SettingsModel):
    version: Optional[str] = None
    baseUrl: str = Field(..., description="URL that containers use to call back the platform API")
    basePath: Optional[str] = None


class IdentityProvider(SettingsModel):
    code: str = Field("azure", description="Identity provider code, e.g. azure or okta")
    authorizationUrl: Optional[str] = None
    tokenUrl: Optional[str] = None
    defaultScopes: Dict[str, str] = {}
    containerScopes: Dict[str, str] = Field(
        {}, description="Scopes that containers request, only the keys are forwarded to the containers")
    serverBaseUrl: Optional[str] = None


class Okta(SettingsModel):
    clientId: str
    clientSecret: str
    issuer: str
    audience: Optional[str] = None


class AzureCredentialsCore(SettingsModel):
    tenantId: str
    clientId: str
    clientSecret: str
    aadPodIdBinding: Optional[str] = None


class AzureCredentialsCustomer(SettingsModel):
    tenantId: Optional[str] = None
    clientId: Optional[str] = None
    clientSecret: Optional[str] = None


class AzureCredentials(SettingsModel):
    core: AzureCredentialsCore
    customer: Optional[AzureCredentialsCustomer] = None


class AzureStorage(SettingsModel):
    connectionString: str = ""
    baseUri: Optional[str] = None
    resourceUri: Optional[str] = None


class ContainerRegistries(SettingsModel):
    core: str = ""
    solutions: str = ""


class EventBusAuthenticationStrategy(str, enum.Enum):
    TenantClientCredentials = "TENANT_CLIENT_CREDENTIALS"
    SharedAccessPolicy = "SHARED_ACCESS_POLICY"


class SharedAccessPolicyCredentials(SettingsModel):
    name: Optional[str] = None
    key: Optional[str] = None


class SharedAccessPolicyDetails(SettingsModel):
    namespace: Optional[SharedAccessPolicyCredentials] = None


class EventBusAuthentication(SettingsModel):
    strategy: EventBusAuthenticationStrategy = EventBusAuthenticationStrategy.TenantClientCredentials
    sharedAccessPolicy: Optional[SharedAccessPolicyDetails] = None


class EventBus(SettingsModel):
    baseUri: str
    authentication: EventBusAuthentication = EventBusAuthentication()


class DataWarehouseClusterOptions(SettingsModel):
    ingestionUri: str = ""


class DataWarehouseCluster(SettingsModel):
    baseUri: str = ""
    options: Optional[DataWarehouseClusterOptions] = None


class Azure(SettingsModel):
    credentials: AzureCredentials
    storage: AzureStorage = AzureStorage()
    containerRegistries: ContainerRegistries = ContainerRegistries()
    eventBus: Optional[EventBus] = None
    dataWarehouseCluster: Optional[DataWarehouseCluster] = None
    appIdUri: str = ""


class TwinCache(SettingsModel):
    host: str
    port: str = "6379"
    username: str = "default"
    password: str

    @pydantic.field_validator('port', mode='before')
    @classmethod
    def port_to_str(cls, value: Any) -> Any:
        """YAML documents usually spell the port as an integer, the containers receive it as a string"""
        if isinstance(value, int):
            return str(value)
        return value


class Images(SettingsModel):
    scenarioFetchParameters: str = Field(..., description="Repository:tag of the scenario parameters fetch image")
    sendDataWarehouse: str = Field(..., description="Repository:tag of the data warehouse upload image")


class ArgoWorkflows(SettingsModel):
    namespace: Optional[str] = None
    nodePoolLabel: str = Field("agentpool", description="Node label key that holds the name of the node pool")
    serviceAccountName: Optional[str] = None
    storageClass: Optional[str] = None
    accessModes: List[str] = []
    requests: Dict[str, str] = {}


class Argo(SettingsModel):
    baseUri: Optional[str] = None
    imagePullPolicy: str = "IfNotPresent"
    imagePullSecrets: Optional[List[str]] = None
    workflows: ArgoWorkflows = ArgoWorkflows()


class PlatformSettings(SettingsModel):
    """The csm.platform section of the platform configuration

    Keys that the compiler does not use (vendor, idGenerator, etc) are ignored so that a complete platform
    configuration document can be loaded as is.

    Use the load_platform_settings() method to parse and validate settings (method raises errors that
    include information about offending environment variables)
    """
    model_config = ConfigDict(extra="ignore")

    summary: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    api: Api
    identityProvider: Optional[IdentityProvider] = None
    okta: Optional[Okta] = None
    azure: Optional[Azure] = None
    twincache: Optional[TwinCache] = None
    images: Images
    argo: Argo = Argo()


def _find_field_name(model: type, lowercase_name: str) -> Optional[str]:
    for name in model.model_fields:
        if name.lower() == lowercase_name:
            return name
    return None


def _field_model(model: type, name: str) -> Optional[type]:
    """Returns the pydantic model class of the field @name (unwrapping Optional[]) or None"""
    annotation = model.model_fields[name].annotation
    candidates = getattr(annotation, '__args__', None) or (annotation,)
    for candidate in candidates:
        if isinstance(candidate, type) and issubclass(candidate, pydantic.BaseModel):
            return candidate
    return None


def environment_overrides(
        environ: Dict[str, str],
        env_prefix: str = "CSM_PLATFORM_",
) -> Dict[str, Any]:
    """Converts ${env_prefix}${PATH} environment variables into a nested dictionary of settings

    The path segments are separated by a double underscore and are matched against the field names
    of PlatformSettings in a case-insensitive way e.g. CSM_PLATFORM_ARGO__WORKFLOWS__SERVICEACCOUNTNAME.
    Variables that do not map to a field are ignored.

    Returns:
        A nested dictionary whose leaves are tuples (environment variable name, value)

    Raises:
        scenariorun.model.errors.EnhancedException: If one variable sets a field and another variable sets
            a field nested under it e.g. CSM_PLATFORM_ARGO and CSM_PLATFORM_ARGO__IMAGEPULLPOLICY
    """
    overrides: Dict[str, Any] = {}
    # VV: maps the path of a nested dictionary to the first environment variable which populated it
    nested_owners: Dict[tuple, str] = {}

    for env_var_name in sorted(environ):
        if not env_var_name.startswith(env_prefix):
            continue
        segments = env_var_name[len(env_prefix):].lower().split('__')
        model = PlatformSettings
        current = overrides
        path = ()
        for idx, segment in enumerate(segments):
            name = _find_field_name(model, segment) if model is not None else None
            if name is None:
                break
            path = path + (name,)
            existing = current.get(name)
            if idx == len(segments) - 1:
                if isinstance(existing, dict):
                    raise _conflicting_overrides(nested_owners[path], env_var_name)
                current[name] = (env_var_name, environ[env_var_name])
            else:
                if isinstance(existing, tuple):
                    raise _conflicting_overrides(existing[0], env_var_name)
                model = _field_model(model, name)
                nested_owners.setdefault(path, env_var_name)
                current = current.setdefault(name, {})
    return overrides


def _conflicting_overrides(first: str, second: str) -> scenariorun.model.errors.EnhancedException:
    return scenariorun.model.errors.EnhancedException(
        f"The environment variables {first} and {second} override the same platform setting, "
        f"one of them sets a field which contains the field that the other one sets",
        underlyingError=ValueError(f"Conflicting environment variables {first} and {second}"))


def _merge_overrides(
        settings: Dict[str, Any],
        overrides: Dict[str, Any],
        location: tuple,
        env_locations: Dict[tuple, str],
):
    for name, value in overrides.items():
        if isinstance(value, dict):
            if not isinstance(settings.get(name), dict):
                settings[name] = {}
            _merge_overrides(settings[name], value, location + (name,), env_locations)
        else:
            env_var_name, raw = value
            try:
                # VV: values such as "[ReadWriteOnce]" or "42" are decoded, everything else stays a string
                decoded = yaml.safe_load(raw)
            except yaml.YAMLError:
                decoded = raw
            settings[name] = decoded if isinstance(decoded, (list, dict)) else raw
            env_locations[location + (name,)] = env_var_name


# VV: use load_platform_settings() to parse the platform configuration and cache it under _PlatformSettingsCache
_PlatformSettingsCache: PlatformSettings | None = None
_mtx = threading.Lock()


def load_platform_settings(
        path: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
        env_prefix: str = "CSM_PLATFORM_",
        reuse_if_existing: bool = True,
) -> PlatformSettings:
    """Loads platform settings from a YAML file (or a dictionary) plus Environment Variables and Caches them

    Note::

        The return value of this method is a reference to the pydantic BaseModel containing the platform
        Settings

    Arguments:
        path: Path to a YAML file with the settings. The file may contain the settings at its root, or under
            csm.platform (i.e. the layout of the platform's application configuration)
        data: A dictionary with the settings. Used when @path is None
        environ: A dictionary containing environment variables and their values. If None defaults to os.environ.
            Environment variables override the values in @path/@data.
        env_prefix: The prefix for the environment variable names. The default is CSM_PLATFORM_
        reuse_if_existing: If True (default) and the settings have already been loaded before, the method will return
            the existing Settings (i.e. _PlatformSettingsCache) and ignore the remaining arguments

    Returns: A PlatformSettings object, it also sets the global _PlatformSettingsCache variable
    Raises:
        scenariorun.model.errors.EnhancedException:
            If the settings are invalid. The underlyingError is a modified pydantic.ValidationError that
            encapsulates the name and value of the invalid environment variables.
    """
    global _PlatformSettingsCache

    if _PlatformSettingsCache is not None and reuse_if_existing:
        return _PlatformSettingsCache

    with _mtx:
        if _PlatformSettingsCache is not None and reuse_if_existing:
            return _PlatformSettingsCache

        _PlatformSettingsCache = None
        environ = environ if environ is not None else os.environ

        if path is not None:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)

        settings = json.loads(json.dumps(data or {}))
        if isinstance(settings.get('csm'), dict) and isinstance(settings['csm'].get('platform'), dict):
            settings = settings['csm']['platform']

        env_locations: Dict[tuple, str] = {}
        _merge_overrides(settings, environment_overrides(environ, env_prefix), (), env_locations)

        try:
            _PlatformSettingsCache = PlatformSettings(**settings)
            return _PlatformSettingsCache
        except pydantic.ValidationError as e:
            # VV: Update the Exception in-place to reflect which environment variables were invalid
            errors = e.errors()
            for problem in errors:
                loc = tuple(problem.get('loc', ()))
                for prefix_len in range(len(loc), 0, -1):
                    env_var_name = env_locations.get(loc[:prefix_len])
                    if env_var_name is not None:
                        problem['loc'] = (f'{env_var_name}="{environ[env_var_name]}"',) + loc[prefix_len:]
                        break
            raise scenariorun.model.errors.EnhancedException(
                f"The platform settings are invalid. The errors are {json.dumps(errors, indent=2, default=str)}",
                underlyingError=e) from e
