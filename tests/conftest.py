# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import pytest

import scenariorun.settings
from scenariorun.compiler.pipeline import PipelineCompiler

from . import utils


@pytest.fixture(autouse=True)
def clear_platform_settings_cache():
    scenariorun.settings._PlatformSettingsCache = None
    yield
    scenariorun.settings._PlatformSettingsCache = None


@pytest.fixture()
def settings() -> scenariorun.settings.PlatformSettings:
    return utils.platform_settings()


@pytest.fixture()
def compiler(settings) -> PipelineCompiler:
    return PipelineCompiler(settings)


@pytest.fixture()
def organization():
    return utils.organization()


@pytest.fixture()
def workspace():
    return utils.workspace()


@pytest.fixture()
def connector():
    return utils.connector()


@pytest.fixture()
def dataset():
    return utils.dataset()
