# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from enum import IntEnum


class ScenarioRunExitCodes(IntEnum):
    CONFIGURATION_ERROR = 1
    INPUT_ERROR = 2
    IO_ERROR = 3
    INVARIANT_ERROR = 4
