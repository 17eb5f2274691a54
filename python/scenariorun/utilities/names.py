# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import re

KUBERNETES_RESOURCE_NAME_MAX_LENGTH = 63

_kubernetes_unsafe = re.compile(r'[/:_.]')


def sanitize_for_kubernetes(name: str, max_length: int = KUBERNETES_RESOURCE_NAME_MAX_LENGTH) -> str:
    """Turns @name into something kubernetes accepts as a resource name (or generateName prefix)

    Replaces the characters "/", ":", "_" and "." with "-", lowercases the result and keeps the
    *last* @max_length characters so that the distinguishing suffix of the name survives.
    """
    name = _kubernetes_unsafe.sub('-', name).lower()
    return name[-max_length:]


def sanitize_for_azure_storage(name: str) -> str:
    """Azure blob/container paths are case-insensitive, the platform stores them in lowercase"""
    return name.lower()
