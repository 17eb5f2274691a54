# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Optional

from scenariorun.compiler.bindings import ParameterSource

NODE_LABEL_DEFAULT = "basic"
NODE_LABEL_SUFFIX = "pool"


def resolve_node_label(compute_size: Optional[str]) -> Optional[str]:
    """Maps the computeSize of a RunTemplate to the name of a node pool

    - None (or empty) means no preference, the workflow engine places the pods
    - %NONE% asks for the basic node pool
    - any other name X maps to Xpool, a trailing "pool" in X is not repeated
    """
    if not compute_size:
        return None

    if ParameterSource.classify(compute_size) == ParameterSource.NoneValue:
        return f"{NODE_LABEL_DEFAULT}{NODE_LABEL_SUFFIX}"

    if compute_size.endswith(NODE_LABEL_SUFFIX):
        compute_size = compute_size[:-len(NODE_LABEL_SUFFIX)]
    return f"{compute_size}{NODE_LABEL_SUFFIX}"
