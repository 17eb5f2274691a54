# Copyright IBM Inc. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
