# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Parameter models of the switch optimizer."""

from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import (
    AggregationOptions,
    AlgorithmType,
    DistFlowParameters,
    OptimizerParameters,
)

__all__ = [
    "AggregationOptions",
    "AlgorithmType",
    "DistFlowParameters",
    "OptimizerParameters",
]
