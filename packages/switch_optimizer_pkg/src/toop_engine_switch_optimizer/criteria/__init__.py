# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Objectives and constraints with absolute and incremental evaluation."""

from .criteria_set import CriteriaSet, default_criteria_set
from .criterion import Criterion, FlowDependentCriterion
from .flow_criteria import (
    ConsumerVoltageLimitsConstraint,
    FlowComputationConstraint,
    LineCapacityCriterion,
    LineVoltageLimitsConstraint,
    ProviderCapacityConstraint,
    TotalLossObjective,
)
from .topology_criteria import ConfigChangeCost, TransformerModesConstraint

__all__ = [
    "ConfigChangeCost",
    "ConsumerVoltageLimitsConstraint",
    "CriteriaSet",
    "Criterion",
    "FlowComputationConstraint",
    "FlowDependentCriterion",
    "LineCapacityCriterion",
    "LineVoltageLimitsConstraint",
    "ProviderCapacityConstraint",
    "TotalLossObjective",
    "TransformerModesConstraint",
    "default_criteria_set",
]
