# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import numpy as np
import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.criteria.criterion import Criterion
from toop_engine_switch_optimizer.criteria.flow_criteria import (
    ConsumerVoltageLimitsConstraint,
    FlowComputationConstraint,
    LineCapacityCriterion,
    LineVoltageLimitsConstraint,
    ProviderCapacityConstraint,
    TotalLossObjective,
)
from toop_engine_switch_optimizer.criteria.topology_criteria import ConfigChangeCost, TransformerModesConstraint
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider

# Two feeders with tie switches. G1 is overloaded and l1 exceeds its IMax until load moves to G2.
FEEDER = [
    "G1[generatorVoltage=10000; generationCapacity=(4000,4000)] -- l1[r=1; iMax=0.4] -- A[consumption=(1000,100)]",
    "A -- s6[closed; r=0.5; switchingCost=1] -- B[consumption=(2000,200)]",
    "B -- s1[open; r=0.5; switchingCost=1] -- C[consumption=(1500,100)] -- l3[r=1] -- G2[generatorVoltage=10000]",
    "A -- s2[closed; r=0.5; switchingCost=2] -- D[consumption=(500,50)] -- s3[open; r=0.5; switchingCost=2] -- C",
    "B -- s4[closed; r=0.5; vMax=20000] -- E[consumption=(800,0); vMinV=9999] -- s5[open; r=0.5] -- D",
]


@pytest.fixture
def feeder_builder() -> NetworkBuilder:
    return NetworkBuilder.create(*FEEDER)


@pytest.fixture
def flow_provider() -> FlowProvider:
    return FlowProvider()


@pytest.fixture
def two_period_problem(feeder_builder: NetworkBuilder) -> SwitchingProblem:
    return SwitchingProblem(
        feeder_builder.repeated_period_data(2), "feeder", start_configuration=feeder_builder.configuration
    )


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)


@pytest.fixture
def all_criteria(flow_provider: FlowProvider) -> list[Criterion]:
    """Every criterion, for tests that compare incremental and absolute evaluation"""
    return [
        TotalLossObjective(flow_provider),
        LineCapacityCriterion(flow_provider),
        LineCapacityCriterion(flow_provider, 0.5),
        ConsumerVoltageLimitsConstraint(flow_provider),
        LineVoltageLimitsConstraint(flow_provider),
        ProviderCapacityConstraint(flow_provider),
        FlowComputationConstraint(flow_provider),
        ConfigChangeCost(),
        TransformerModesConstraint(),
    ]
