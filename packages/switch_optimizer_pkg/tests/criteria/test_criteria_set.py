# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import math

import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.criteria.criteria_set import CriteriaSet, default_criteria_set
from toop_engine_switch_optimizer.criteria.flow_criteria import (
    UNIT_AH,
    UNIT_MWH,
    LineCapacityCriterion,
    ProviderCapacityConstraint,
    TotalLossObjective,
    voltage_penalty,
)
from toop_engine_switch_optimizer.criteria.topology_criteria import ConfigChangeCost
from toop_engine_switch_optimizer.encoding.moves import SwapSwitchStatusMove
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.exceptions import SwitchOptimizerError
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import OptimizerParameters
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider


def test_loss_is_in_mwh(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    flow = solution.flow(solution.problem.periods[0], flow_provider)

    value = TotalLossObjective(flow_provider).value(solution)
    assert value == pytest.approx(flow.total_loss() * 3600 * UNIT_MWH)
    assert value > 0


def test_line_capacity_in_ah(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    flow = solution.flow(solution.problem.periods[0], flow_provider)
    criterion = LineCapacityCriterion(flow_provider)

    l1 = feeder_builder.line("l1")
    assert set(criterion.violations(flow)) == {l1}
    assert criterion.value(solution) == pytest.approx((flow.current_magnitude(l1) - 0.4) * 3600 * UNIT_AH)
    assert not criterion.is_satisfied(solution)
    assert "l1" in criterion.reason(solution)


def test_line_capacity_threshold(flow_provider: FlowProvider) -> None:
    assert str(LineCapacityCriterion(flow_provider, 0.5)).startswith("IMax(50.0%) violation (Ah)")
    assert LineCapacityCriterion(flow_provider).name == "IMax violation (Ah)"
    with pytest.raises(ValueError):
        LineCapacityCriterion(flow_provider, 1.5)


def test_voltage_penalty() -> None:
    assert voltage_penalty(1000, 900, 1100) == 0
    assert voltage_penalty(850, 900, 1100) == 50
    assert voltage_penalty(1150, 900, 1100) == 50
    assert math.isinf(voltage_penalty(math.nan, 900, 1100))


def test_provider_capacity(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    constraint = ProviderCapacityConstraint(flow_provider)
    assert not constraint.is_satisfied(solution)
    assert constraint.value(solution) > 0

    # Moving B and E to G2 relieves G1
    move = SwapSwitchStatusMove(solution, period, feeder_builder.line("s6"), feeder_builder.line("s1"))
    assert constraint.legal_move(move)
    assert constraint.delta_value(move) == pytest.approx(-constraint.value(solution))


def test_switching_cost_counts_changes_to_neighbours(two_period_problem: SwitchingProblem) -> None:
    solution = SwitchingSolution.unchanging(two_period_problem)
    first, second = two_period_problem.periods
    network = two_period_problem.network
    criterion = ConfigChangeCost()
    assert criterion.value(solution) == 0

    # s2 and s3 have switching cost 2 each
    move = SwapSwitchStatusMove(solution, first, network.get_line("s2"), network.get_line("s3"))
    assert criterion.delta_value(move) == 8
    move.apply()
    assert criterion.value(solution) == 8

    move = SwapSwitchStatusMove(solution, second, network.get_line("s2"), network.get_line("s3"))
    assert criterion.delta_value(move) == -4


def test_criteria_set_evaluation(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    loss = TotalLossObjective(flow_provider)
    criteria = CriteriaSet(
        constraints=[ProviderCapacityConstraint(flow_provider)],
        objectives=[(loss, 2.0), (ConfigChangeCost(), 0.0)],
    )

    assert criteria.objective_value(solution) == pytest.approx(2 * loss.value(solution))
    assert not criteria.is_feasible(solution)
    assert criteria.infeasibility(solution) > 0
    assert len(criteria.unsatisfied_reasons(solution)) == 1

    relieving = SwapSwitchStatusMove(solution, period, feeder_builder.line("s6"), feeder_builder.line("s1"))
    assert criteria.evaluate(relieving) == pytest.approx(2 * loss.delta_value(relieving))
    not_relieving = SwapSwitchStatusMove(solution, period, feeder_builder.line("s4"), feeder_builder.line("s5"))
    assert criteria.evaluate(not_relieving) is None


def test_relaxed_criteria(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    criteria = default_criteria_set(flow_provider)
    relaxed = criteria.relaxed_for(solution)

    assert len(relaxed.objectives) == 1
    assert isinstance(relaxed.objectives[0][0], ProviderCapacityConstraint)
    assert relaxed.objectives[0][1] == 1.0
    assert len(relaxed.constraints) == len(criteria.constraints) - 1
    assert relaxed.is_feasible(solution)


def test_default_criteria_follow_parameters(flow_provider: FlowProvider) -> None:
    parameters = OptimizerParameters(line_capacity_threshold=0.8, switching_cost_weight=10)
    criteria = default_criteria_set(flow_provider, parameters)

    thresholds = [
        objective.threshold for objective, _ in criteria.objectives if isinstance(objective, LineCapacityCriterion)
    ]
    assert thresholds == [0.8, 0.5]
    weights = {type(objective): weight for objective, weight in criteria.objectives}
    assert weights[ConfigChangeCost] == pytest.approx(0.02)
    assert criteria.flow_provider is flow_provider


def test_mixed_flow_providers_are_rejected(flow_provider: FlowProvider) -> None:
    criteria = CriteriaSet([ProviderCapacityConstraint(flow_provider)], [(TotalLossObjective(FlowProvider()), 1.0)])
    with pytest.raises(SwitchOptimizerError):
        criteria.flow_provider

    converted = criteria.with_provider(flow_provider)
    assert converted.flow_provider is flow_provider
