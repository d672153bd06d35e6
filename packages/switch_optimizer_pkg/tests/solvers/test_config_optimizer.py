# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import numpy as np
import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.criteria.criteria_set import default_criteria_set
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import AlgorithmType, OptimizerParameters
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider
from toop_engine_switch_optimizer.solvers.config_optimizer import ConfigOptimizer, ObjectiveComponentSchema
from toop_engine_switch_optimizer.solvers.feasible_solution_constructor import FeasibleSolutionConstructor


def test_constructor_repairs_the_feeder(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    criteria = default_criteria_set(flow_provider)
    assert not criteria.is_feasible(solution)

    assert FeasibleSolutionConstructor(rng=np.random.default_rng(0)).construct(solution, criteria)
    assert criteria.is_feasible(solution)
    assert solution.period_solution(solution.problem.periods[0]).is_radial


def test_constructor_makes_all_closed_solutions_radial(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    problem = feeder_builder.single_period_problem
    solution = SwitchingSolution(problem)
    assert not solution.period_solution(problem.periods[0]).is_radial

    FeasibleSolutionConstructor().construct(solution, default_criteria_set(flow_provider))
    assert solution.period_solution(problem.periods[0]).allows_radial_flow()


@pytest.mark.parametrize("algorithm", [AlgorithmType.DESCENT, AlgorithmType.PARALLEL_DESCENT])
@pytest.mark.parametrize("aggregates", [True, False])
def test_optimize_the_feeder(two_period_problem: SwitchingProblem, algorithm: AlgorithmType, aggregates: bool) -> None:
    parameters = OptimizerParameters(algorithm=algorithm, aggregates=aggregates, max_workers=2, minimum_parallel_moves=2)
    optimizer = ConfigOptimizer(parameters)

    result = optimizer.optimize(two_period_problem)

    assert result.is_feasible
    assert result.unsatisfied_constraints == []
    assert result.solution.problem is two_period_problem
    assert all(period_solution.is_radial for period_solution in result.solution.single_period_solutions)
    assert result.objective_value <= result.start_objective_value + 1e-9 * abs(result.start_objective_value)
    assert result.iterations > 0

    summary = result.to_dict()
    assert set(summary["switches"]) == {period.id for period in two_period_problem.periods}
    assert set(summary["switches"]["0"]) == {line.name for line in two_period_problem.network.switchable_lines}

    table = result.component_table()
    ObjectiveComponentSchema.validate(table)
    assert len(table) == 4
    assert table["weighted_value"].sum() == pytest.approx(result.objective_value, rel=1e-9)


def test_optimize_on_aggregated_network() -> None:
    builder = NetworkBuilder.create(
        "G1[generatorVoltage=10000] -- l1[r=1] -o- l2[r=2] -- A[consumption=(500,0)] -- s1[closed] -- "
        "B[consumption=(500,0)]",
        "B -- s2[closed] -- C[consumption=(500,0)] -- s3[open] -- D[consumption=(500,0)]",
        "D -- l3[r=1] -o- l4[r=1] -- G2[generatorVoltage=10000]",
    )
    problem = SwitchingProblem.single_period(
        builder.network, builder.demands, start_configuration=builder.configuration
    )
    flow_provider = FlowProvider()

    result = ConfigOptimizer(OptimizerParameters(algorithm=AlgorithmType.DESCENT), flow_provider).optimize(problem)

    period = problem.periods[0]
    flow = result.solution.flow(period, flow_provider)
    assert result.is_feasible
    assert result.solution.network is builder.network
    assert flow.current(builder.line("l1")) == pytest.approx(flow.current(builder.line("l2")))
    # Two consumers on each side is the best split
    assert result.solution.period_solution(period).is_open(builder.line("s2"))


def test_start_solution_is_used(feeder_builder: NetworkBuilder) -> None:
    problem = feeder_builder.single_period_problem
    start = SwitchingSolution(problem)
    configuration = NetworkConfiguration.all_closed(feeder_builder.network)
    configuration.make_radial()
    for line in feeder_builder.network.switchable_lines:
        start.set_switch(problem.periods[0], line, configuration.is_open(line))

    result = ConfigOptimizer(OptimizerParameters(algorithm=AlgorithmType.DESCENT, aggregates=False)).optimize(
        problem, start_solution=start
    )
    assert result.solution.period_solution(problem.periods[0]).is_radial
    assert result.objective_value <= result.start_objective_value + 1e-9 * abs(result.start_objective_value)


def test_stop_before_start_is_harmless() -> None:
    optimizer = ConfigOptimizer()
    optimizer.stop()
    assert optimizer.stop_criterion is None
