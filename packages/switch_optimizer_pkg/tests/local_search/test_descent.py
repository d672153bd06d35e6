# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import numpy as np
import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.criteria.criteria_set import CriteriaSet, default_criteria_set
from toop_engine_switch_optimizer.criteria.flow_criteria import (
    FlowComputationConstraint,
    LineCapacityCriterion,
    TotalLossObjective,
)
from toop_engine_switch_optimizer.criteria.topology_criteria import ConfigChangeCost, TransformerModesConstraint
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.local_search.descent import BestSolutionTracker, Descent
from toop_engine_switch_optimizer.local_search.neighborhood import all_moves, generate_for_problem
from toop_engine_switch_optimizer.local_search.parallel_descent import ParallelNeighborhoodDescent
from toop_engine_switch_optimizer.local_search.selectors import (
    RetryImprovingMoveInAdjacentPeriodsSelector,
    SequentialSelector,
)
from toop_engine_switch_optimizer.local_search.stop_criterion import StopCriterion
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider


@pytest.fixture
def criteria(flow_provider: FlowProvider) -> CriteriaSet:
    return CriteriaSet(
        constraints=[FlowComputationConstraint(flow_provider), TransformerModesConstraint()],
        objectives=[
            (TotalLossObjective(flow_provider), 1e6),
            (LineCapacityCriterion(flow_provider), 1000.0),
            (ConfigChangeCost(), 0.002),
        ],
    )


def _assert_local_optimum(solution: SwitchingSolution, criteria: CriteriaSet) -> None:
    for move in all_moves(solution):
        delta = criteria.evaluate(move)
        assert delta is None or delta >= -1e-12, f"{move} still improves by {delta}"


def test_descent_reaches_a_local_optimum(feeder_builder: NetworkBuilder, criteria: CriteriaSet) -> None:
    solution = feeder_builder.single_period_solution
    start_value = criteria.objective_value(solution)
    descent = Descent(SequentialSelector(generate_for_problem(solution.problem)))

    result = descent.optimize(solution, criteria)

    assert result is solution
    assert result.period_solution(result.problem.periods[0]).is_radial
    assert descent.statistics.start_value == pytest.approx(start_value)
    assert descent.statistics.applied_moves > 0
    assert descent.statistics.best_value < start_value
    assert descent.statistics.best_value == pytest.approx(criteria.objective_value(result), rel=1e-6)
    _assert_local_optimum(result, criteria)


def test_descent_respects_the_stop_criterion(feeder_builder: NetworkBuilder, criteria: CriteriaSet) -> None:
    solution = feeder_builder.single_period_solution
    descent = Descent(SequentialSelector(generate_for_problem(solution.problem)))

    descent.optimize(solution, criteria, StopCriterion(max_iterations=3))
    assert descent.statistics.iterations == 3


def test_setback_keeps_the_best_solution(feeder_builder: NetworkBuilder, criteria: CriteriaSet) -> None:
    solution = feeder_builder.single_period_solution
    descent = Descent(SequentialSelector(generate_for_problem(solution.problem)), acceptable_setback=1e9)

    best = descent.optimize(solution, criteria, StopCriterion(max_iterations=12))

    assert best is not solution
    assert descent.statistics.best_value <= descent.statistics.start_value
    assert descent.statistics.best_value == pytest.approx(criteria.objective_value(best), rel=1e-6)


def test_negative_setback_is_rejected(feeder_builder: NetworkBuilder) -> None:
    with pytest.raises(ValueError):
        Descent(SequentialSelector(generate_for_problem(feeder_builder.single_period_problem)), -1.0)


def test_multi_period_descent_with_retries(two_period_problem: SwitchingProblem, criteria: CriteriaSet) -> None:
    solution = SwitchingSolution.unchanging(two_period_problem)
    selector = RetryImprovingMoveInAdjacentPeriodsSelector(
        SequentialSelector(generate_for_problem(two_period_problem)), solution
    )
    descent = Descent(selector)

    result = descent.optimize(solution, criteria)

    assert all(period_solution.is_radial for period_solution in result.single_period_solutions)
    assert descent.statistics.best_value < descent.statistics.start_value
    assert descent.statistics.best_value == pytest.approx(criteria.objective_value(result), rel=1e-6)


@pytest.mark.parametrize("minimum_parallel_moves", [1, 3, 6])
def test_parallel_descent(feeder_builder: NetworkBuilder, criteria: CriteriaSet, minimum_parallel_moves: int) -> None:
    solution = feeder_builder.single_period_solution
    start_value = criteria.objective_value(solution)
    descent = ParallelNeighborhoodDescent(
        SequentialSelector(generate_for_problem(solution.problem)),
        minimum_parallel_moves=minimum_parallel_moves,
        max_workers=2,
    )

    result = descent.optimize(solution, criteria)

    assert result.period_solution(result.problem.periods[0]).is_radial
    assert descent.statistics.best_value < start_value
    assert descent.statistics.best_value == pytest.approx(criteria.objective_value(result), rel=1e-6)


def test_parallel_descent_on_several_periods(two_period_problem: SwitchingProblem, criteria: CriteriaSet) -> None:
    solution = SwitchingSolution.unchanging(two_period_problem)
    descent = ParallelNeighborhoodDescent(
        SequentialSelector(generate_for_problem(two_period_problem)), minimum_parallel_moves=4, max_workers=3
    )

    result = descent.optimize(solution, criteria, StopCriterion(max_iterations=20))

    assert all(period_solution.is_radial for period_solution in result.single_period_solutions)
    assert descent.statistics.iterations <= 20
    assert descent.statistics.best_value == pytest.approx(criteria.objective_value(result), rel=1e-6)


def test_parallel_descent_needs_workers(feeder_builder: NetworkBuilder) -> None:
    selector = SequentialSelector(generate_for_problem(feeder_builder.single_period_problem))
    with pytest.raises(ValueError):
        ParallelNeighborhoodDescent(selector, max_workers=0)


@pytest.mark.parametrize("acceptable_setback", [1.0, 1e9])
def test_descent_with_setback_ends_without_a_budget(feeder_builder: NetworkBuilder, acceptable_setback: float) -> None:
    solution = feeder_builder.single_period_solution
    criteria = default_criteria_set(FlowProvider())
    selector = SequentialSelector(generate_for_problem(solution.problem))
    descent = Descent(selector, acceptable_setback=acceptable_setback)

    best = descent.optimize(solution, criteria, StopCriterion(max_iterations=3000))

    assert descent.statistics.iterations < 3000
    assert selector.select() is None
    assert descent.statistics.best_value <= descent.statistics.start_value
    assert descent.statistics.best_value == pytest.approx(criteria.objective_value(best), rel=1e-6)


def test_parallel_descent_with_setback_ends_without_a_budget(two_period_problem: SwitchingProblem) -> None:
    solution = SwitchingSolution.unchanging(two_period_problem)
    criteria = default_criteria_set(FlowProvider())
    selector = SequentialSelector(generate_for_problem(two_period_problem))
    descent = ParallelNeighborhoodDescent(selector, minimum_parallel_moves=3, max_workers=2, acceptable_setback=1.0)

    best = descent.optimize(solution, criteria, StopCriterion(max_iterations=1000))

    assert descent.statistics.iterations < 1000
    assert descent.statistics.best_value == pytest.approx(criteria.objective_value(best), rel=1e-6)


def test_tracker_ignores_a_setback_and_its_reverse(feeder_builder: NetworkBuilder, criteria: CriteriaSet) -> None:
    solution = feeder_builder.single_period_solution
    tracker = BestSolutionTracker(solution, criteria, keep_copies=False)
    start = tracker.best_value
    step = max(1.0, abs(start)) / 10

    assert not tracker.register_move(0.7 * step)
    assert not tracker.register_move(-0.7 * step)
    assert tracker.best_value == pytest.approx(start)
    assert tracker.register_move(-step)
    assert tracker.best_value == pytest.approx(start - step)


def _parallel_run(problem: SwitchingProblem, max_workers: int) -> tuple[dict[str, dict[str, bool]], float]:
    solution = SwitchingSolution.unchanging(problem)
    selector = RetryImprovingMoveInAdjacentPeriodsSelector(
        SequentialSelector(generate_for_problem(problem), np.random.default_rng(7)), solution
    )
    descent = ParallelNeighborhoodDescent(selector, minimum_parallel_moves=4, max_workers=max_workers)
    result = descent.optimize(solution, default_criteria_set(FlowProvider()))
    return result.to_mapping(), descent.statistics.best_value


def test_parallel_descent_does_not_depend_on_the_worker_count(two_period_problem: SwitchingProblem) -> None:
    single_mapping, single_value = _parallel_run(two_period_problem, max_workers=1)
    pooled_mapping, pooled_value = _parallel_run(two_period_problem, max_workers=4)

    assert pooled_mapping == single_mapping
    assert pooled_value == single_value
