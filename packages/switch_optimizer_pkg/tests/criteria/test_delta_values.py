# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Incremental evaluation of moves must agree with evaluating the solution after the move."""

import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.criteria.criterion import Criterion
from toop_engine_switch_optimizer.encoding.moves import SwapSwitchStatusMove
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.local_search.neighborhood import all_moves


def _check_moves(solution: SwitchingSolution, criteria: list[Criterion]) -> int:
    checked = 0
    for move in all_moves(solution):
        after = solution.clone()
        move.get_clone_for(after).apply(propagate=False)
        for criterion in criteria:
            before = criterion.value(solution)
            expected = criterion.value(after) - before
            scale = max(abs(before), 1.0)
            assert criterion.delta_value(move) == pytest.approx(expected, rel=1e-6, abs=1e-9 * scale), (
                f"{criterion} for {move}"
            )
            assert criterion.legal_move(move) == criterion.is_satisfied(after), f"{criterion} for {move}"
        checked += 1
    return checked


def test_single_period_deltas(feeder_builder: NetworkBuilder, all_criteria: list[Criterion]) -> None:
    solution = feeder_builder.solution(feeder_builder.one_period_problem)
    assert _check_moves(solution, all_criteria) > 0


def test_deltas_with_neighbouring_periods(two_period_problem: SwitchingProblem, all_criteria: list[Criterion]) -> None:
    solution = SwitchingSolution.unchanging(two_period_problem)
    first, second = two_period_problem.periods
    network = two_period_problem.network
    SwapSwitchStatusMove(solution, second, network.get_line("s6"), network.get_line("s1")).apply()
    SwapSwitchStatusMove(solution, first, network.get_line("s2"), network.get_line("s3")).apply()

    assert _check_moves(solution, all_criteria) > 0


def test_deltas_when_constraints_are_violated(all_criteria: list[Criterion]) -> None:
    # Tight limits make the voltage and capacity constraints violated in the start state
    builder = NetworkBuilder.create(
        "A[consumption=(100,10); vMinV=999]",
        "G1[generatorVoltage=1000; generationCapacity=(150,150)] -- l1[r=2; iMax=0.2] -- A",
        "A -- s1[closed; vMax=999.6] -- B[consumption=(80,0); vMinV=999.5] -- s2[open] -- C[consumption=(60,0)]",
        "C -- l2[r=1] -- G2[generatorVoltage=1000]",
        "A -- s3[open] -- C",
    )
    solution = builder.single_period_solution
    assert not all(criterion.is_satisfied(solution) for criterion in all_criteria[3:])
    assert _check_moves(solution, all_criteria) > 0


def test_deltas_across_a_transformer(all_criteria: list[Criterion]) -> None:
    builder = NetworkBuilder.create(
        "G[generatorVoltage=10000] -- s1[closed; r=1] -- A[consumption=(200,50)] -- la "
        "-- T[transformer; voltages=(10000,400); upstream=(A); factor=0.98] -- lb -- B[consumption=(100,20)]",
        "G -- l1[r=1] -- C[consumption=(150,10)] -- s2[open; r=1] -- A",
        "B -- s3[closed; r=0.1] -- D[consumption=(30,5)]",
        "G2[generatorVoltage=400] -- l2[r=0.1] -- E[consumption=(20,0)] -- s4[open; r=0.1] -- D",
    )
    solution = builder.single_period_solution
    assert all(criterion.is_satisfied(solution) for criterion in all_criteria)

    # One move on each side of the transformer
    assert _check_moves(solution, all_criteria) >= 2
