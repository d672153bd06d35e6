# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import itertools

import numpy as np
import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.builders.random_network_builder import RandomNetworkParameters, create_random_network
from toop_engine_switch_optimizer.encoding.moves import ChangeSwitchesMove, SwapSwitchStatusMove
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.exceptions import NetworkStructureError, RadialityError
from toop_engine_switch_optimizer.local_search.dependence_rule import MoveDependenceRule
from toop_engine_switch_optimizer.local_search.neighborhood import all_moves
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_demands import PowerDemands


def _random_solution(seed: int) -> SwitchingSolution:
    parameters = RandomNetworkParameters(line_count=24, cycle_count=5, consumer_count=8, breaker_count=2)
    try:
        network = create_random_network(parameters, seed=seed)
        configuration = NetworkConfiguration.all_closed(network)
        configuration.make_radial(np.random.default_rng(seed))
    except (NetworkStructureError, RadialityError) as error:
        pytest.skip(f"No radial random network for seed {seed}: {error}")
    demands = PowerDemands(network)
    demands.set_all(complex(100, 10))
    return SwitchingSolution.unchanging(SwitchingProblem.single_period(network, demands, start_configuration=configuration))


def _radial_after(solution: SwitchingSolution, moves: list[SwapSwitchStatusMove]) -> bool:
    configuration = solution.period_solution(moves[0].period).configuration.clone()
    for move in moves:
        configuration.set_switch(move.switch_to_open, True)
        configuration.set_switch(move.switch_to_close, False)
    return configuration.is_radial


def _share_switches(moves: tuple[SwapSwitchStatusMove, ...]) -> bool:
    switches = [line for move in moves for line in move.switches]
    return len(set(switches)) < len(switches)


def test_independent_swaps_on_the_feeder(feeder_builder: NetworkBuilder) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    line = feeder_builder.line
    rule = MoveDependenceRule()

    relieve_b = SwapSwitchStatusMove(solution, period, line("s6"), line("s1"))
    relieve_d = SwapSwitchStatusMove(solution, period, line("s2"), line("s3"))
    also_opening_s6 = SwapSwitchStatusMove(solution, period, line("s6"), line("s5"))

    assert rule.are_independent([relieve_b])
    assert rule.are_independent([relieve_b, relieve_d])
    assert not rule.are_independent([relieve_b, also_opening_s6])
    assert rule.are_dependent([relieve_b], also_opening_s6)


def test_other_moves_are_dependent(feeder_builder: NetworkBuilder) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    swap = SwapSwitchStatusMove(solution, period, feeder_builder.line("s2"), feeder_builder.line("s3"))
    change = ChangeSwitchesMove(solution, period, [feeder_builder.line("s4")], [])

    assert not MoveDependenceRule().are_independent([swap, change])


def test_moves_in_different_periods_are_independent(two_period_problem: SwitchingProblem) -> None:
    solution = SwitchingSolution.unchanging(two_period_problem)
    first, second = two_period_problem.periods
    network = two_period_problem.network
    moves = [
        SwapSwitchStatusMove(solution, first, network.get_line("s6"), network.get_line("s1")),
        SwapSwitchStatusMove(solution, second, network.get_line("s6"), network.get_line("s5")),
    ]

    assert MoveDependenceRule().are_independent(moves)


def test_update_after_applying_a_move(feeder_builder: NetworkBuilder, flow_provider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    line = feeder_builder.line
    rule = MoveDependenceRule()

    applied = SwapSwitchStatusMove(solution, period, line("s6"), line("s1"))
    still_valid = SwapSwitchStatusMove(solution, period, line("s4"), line("s5"))
    stale = SwapSwitchStatusMove(solution, period, line("s6"), line("s5"))
    old_delta = still_valid.get_cached_power_flow_delta(flow_provider)
    applied.apply()

    assert rule.update(stale, applied) is None
    updated = rule.update(still_valid, applied)
    assert updated is still_valid
    assert updated.get_cached_power_flow_delta(flow_provider) is not old_delta


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_rule_agrees_with_applying_the_moves(seed: int) -> None:
    solution = _random_solution(seed)
    moves = all_moves(solution)
    rule = MoveDependenceRule()

    for pair in itertools.combinations(moves, 2):
        if _share_switches(pair):
            assert not rule.are_independent(list(pair))
        else:
            assert rule.are_independent(list(pair)) == _radial_after(solution, list(pair)), [str(move) for move in pair]

    rng = np.random.default_rng(seed)
    for _ in range(200):
        if len(moves) < 3:
            break
        triple = tuple(moves[int(i)] for i in rng.choice(len(moves), size=3, replace=False))
        if not _share_switches(triple):
            assert rule.are_independent(list(triple)) == _radial_after(solution, list(triple)), [
                str(move) for move in triple
            ]
