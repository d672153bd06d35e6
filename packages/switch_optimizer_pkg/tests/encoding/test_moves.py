# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.encoding.moves import (
    ChangeSwitchesMove,
    SwapSwitchStatusMove,
    create_move_for_radial_flow,
    set_closed_only,
    set_open_only,
)
from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.exceptions import InvalidMoveError
from toop_engine_switch_optimizer.local_search.neighborhood import all_moves
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider


def _topology(solution: SwitchingSolution, period: Period) -> dict[str, tuple]:
    configuration = solution.period_solution(period).configuration
    return {
        bus.name: (configuration.upstream_line(bus), configuration.provider_for(bus))
        for bus in solution.network.buses
    }


def test_swap_and_reverse_restore_the_solution(feeder_builder: NetworkBuilder) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    original = solution.period_solution(period).switch_settings.clone()
    topology = _topology(solution, period)

    for move in all_moves(solution):
        move.apply()
        assert solution.period_solution(period).is_radial
        assert _topology(solution, period) != topology
        move.get_reverse().apply()
        assert solution.period_solution(period).switch_settings == original
        assert _topology(solution, period) == topology


def test_swap_and_reverse_restore_the_flow(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    network = solution.network
    flow = solution.flow(period, flow_provider)
    voltages = [flow.voltage(bus) for bus in network.buses]
    currents = [flow.current(line) for line in network.lines]

    moves = list(all_moves(solution))
    assert moves
    for move in moves:
        move.apply(propagate=True)
        move.get_reverse().apply(propagate=True)
        restored = solution.flow(period, flow_provider)
        assert [restored.voltage(bus) for bus in network.buses] == pytest.approx(voltages, rel=1e-6, abs=1e-6)
        assert [restored.current(line) for line in network.lines] == pytest.approx(currents, rel=1e-6, abs=1e-6)


def test_swap_validates_switch_states(feeder_builder: NetworkBuilder) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]

    with pytest.raises(InvalidMoveError):
        SwapSwitchStatusMove(solution, period, feeder_builder.line("s1"), feeder_builder.line("s3"))
    with pytest.raises(InvalidMoveError):
        SwapSwitchStatusMove(solution, period, feeder_builder.line("s2"), feeder_builder.line("s6"))


def test_apply_installs_the_cached_flow(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    move = SwapSwitchStatusMove(solution, period, feeder_builder.line("s6"), feeder_builder.line("s1"))
    delta = move.get_cached_power_flow_delta(flow_provider)
    assert move.get_cached_power_flow_delta(flow_provider) is delta

    move.apply(propagate=True)
    installed = solution.period_solution(period).flows[flow_provider]
    assert installed is not None

    recomputed = flow_provider.compute_flow(solution.period_solution(period).configuration, feeder_builder.demands)
    assert installed.total_loss() == pytest.approx(recomputed.total_loss(), rel=1e-9)


def test_apply_without_propagation_clears_flows(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    move = SwapSwitchStatusMove(solution, period, feeder_builder.line("s2"), feeder_builder.line("s3"))
    move.get_cached_power_flow_delta(flow_provider)

    move.apply(propagate=False)
    assert flow_provider not in solution.period_solution(period).flows


def test_cached_delta_is_recomputed_after_changes(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    move = SwapSwitchStatusMove(solution, period, feeder_builder.line("s4"), feeder_builder.line("s5"))
    stale = move.get_cached_power_flow_delta(flow_provider)

    SwapSwitchStatusMove(solution, period, feeder_builder.line("s6"), feeder_builder.line("s1")).apply()
    fresh = move.get_cached_power_flow_delta(flow_provider)

    assert fresh is not stale
    assert fresh.old_flow is solution.flow(period, flow_provider)


def test_new_upstream_line(feeder_builder: NetworkBuilder) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    move = SwapSwitchStatusMove(solution, period, feeder_builder.line("s6"), feeder_builder.line("s1"))

    assert move.new_upstream_line(feeder_builder.bus("B")) is feeder_builder.line("s1")
    assert move.new_upstream_line(feeder_builder.bus("E")) is feeder_builder.line("s4")
    assert move.new_upstream_line(feeder_builder.bus("D")) is feeder_builder.line("s2")


def test_change_switches_move(feeder_builder: NetworkBuilder) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    move = ChangeSwitchesMove(solution, period, [feeder_builder.line("s4")], [])

    assert str(move) == "Open s4"
    move.apply()
    assert not solution.period_solution(period).configuration.is_connected

    move.get_reverse().apply()
    assert solution.period_solution(period).is_radial


def test_radial_flow_move(feeder_builder: NetworkBuilder, rng) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    set_closed_only(solution, period, [line.name for line in feeder_builder.network.switchable_lines])
    assert not solution.period_solution(period).is_radial

    create_move_for_radial_flow(solution, period, rng).apply()
    assert solution.period_solution(period).allows_radial_flow()


def test_set_open_only(feeder_builder: NetworkBuilder) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    set_open_only(solution, period, ["s2", "s5", "s1"])

    assert {line.name for line in solution.period_solution(period).open_switches} == {"s1", "s2", "s5"}
    assert solution.period_solution(period).is_radial


def test_solution_copies_between_networks(two_period_problem: SwitchingProblem) -> None:
    solution = SwitchingSolution.unchanging(two_period_problem)
    first, second = two_period_problem.periods
    line = two_period_problem.network.get_line("s1")
    solution.set_switch(second, line, False)

    copy = SwitchingSolution(two_period_problem)
    copy.copy_switch_settings_from(solution)
    assert copy.to_mapping() == solution.to_mapping()
    assert copy.to_mapping()[second.id]["s1"] is False
    assert copy.to_mapping()[first.id]["s1"] is True

    clone = solution.clone()
    clone.set_switch(first, line, False)
    assert solution.period_solution(first).is_open(line)
