# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.exceptions import InvalidMoveError
from toop_engine_switch_optimizer.local_search.neighborhood import all_moves
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider


def test_delta_matches_recomputed_flow(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    solution = feeder_builder.single_period_solution
    period = solution.problem.periods[0]
    old_flow = solution.flow(period, flow_provider)
    demands = feeder_builder.demands

    moves = all_moves(solution)
    assert moves
    for move in moves:
        delta = move.get_cached_power_flow_delta(flow_provider)
        after = move.configuration.clone()
        move.apply_to(after)
        full = flow_provider.compute_flow(after, demands)

        assert delta.status_after == full.status
        assert delta.delta_loss == pytest.approx(full.total_loss() - old_flow.total_loss(), rel=1e-9, abs=1e-12)
        for line in feeder_builder.network.lines:
            assert delta.new_current(line) == pytest.approx(full.current(line), abs=1e-12)
        for bus in feeder_builder.network.buses:
            assert delta.new_voltage(bus) == pytest.approx(full.voltage(bus), abs=1e-9)

        combined = delta.apply_to(after)
        assert combined.total_loss() == pytest.approx(full.total_loss(), rel=1e-12)


def test_delta_recomputes_only_affected_trees(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    configuration = feeder_builder.configuration
    flow = flow_provider.compute_flow(configuration, feeder_builder.demands)

    # s5 connects E and D, which are both fed by G1
    delta = flow_provider.compute_power_flow_delta(flow, feeder_builder.line("s4"), feeder_builder.line("s5"))
    assert delta.providers == [feeder_builder.bus("G1")]
    assert feeder_builder.line("l3") not in delta.line_deltas
    assert feeder_builder.line("s4") in delta.line_deltas
    assert delta.new_current(feeder_builder.line("s4")) == 0

    # s1 connects the trees of both providers
    delta = flow_provider.compute_power_flow_delta(flow, feeder_builder.line("s6"), feeder_builder.line("s1"))
    assert set(delta.providers) == {feeder_builder.bus("G1"), feeder_builder.bus("G2")}
    assert delta.new_current(feeder_builder.line("l3")) != flow.current(feeder_builder.line("l3"))


def test_delta_leaves_old_flow_unchanged(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    configuration = feeder_builder.configuration
    flow = flow_provider.compute_flow(configuration, feeder_builder.demands)
    loss = flow.total_loss()

    delta = flow_provider.compute_power_flow_delta(flow, feeder_builder.line("s2"), feeder_builder.line("s3"))

    assert configuration.is_open(feeder_builder.line("s3"))
    assert not configuration.is_open(feeder_builder.line("s2"))
    assert flow.total_loss() == loss
    assert delta.configuration_after.is_open(feeder_builder.line("s2"))


def test_delta_rejects_swaps_in_wrong_state(feeder_builder: NetworkBuilder, flow_provider: FlowProvider) -> None:
    flow = flow_provider.compute_flow(feeder_builder.configuration, feeder_builder.demands)

    with pytest.raises(InvalidMoveError):
        flow_provider.compute_power_flow_delta(flow, feeder_builder.line("s1"), feeder_builder.line("s3"))
    with pytest.raises(InvalidMoveError):
        flow_provider.compute_power_flow_delta(flow, feeder_builder.line("s2"), feeder_builder.line("s6"))
