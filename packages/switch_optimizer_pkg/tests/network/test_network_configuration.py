# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

from typing import Optional

import numpy as np
import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.builders.random_network_builder import RandomNetworkParameters, create_random_network
from toop_engine_switch_optimizer.exceptions import InvalidMoveError, NetworkStructureError, RadialityError
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration


def test_feeder_is_radial(feeder_builder: NetworkBuilder) -> None:
    configuration = feeder_builder.configuration

    assert configuration.is_radial
    assert configuration.is_connected
    assert not configuration.has_cycles
    assert configuration.allows_radial_flow()
    assert configuration.provider_for(feeder_builder.bus("E")) is feeder_builder.bus("G1")
    assert configuration.provider_for(feeder_builder.bus("C")) is feeder_builder.bus("G2")


def test_tree_relations(feeder_builder: NetworkBuilder) -> None:
    configuration = feeder_builder.configuration
    bus, line = feeder_builder.bus, feeder_builder.line

    assert configuration.upstream_line(bus("D")) is line("s2")
    assert configuration.upstream_bus(bus("E")) is bus("B")
    assert configuration.upstream_line(bus("G1")) is None
    assert configuration.is_ancestor(line("s6"), bus("E"))
    assert not configuration.is_ancestor(line("s2"), bus("E"))
    assert configuration.is_ancestor_of_one_end(line("s6"), line("s5"))
    assert not configuration.is_ancestor_of_one_end(line("l1"), line("s5"))
    assert [directed.line.name for directed in configuration.path_to_provider(bus("E"))] == ["s4", "s6", "l1"]
    assert configuration.is_in_tree(line("s4"))
    assert not configuration.is_in_tree(line("s5"))


def test_cycle_of_open_switch(feeder_builder: NetworkBuilder) -> None:
    configuration = feeder_builder.configuration

    cycle = [directed.line.name for directed in configuration.find_cycle_with(feeder_builder.line("s5"))]
    assert set(cycle) == {"s5", "s4", "s6", "s2"}

    # s1 joins the trees of both providers, so its cycle runs from provider to provider
    cycle = [directed.line.name for directed in configuration.find_cycle_with(feeder_builder.line("s1"))]
    assert set(cycle) == {"l1", "s6", "s1", "l3"}

    with pytest.raises(InvalidMoveError):
        configuration.find_cycle_with(feeder_builder.line("s6"))


def test_closing_a_switch_breaks_radiality(feeder_builder: NetworkBuilder) -> None:
    configuration = feeder_builder.configuration
    configuration.set_switch(feeder_builder.line("s5"), False)

    assert configuration.has_cycles
    assert not configuration.is_radial
    assert not configuration.allows_radial_flow(require_connected=False)


def test_opening_a_switch_disconnects(feeder_builder: NetworkBuilder) -> None:
    configuration = feeder_builder.configuration
    configuration.set_switch(feeder_builder.line("s4"), True)

    assert not configuration.is_connected
    assert configuration.unconnected_buses == [feeder_builder.bus("E")]
    assert configuration.allows_radial_flow(require_connected=False)
    assert configuration.find_cycle_with(feeder_builder.line("s5")) == []


@pytest.mark.parametrize("seed", [None, 0, 1, 2])
def test_make_radial_from_all_closed(feeder_builder: NetworkBuilder, seed: Optional[int]) -> None:
    configuration = NetworkConfiguration.all_closed(feeder_builder.network)
    rng = np.random.default_rng(seed) if seed is not None else None

    assert configuration.make_radial_flow_possible(rng)
    assert configuration.is_radial
    # 7 buses with 2 providers need 5 lines, the 3 others stay open
    assert len(configuration.open_lines) == 3


def test_make_radial_from_all_open(feeder_builder: NetworkBuilder) -> None:
    configuration = NetworkConfiguration.all_open(feeder_builder.network)
    configuration.make_radial()

    assert configuration.is_radial


def test_make_radial_is_deterministic_for_a_seed(feeder_builder: NetworkBuilder) -> None:
    first = NetworkConfiguration.all_closed(feeder_builder.network)
    second = NetworkConfiguration.all_closed(feeder_builder.network)
    first.make_radial(np.random.default_rng(7))
    second.make_radial(np.random.default_rng(7))

    assert first.switch_settings == second.switch_settings


def test_cycle_without_switch_cannot_be_made_radial() -> None:
    builder = NetworkBuilder.create(
        "G[generatorVoltage=1000] -- l1 -- A[consumer] -- l2 -- B[consumer] -- l3 -- G",
        "A -- s1[closed] -- C[consumer]",
    )
    configuration = builder.configuration

    with pytest.raises(RadialityError):
        configuration.make_radial()
    assert not configuration.make_radial(raise_on_fail=False)


def test_clone_is_independent(feeder_builder: NetworkBuilder) -> None:
    configuration = feeder_builder.configuration
    clone = configuration.clone()
    clone.set_switch(feeder_builder.line("s1"), False)

    assert configuration.is_open(feeder_builder.line("s1"))
    assert configuration.is_radial
    assert not clone.is_radial


def test_transformer_modes() -> None:
    builder = NetworkBuilder.create(
        "G[generatorVoltage=10000] -- s1[closed] -- A -- la -- T[transformer; voltages=(10000,400); upstream=(A)] "
        "-- lb -- B[consumption=(100,0)]",
        "G2[generatorVoltage=400] -- s2[open] -- B",
    )
    configuration = builder.configuration
    assert configuration.allows_radial_flow()

    # Feeding the transformer from B has no mode
    assert not configuration.swapping_switches_uses_valid_transformer_modes(builder.line("s2"), builder.line("s1"))
    configuration.set_switch(builder.line("s1"), True)
    configuration.set_switch(builder.line("s2"), False)
    assert configuration.has_transformers_using_missing_modes
    assert not configuration.allows_radial_flow()


def test_radiality_conflict(feeder_builder: NetworkBuilder) -> None:
    configuration = feeder_builder.configuration.clone()
    assert configuration.find_radiality_conflict() is None

    configuration.set_switch(feeder_builder.line("s5"), False)
    cycle, switch = configuration.find_radiality_conflict()
    assert switch.switchable
    assert switch in [directed.line for directed in cycle]

    configuration.set_switch(switch, True)
    assert configuration.is_radial


def _assert_tree_invariants(configuration: NetworkConfiguration) -> None:
    network = configuration.network
    for bus in network.buses:
        upstream = configuration.upstream_bus(bus)
        if upstream is None:
            assert bus.is_provider
        else:
            assert bus in configuration.downstream_buses(upstream)
        for child in configuration.downstream_buses(bus):
            assert configuration.upstream_bus(child) is bus
    assert sum(configuration.number_of_buses_in_tree(provider) for provider in network.providers) == network.bus_count


def test_tree_invariants_on_the_feeder(feeder_builder: NetworkBuilder) -> None:
    _assert_tree_invariants(feeder_builder.configuration)
    with pytest.raises(NetworkStructureError):
        feeder_builder.configuration.number_of_buses_in_tree(feeder_builder.bus("A"))


@pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
def test_tree_invariants_on_random_networks(seed: int) -> None:
    parameters = RandomNetworkParameters(line_count=30, cycle_count=6, consumer_count=10)
    try:
        network = create_random_network(parameters, seed=seed)
    except (NetworkStructureError, RadialityError) as error:
        pytest.skip(f"No random network for seed {seed}: {error}")
    configuration = NetworkConfiguration.all_closed(network)
    configuration.make_radial(np.random.default_rng(seed))

    assert configuration.is_radial
    _assert_tree_invariants(configuration)

    configuration.randomize(np.random.default_rng(seed))
    if configuration.make_radial(raise_on_fail=False):
        _assert_tree_invariants(configuration)
