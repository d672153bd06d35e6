# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import math

import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.builders.random_network_builder import (
    RandomNetworkBuilder,
    RandomNetworkParameters,
    create_random_network,
)
from toop_engine_switch_optimizer.exceptions import NetworkStructureError
from toop_engine_switch_optimizer.network.connectivity import ConnectivityType, analyse_connectivity


def test_chain_with_properties() -> None:
    builder = NetworkBuilder.create(
        "Gen[generatorVoltage=1000] -- l1[r=0.5; iMax=20] -- Mid -- s1[open; switchingCost=3] -- Cons[consumption=(100,10)]"
    )

    assert builder.bus("Gen").is_provider
    assert builder.bus("Gen").generator_voltage == 1000
    assert builder.bus("Mid").is_connection
    assert builder.bus("Cons").is_consumer
    assert builder.demand(builder.bus("Cons")) == complex(100, 10)

    l1 = builder.line("l1")
    assert l1.impedance == complex(0.5, 0)
    assert l1.i_max == 20
    assert not l1.switchable
    s1 = builder.line("s1")
    assert s1.switchable
    assert s1.switching_cost == 3
    assert builder.configuration.is_open(s1)


def test_anonymous_buses() -> None:
    builder = NetworkBuilder.create("Gen[generator] -- a -o- b -o- c -- Cons[consumer]")

    assert builder.network.line_count == 3
    assert builder.network.bus_count == 4
    assert builder.line("b").node1.is_connection
    assert builder.bus("Gen").generator_voltage == builder.default_generator_voltage


def test_bus_properties_cannot_be_redefined() -> None:
    builder = NetworkBuilder.create("A[consumer]")
    with pytest.raises(NetworkStructureError):
        builder.add("A[consumption=5]")


def test_unknown_properties_are_rejected() -> None:
    with pytest.raises(NetworkStructureError):
        NetworkBuilder.create("A[color=red]")
    with pytest.raises(NetworkStructureError):
        NetworkBuilder.create("A -- l1[length=3] -- B")


def test_voltage_limits() -> None:
    builder = NetworkBuilder.create("C[consumer; vMinV=900; vMaxV=1100]", "D[consumer]")

    assert builder.bus("C").v_min == 900
    assert builder.bus("C").v_max == 1100
    assert math.isinf(builder.bus("D").v_max)


def test_write_and_read_give_the_same_network(feeder_builder: NetworkBuilder) -> None:
    text = NetworkBuilder.write(feeder_builder.network, feeder_builder.configuration, feeder_builder.demands)
    copy = NetworkBuilder.read(text)

    assert copy.network.bus_count == feeder_builder.network.bus_count
    assert copy.network.line_count == feeder_builder.network.line_count
    assert copy.configuration.switch_settings == feeder_builder.configuration.switch_settings
    for line in feeder_builder.network.lines:
        other = copy.line(line.name)
        assert other.impedance == line.impedance
        assert other.i_max == line.i_max
        assert other.switching_cost == line.switching_cost
    for bus in feeder_builder.network.consumers:
        assert copy.demand(copy.bus(bus.name)) == feeder_builder.demand(bus)
        assert copy.bus(bus.name).v_min == bus.v_min
    assert copy.bus("G1").generation_capacity == complex(4000, 4000)


def test_read_skips_comments_and_blank_lines() -> None:
    builder = NetworkBuilder.read("# a small network\n\nG[generator]\n  G -- l1 -- C[consumer]\n")

    assert builder.network.bus_count == 2
    assert builder.network.has_line("l1")


def test_repeated_period_data_is_consecutive(feeder_builder: NetworkBuilder) -> None:
    data = feeder_builder.repeated_period_data(3)

    assert [entry.period.index for entry in data] == [0, 1, 2]
    assert data[1].period.start_time == data[0].period.end_time
    assert all(entry.demands.power_demand(feeder_builder.bus("A")) == complex(1000, 100) for entry in data)


def test_random_network_has_ok_connectivity() -> None:
    network = create_random_network(seed=3)

    assert analyse_connectivity(network) == ConnectivityType.OK
    assert len(network.providers) == 2
    assert network.switchable_lines


def test_random_network_is_reproducible() -> None:
    parameters = RandomNetworkParameters(line_count=30, consumer_count=10, create_random_coordinates=True)
    first = create_random_network(parameters, seed=11, require_ok_connectivity=False)
    second = create_random_network(parameters, seed=11, require_ok_connectivity=False)

    assert [line.name for line in first.lines] == [line.name for line in second.lines]
    assert [(line.node1.name, line.node2.name) for line in first.lines] == [
        (line.node1.name, line.node2.name) for line in second.lines
    ]


def test_random_network_breakers_at_providers() -> None:
    parameters = RandomNetworkParameters(breaker_count=0, add_breakers_at_generators=True)
    network = create_random_network(parameters, seed=5, require_ok_connectivity=False)

    for provider in network.providers:
        assert all(line.is_breaker for line in provider.incident_lines)


def test_random_parameters_forbid_unknown_fields() -> None:
    with pytest.raises(ValueError):
        RandomNetworkParameters(lines=3)
    assert RandomNetworkBuilder().parameters.line_count == 20
