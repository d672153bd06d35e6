# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import pytest
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.exceptions import (
    ConfigurationMismatchError,
    DuplicateNameError,
    NetworkStructureError,
)
from toop_engine_switch_optimizer.network.elements import TransformerModeData, TransformerOperation
from toop_engine_switch_optimizer.network.power_network import PowerNetwork
from toop_engine_switch_optimizer.network.switch_settings import SwitchSettings


@pytest.fixture
def small_network() -> PowerNetwork:
    network = PowerNetwork("small")
    network.add_provider(10000, complex(1e6, 1e6), name="G")
    network.add_transition(name="H")
    network.add_consumer(9000, 11000, name="C")
    network.add_line("G", "H", complex(1, 0.5), 100, name="l1")
    network.add_line("H", "C", complex(0.5, 0), 100, switchable=True, switching_cost=2, name="s1")
    return network


def test_construction(small_network: PowerNetwork) -> None:
    assert small_network.bus_count == 3
    assert [bus.name for bus in small_network.providers] == ["G"]
    assert [bus.name for bus in small_network.consumers] == ["C"]
    assert [line.name for line in small_network.switchable_lines] == ["s1"]
    assert small_network.get_bus("H").is_connection
    assert small_network.get_line("l1").resistance == 1
    assert small_network.get_line("l1").reactance == 0.5
    assert small_network.max_network_voltage == 10000
    assert "3 buses" in small_network.describe()


def test_names_must_be_unique(small_network: PowerNetwork) -> None:
    with pytest.raises(DuplicateNameError, match="H"):
        small_network.add_consumer(name="H")
    with pytest.raises(DuplicateNameError, match="l1"):
        small_network.add_line("G", "C", 1, 10, name="l1")


def test_structural_errors_name_the_element(small_network: PowerNetwork) -> None:
    with pytest.raises(NetworkStructureError, match="Bus D"):
        small_network.add_consumer(1100, 900, name="D")
    with pytest.raises(NetworkStructureError, match="Provider P"):
        small_network.add_provider(10000, complex(10, 10), complex(20, 0), name="P")
    with pytest.raises(NetworkStructureError, match="X"):
        small_network.add_line("G", "X", 1, 10)
    with pytest.raises(NetworkStructureError, match="itself"):
        small_network.add_line("G", "G", 1, 10, name="loop")
    with pytest.raises(NetworkStructureError, match="IMax"):
        small_network.add_line("G", "C", 1, -1, name="bad")


def test_default_line_name(small_network: PowerNetwork) -> None:
    line = small_network.add_line("G", "C", 1, 10)
    assert line.name == "Line 2: G -- C"
    assert line.is_between(small_network.get_bus("C"), small_network.get_bus("G"))


def test_transformer(small_network: PowerNetwork) -> None:
    small_network.add_consumer(name="L")
    transformer = small_network.add_transformer(
        [("H", 10000.0), ("L", 400.0)],
        [TransformerModeData("H", "L", voltage_ratio=25.0, bidirectional=True)],
        name="T",
    )

    assert transformer.bus.is_transformer
    assert len(transformer.modes) == 2
    forward = transformer.mode_for_terminals(small_network.get_bus("H"), small_network.get_bus("L"))
    backward = transformer.mode_for_terminals(small_network.get_bus("L"), small_network.get_bus("H"))
    assert forward.output_voltage(10000) == pytest.approx(400)
    assert backward.ratio == pytest.approx(1 / 25)
    connection = transformer.connection_line(small_network.get_bus("H"))
    assert connection.is_transformer_connection
    assert connection.impedance == 0
    assert transformer.has_valid_modes_for_input_line(connection)

    with pytest.raises(NetworkStructureError, match="transformer bus"):
        small_network.add_line("T", "C", 1, 10)


def test_transformer_modes_are_validated(small_network: PowerNetwork) -> None:
    with pytest.raises(NetworkStructureError, match="2 or 3 windings"):
        small_network.add_transformer([("H", 10000.0)], name="T1")
    with pytest.raises(NetworkStructureError, match="without a voltage ratio"):
        small_network.add_transformer([("H", 10000.0), ("C", 400.0)], [TransformerModeData("H", "C")], name="T2")

    transformer = small_network.add_transformer([("G", 10000.0), ("C", 400.0)], name="T3")
    with pytest.raises(NetworkStructureError, match="power factor"):
        transformer.add_mode("G", "C", power_factor=0.0)
    with pytest.raises(NetworkStructureError, match="both input and output"):
        transformer.add_mode("G", "G")


def test_automatic_transformer_keeps_the_angle(small_network: PowerNetwork) -> None:
    transformer = small_network.add_transformer(
        [("H", 10000.0), ("C", 400.0)],
        [TransformerModeData("H", "C", operation=TransformerOperation.AUTOMATIC)],
        name="T",
    )
    mode = transformer.modes[0]

    assert mode.output_voltage(complex(0, 9000)) == pytest.approx(complex(0, 400))
    assert mode.output_voltage(0j) == 0


def test_queries_on_the_feeder(feeder_builder: NetworkBuilder) -> None:
    network = feeder_builder.network

    assert {line.name for line in network.closest_switches(feeder_builder.bus("A"))} == {"s6", "s2"}
    assert network.parallel_non_switchable_lines() == []

    graph = network.to_networkx()
    assert graph.number_of_nodes() == network.bus_count
    assert graph.number_of_edges() == network.line_count
    is_open = feeder_builder.configuration.switch_settings.to_mapping()
    closed_graph = network.to_networkx(include_open_lines=False, is_open=is_open)
    assert closed_graph.number_of_edges() == network.line_count - 3


def test_switch_settings_from_mapping(feeder_builder: NetworkBuilder) -> None:
    network = feeder_builder.network
    mapping = feeder_builder.configuration.switch_settings.to_mapping()

    settings = SwitchSettings.from_mapping(network, mapping)
    assert settings == feeder_builder.configuration.switch_settings
    assert {line.name for line in settings.open_switches} == {"s1", "s3", "s5"}


def test_switch_settings_mismatch_names_the_lines(feeder_builder: NetworkBuilder) -> None:
    network = feeder_builder.network
    mapping = feeder_builder.configuration.switch_settings.to_mapping()
    del mapping["s2"]
    mapping["l1"] = False
    mapping["nowhere"] = True

    with pytest.raises(ConfigurationMismatchError) as error:
        SwitchSettings.from_mapping(network, mapping)
    message = str(error.value)
    assert "missing switches: s2" in message
    assert "unknown lines: nowhere" in message
    assert "not switchable: l1" in message


def test_switch_settings_changes(feeder_builder: NetworkBuilder) -> None:
    settings = feeder_builder.configuration.switch_settings.clone()
    s1 = feeder_builder.line("s1")
    version = settings.version

    assert settings.set_switch(s1, False)
    assert not settings.set_switch(s1, False)
    assert settings.version == version + 1
    assert settings.different_switches(feeder_builder.configuration.switch_settings) == [s1]
    with pytest.raises(NetworkStructureError):
        settings.set_switch(feeder_builder.line("l1"), True)
