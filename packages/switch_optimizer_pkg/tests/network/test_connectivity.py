# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.network.connectivity import ConnectivityType, analyse_connectivity


def test_feeder_is_ok(feeder_builder: NetworkBuilder) -> None:
    assert analyse_connectivity(feeder_builder.network) == ConnectivityType.OK


def test_unbreakable_cycle() -> None:
    network = NetworkBuilder.create(
        "G[generatorVoltage=1000] -- l1 -- A[consumer] -- l2 -- B[consumer] -- l3 -- G",
    ).network

    assert ConnectivityType.HAS_UNBREAKABLE_CYCLE in analyse_connectivity(network)


def test_disconnected_component() -> None:
    network = NetworkBuilder.create(
        "G[generatorVoltage=1000] -- l1 -- A[consumer]",
        "X[consumer] -- l2 -- Y[consumer]",
    ).network

    assert ConnectivityType.HAS_DISCONNECTED_COMPONENT in analyse_connectivity(network)
    assert [[bus.name for bus in component] for component in network.components_without_provider()] == [["X", "Y"]]


def test_transformer_fed_from_the_wrong_side() -> None:
    network = NetworkBuilder.create(
        "G[generatorVoltage=400] -- l1 -- B[consumption=(10,0)] -- lb "
        "-- T[transformer; voltages=(400,10000); upstream=(A)] -- la -- A[consumption=(10,0)]",
    ).network

    assert analyse_connectivity(network) == ConnectivityType.HAS_INCONSISTENT_TRANSFORMER_MODES
