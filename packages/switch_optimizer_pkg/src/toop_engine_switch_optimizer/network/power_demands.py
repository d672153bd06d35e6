# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The power demand of each consumer of a network, for one period."""

from __future__ import annotations

from typing import Mapping, Optional

from toop_engine_switch_optimizer.exceptions import NetworkStructureError
from toop_engine_switch_optimizer.network.elements import Bus
from toop_engine_switch_optimizer.network.power_network import PowerNetwork


class PowerDemands:
    """Active and reactive power demand (VA) per consumer. Consumers without a given demand consume nothing."""

    def __init__(self, network: PowerNetwork, demands: Optional[Mapping[str, complex]] = None) -> None:
        self.network = network
        self._demands: dict[Bus, complex] = {}
        for name, demand in (demands or {}).items():
            self.set_power_demand(network.get_bus(name), demand)

    def power_demand(self, bus: Bus) -> complex:
        """The demand of a bus. Buses that are not consumers have zero demand."""
        return self._demands.get(bus, 0j)

    def set_power_demand(self, bus: Bus, demand: complex) -> None:
        """Set the demand of a consumer"""
        if not bus.is_consumer:
            raise NetworkStructureError(f"Bus {bus.name} is not a consumer and cannot have a power demand")
        if demand.real < 0:
            raise NetworkStructureError(f"Consumer {bus.name}: active power demand must be non-negative, got {demand}")
        self._demands[bus] = complex(demand)

    def set_all(self, demand: complex) -> None:
        """Give every consumer the same demand"""
        for bus in self.network.consumers:
            self.set_power_demand(bus, demand)

    @property
    def sum(self) -> complex:
        """The total demand of all consumers"""
        return sum(self._demands.values(), 0j)

    def copy_to(self, network: PowerNetwork) -> PowerDemands:
        """Return the demands of the consumers of another network, matching consumers by name.

        Consumers that do not exist in the other network are dropped.
        """
        copy = PowerDemands(network)
        for bus, demand in self._demands.items():
            other = network.try_get_bus(bus.name)
            if other is not None:
                copy.set_power_demand(other, demand)
        return copy

    def to_mapping(self) -> dict[str, complex]:
        """The demands by consumer name"""
        return {bus.name: demand for bus, demand in self._demands.items()}

    def __str__(self) -> str:
        """Summarize the demands"""
        return f"Demands of {len(self._demands)} consumers, total {self.sum}"
