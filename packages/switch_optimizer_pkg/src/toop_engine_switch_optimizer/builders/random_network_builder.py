# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Random test networks.

The network starts as one line between two buses. Each further line either extends the network at a leaf, branches
at an internal bus, or closes a cycle between two existing buses. The bus types, line types and ways of adding lines
are drawn from shuffled sequences with the requested counts.
"""

from __future__ import annotations

import math
from typing import Optional

import logbook
import numpy as np
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt

from toop_engine_switch_optimizer.exceptions import NetworkStructureError
from toop_engine_switch_optimizer.network.connectivity import ConnectivityType, analyse_connectivity
from toop_engine_switch_optimizer.network.elements import Bus, Coordinate
from toop_engine_switch_optimizer.network.power_network import PowerNetwork

logger = logbook.Logger(__name__)


class RandomNetworkParameters(BaseModel):
    """What to put in a random network"""

    model_config = ConfigDict(extra="forbid")

    line_count: PositiveInt = 20
    """The number of lines, including switches and breakers"""

    branch_count: NonNegativeInt = 4
    """The number of lines added at an internal bus"""

    cycle_count: NonNegativeInt = 4
    """The number of lines that connect two existing buses"""

    consumer_count: NonNegativeInt = 5
    """The number of consumers"""

    provider_count: PositiveInt = 2
    """The number of providers"""

    switch_fraction: float = Field(0.5, ge=0.0, le=1.0)
    """The fraction of lines that are switchable"""

    breaker_count: NonNegativeInt = 3
    """The number of breakers"""

    add_breakers_at_generators: bool = True
    """Put a breaker on each line at a provider, adding a connection bus where needed"""

    breakers_are_switches: bool = False
    """Make the breakers switchable"""

    build_trees_around_providers: bool = False
    """Grow the network from each provider instead of from one random bus"""

    create_random_coordinates: bool = False
    """Give each bus a random location"""


class RandomNetworkBuilder:
    """Builds random networks for tests and benchmarks"""

    v_min = 8000.0
    v_max = 12000.0
    generator_voltage = 10000.0
    generation_capacity = complex(10000, 10000)
    impedance = complex(1, 0.5)

    def __init__(
        self, parameters: Optional[RandomNetworkParameters] = None, rng: Optional[np.random.Generator] = None
    ) -> None:
        self.parameters = parameters if parameters is not None else RandomNetworkParameters()
        self.rng = rng if rng is not None else np.random.default_rng()

    def create(self, require_ok_connectivity: bool = False, max_tries: int = 10) -> PowerNetwork:
        """Create a network, retrying until it admits a radial configuration if asked to.

        Raises
        ------
        NetworkStructureError
            If no network with OK connectivity was found in max_tries attempts
        """
        connectivity = None
        for attempt in range(max_tries):
            network = self._create_once()
            if not require_ok_connectivity:
                return network
            connectivity = analyse_connectivity(network)
            if connectivity == ConnectivityType.OK:
                return network
            logger.debug(f"Random network attempt {attempt + 1} has connectivity {connectivity}")
        raise NetworkStructureError(
            f"Failed to create an OK network in {max_tries} tries. Last connectivity is: {connectivity}"
        )

    def _create_once(self) -> PowerNetwork:
        params = self.parameters
        self._node_counter = 1
        self._line_counter = 1
        self._i_max = float(max(params.consumer_count, 1))
        self._leaves: list[Bus] = []
        self._non_leaves: list[Bus] = []

        consumer_count = params.consumer_count
        node_count = params.line_count + 1 - params.cycle_count
        transition_count = node_count - consumer_count - params.provider_count
        if transition_count < 0:
            consumer_count += transition_count
            transition_count = 0

        # Types are popped from the end, so around providers the providers are created first
        node_types = ["T"] * transition_count + ["C"] * max(consumer_count, 0)
        if params.build_trees_around_providers:
            self.rng.shuffle(node_types)
            self._node_types = node_types + ["P"] * params.provider_count
        else:
            node_types += ["P"] * params.provider_count
            self.rng.shuffle(node_types)
            self._node_types = node_types

        extend_count = params.line_count - params.branch_count - params.cycle_count
        connect_types = ["E"] * max(extend_count - 1, 0) + ["B"] * params.branch_count + ["C"] * params.cycle_count
        self.rng.shuffle(connect_types)

        switch_count = round(params.line_count * params.switch_fraction)
        normal_count = params.line_count - switch_count - params.breaker_count
        if normal_count < 0:
            switch_count += normal_count
            normal_count = 0
        line_types = ["L"] * normal_count + ["S"] * max(switch_count, 0) + ["B"] * params.breaker_count
        self.rng.shuffle(line_types)
        self._line_types = line_types

        self._network = PowerNetwork("Random network")
        if params.build_trees_around_providers:
            providers = [self._add_node() for _ in range(params.provider_count)]
            for provider in providers:
                self._add_line(provider, self._add_node_near(provider.location))
            for connect_type in connect_types:
                if not self._node_types:
                    break
                self._connect(connect_type)
        else:
            first = self._add_node()
            self._add_line(first, self._add_node_near(first.location))
            for connect_type in connect_types:
                self._connect(connect_type)

        logger.debug(self._network.describe())
        return self._network

    def _connect(self, connect_type: str) -> None:
        if connect_type == "E":
            first = self._existing_node(prefer_leaf=True)
            second = self._add_node_near(first.location)
        elif connect_type == "B":
            first = self._existing_node(prefer_leaf=False)
            second = self._add_node_near(first.location)
        else:
            first = self._existing_node(prefer_leaf=True)
            second = self._existing_node(prefer_leaf=True, avoid=first)
        self._add_line(first, second)

    def _existing_node(self, prefer_leaf: bool, avoid: Optional[Bus] = None) -> Bus:
        first, second = (self._leaves, self._non_leaves) if prefer_leaf else (self._non_leaves, self._leaves)
        for candidates in (first, second):
            allowed = [bus for bus in candidates if bus is not avoid and not bus.name.startswith("artificial_")]
            if allowed:
                return allowed[int(self.rng.integers(len(allowed)))]
        raise NetworkStructureError("No existing bus to connect to")

    def _add_node_near(self, center: Optional[Coordinate], distance: float = 10.0) -> Bus:
        if not self.parameters.create_random_coordinates or center is None:
            return self._add_node()
        angle = (self.rng.random() - 0.5) * 120
        return self._add_node(Coordinate(center.x + distance * math.cos(angle), center.y + distance * math.sin(angle)))

    def _add_node(self, location: Optional[Coordinate] = None) -> Bus:
        node_type = self._node_types.pop()
        if self.parameters.create_random_coordinates and location is None:
            extent = max(10, self.parameters.consumer_count // 10)
            location = Coordinate(float(self.rng.integers(extent)), float(self.rng.integers(extent)))

        number = self._node_counter
        self._node_counter += 1
        if node_type == "T":
            return self._network.add_transition(self.v_min, self.v_max, f"transition_{number}", location)
        if node_type == "C":
            return self._network.add_consumer(self.v_min, self.v_max, f"consumer_{number}", location)
        return self._network.add_provider(
            self.generator_voltage, self.generation_capacity, 0j, f"provider_{number}", location
        )

    def _add_line(self, node1: Bus, node2: Bus, line_type: Optional[str] = None) -> None:
        if line_type is None:
            line_type = self._line_types.pop()

        if self.parameters.add_breakers_at_generators and line_type != "B" and (node1.is_provider or node2.is_provider):
            location = None
            if node1.location is not None and node2.location is not None:
                location = Coordinate.center_point(node1.location, node2.location)
            extra = self._network.add_transition(self.v_min, self.v_max, f"artificial_{self._node_counter}", location)
            self._node_counter += 1
            if node1.is_provider:
                self._add_line(node1, extra, "B")
                self._add_line(extra, node2, line_type)
            else:
                self._add_line(node1, extra, line_type)
                self._add_line(extra, node2, "B")
            return

        impedance = self.impedance
        switchable = line_type == "S"
        is_breaker = line_type == "B"
        if is_breaker:
            impedance = 0j
            switchable = self.parameters.breakers_are_switches
            name = f"breaker_{self._line_counter}"
        elif switchable:
            name = f"switch_{self._line_counter}"
        else:
            name = f"line_{self._line_counter}"
        self._line_counter += 1

        self._network.add_line(
            node1.name,
            node2.name,
            impedance,
            self._i_max,
            switchable=switchable,
            switching_cost=1.0,
            is_breaker=is_breaker,
            name=name,
        )
        self._update_leaves(node1)
        self._update_leaves(node2)

    def _update_leaves(self, bus: Bus) -> None:
        if bus in self._leaves:
            self._leaves.remove(bus)
        if bus in self._non_leaves:
            self._non_leaves.remove(bus)
        if bus.incident_line_count == 1:
            self._leaves.append(bus)
        else:
            self._non_leaves.append(bus)


def create_random_network(
    parameters: Optional[RandomNetworkParameters] = None,
    seed: Optional[int] = None,
    require_ok_connectivity: bool = True,
) -> PowerNetwork:
    """Create a random network with the given parameters and seed"""
    return RandomNetworkBuilder(parameters, np.random.default_rng(seed)).create(require_ok_connectivity)
