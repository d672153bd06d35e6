# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The radiality engine.

A NetworkConfiguration combines a network with switch settings and derives the tree structure they imply:
for each bus the upstream line and bus, the provider whose tree it belongs to, the downstream lines, the
distance to the provider and the nominal voltage. It also finds the closed lines that close a cycle (cycle
bridges) and the transformers that are fed through a terminal for which they have no mode.

The derived tables are addressed by bus index and are recomputed by a traversal from all providers whenever
the version of the switch settings has changed. The recomputation is guarded by a lock, so that several threads
may query the same configuration as long as no thread changes it.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Callable, Optional

import logbook
import numpy as np

from toop_engine_switch_optimizer.exceptions import InvalidMoveError, NetworkStructureError, RadialityError
from toop_engine_switch_optimizer.network.elements import Bus, DirectedLine, Line, Transformer, TransformerMode
from toop_engine_switch_optimizer.network.power_network import PowerNetwork
from toop_engine_switch_optimizer.network.switch_settings import SwitchSettings

logger = logbook.Logger(__name__)


class NetworkConfiguration:
    """A network together with switch settings, and the radial structure they imply"""

    def __init__(self, network: PowerNetwork, switch_settings: Optional[SwitchSettings] = None) -> None:
        if switch_settings is not None and switch_settings.network is not network:
            raise NetworkStructureError(
                f"The switch settings belong to network {switch_settings.network.name}, not {network.name}"
            )
        self.network = network
        self.switch_settings = switch_settings if switch_settings is not None else SwitchSettings(network)
        self._lock = threading.Lock()
        self._computed_version: Optional[int] = None

        self._upstream_line: list[Optional[Line]] = []
        self._upstream_bus: list[Optional[Bus]] = []
        self._provider: list[Optional[Bus]] = []
        self._downstream_lines: list[list[Line]] = []
        self._distance: list[int] = []
        self._nominal_voltage: list[Optional[float]] = []
        self._top_down_order: list[Bus] = []
        self._cycle_bridges: list[Line] = []
        self._invalid_transformers: list[Transformer] = []

    @staticmethod
    def all_closed(network: PowerNetwork) -> NetworkConfiguration:
        """Return a configuration with every switch closed"""
        return NetworkConfiguration(network, SwitchSettings.all_closed(network))

    @staticmethod
    def all_open(network: PowerNetwork) -> NetworkConfiguration:
        """Return a configuration with every switch open"""
        return NetworkConfiguration(network, SwitchSettings.all_open(network))

    def clone(self) -> NetworkConfiguration:
        """Return a configuration with a copy of the switch settings. The network is shared."""
        return NetworkConfiguration(self.network, self.switch_settings.clone())

    # ------------------------------------------------------------------------------------------
    # Switch state
    # ------------------------------------------------------------------------------------------

    def set_switch(self, line: Line, is_open: bool) -> bool:
        """Set the state of a switch. Returns whether the state changed."""
        return self.switch_settings.set_switch(line, is_open)

    def is_open(self, line: Line) -> bool:
        """Whether the line is an open switch"""
        return self.switch_settings.is_open(line)

    def is_present(self, line: Line) -> bool:
        """Whether the line conducts, i.e. it is not an open switch"""
        return not self.switch_settings.is_open(line)

    @property
    def present_lines(self) -> list[Line]:
        """The lines that are not open switches"""
        return [line for line in self.network.lines if self.is_present(line)]

    @property
    def open_lines(self) -> list[Line]:
        """The open switches"""
        return self.switch_settings.open_switches

    def randomize(self, rng: np.random.Generator) -> None:
        """Set each switch open or closed with equal probability"""
        for line in self.network.switchable_lines:
            self.set_switch(line, bool(rng.integers(2)))

    # ------------------------------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------------------------------

    @property
    def has_cycles(self) -> bool:
        """Whether some cycle of present lines is reachable from a provider"""
        return len(self.cycle_bridges) > 0

    @property
    def is_connected(self) -> bool:
        """Whether every bus is reachable from a provider through present lines"""
        self._update()
        return all(provider is not None for provider in self._provider)

    @property
    def is_radial(self) -> bool:
        """Whether the present lines form a forest with one provider in each tree that covers all buses"""
        return not self.has_cycles and self.is_connected

    @property
    def has_transformers_using_missing_modes(self) -> bool:
        """Whether some transformer is fed through a terminal for which it has no mode to some output"""
        return len(self.transformers_using_missing_modes) > 0

    def allows_radial_flow(self, require_connected: bool = True) -> bool:
        """Whether a radial flow can be computed: no cycles, and every transformer has a mode for its orientation.

        Parameters
        ----------
        require_connected : bool
            If true, every bus must also be connected to a provider

        Returns
        -------
        bool
            Whether the configuration allows radial flow
        """
        if self.has_cycles or self.has_transformers_using_missing_modes:
            return False
        return self.is_connected or not require_connected

    # ------------------------------------------------------------------------------------------
    # Tree queries
    # ------------------------------------------------------------------------------------------

    @property
    def cycle_bridges(self) -> list[Line]:
        """For each independent cycle, one present line that closes it"""
        self._update()
        return list(self._cycle_bridges)

    @property
    def transformers_using_missing_modes(self) -> list[Transformer]:
        """The transformers that are fed through a terminal with no mode to some other connected terminal"""
        self._update()
        return list(self._invalid_transformers)

    def is_bus_connected(self, bus: Bus) -> bool:
        """Whether the bus is reachable from a provider"""
        self._update()
        return self._provider[bus.index] is not None

    def is_line_connected(self, line: Line) -> bool:
        """Whether the line is present and both its ends are reachable from a provider"""
        return self.is_present(line) and self.is_bus_connected(line.node1) and self.is_bus_connected(line.node2)

    @property
    def unconnected_buses(self) -> list[Bus]:
        """The buses that are not reachable from any provider"""
        self._update()
        return [bus for bus in self.network.buses if self._provider[bus.index] is None]

    def upstream_line(self, bus: Bus) -> Optional[Line]:
        """The line through which the bus is fed, or None for providers and unconnected buses"""
        self._update()
        return self._upstream_line[bus.index]

    def upstream_bus(self, bus: Bus) -> Optional[Bus]:
        """The bus that feeds the bus, or None for providers and unconnected buses"""
        self._update()
        return self._upstream_bus[bus.index]

    def upstream_directed_line(self, bus: Bus) -> Optional[DirectedLine]:
        """The upstream line of the bus, directed in the flow direction"""
        line = self.upstream_line(bus)
        if line is None:
            return None
        return DirectedLine.in_direction_to(line, bus)

    def downstream_lines(self, bus: Bus) -> list[Line]:
        """The lines fed by the bus"""
        self._update()
        return list(self._downstream_lines[bus.index])

    def downstream_buses(self, bus: Bus) -> list[Bus]:
        """The buses fed directly by the bus"""
        return [line.other_end(bus) for line in self.downstream_lines(bus)]

    def provider_for(self, bus: Bus) -> Optional[Bus]:
        """The provider whose tree the bus belongs to, or None if the bus is unconnected"""
        self._update()
        return self._provider[bus.index]

    def distance_to_provider(self, bus: Bus) -> int:
        """The number of lines between the bus and its provider, or -1 if the bus is unconnected"""
        self._update()
        return self._distance[bus.index]

    def nominal_voltage(self, bus: Bus) -> Optional[float]:
        """The voltage magnitude the bus would have without losses, or None if the bus is unconnected"""
        self._update()
        return self._nominal_voltage[bus.index]

    def upstream_end(self, line: Line) -> Bus:
        """The end of a tree line that is closer to the provider"""
        self._update()
        if self._upstream_line[line.node2.index] is line:
            return line.node1
        if self._upstream_line[line.node1.index] is line:
            return line.node2
        raise NetworkStructureError(f"Line {line.name} is not part of the radial trees of the configuration")

    def downstream_end(self, line: Line) -> Bus:
        """The end of a tree line that is farther from the provider"""
        return line.other_end(self.upstream_end(line))

    def is_in_tree(self, line: Line) -> bool:
        """Whether the line is the upstream line of one of its ends"""
        self._update()
        return self._upstream_line[line.node1.index] is line or self._upstream_line[line.node2.index] is line

    def transformer_mode_for_output_line(self, line: Line) -> Optional[TransformerMode]:
        """The mode used by the transformer that feeds the given transformer connection line.

        Returns None if the upstream end of the line is not a transformer bus, or if the transformer has no mode
        for its current orientation.
        """
        bus = self.upstream_end(line)
        if not bus.is_transformer:
            return None
        input_line = self.upstream_line(bus)
        if input_line is None:
            return None
        return bus.transformer.mode_for(input_line, line)

    def is_ancestor_of_bus(self, ancestor: Bus, bus: Bus) -> bool:
        """Whether the ancestor is on the path from the bus to its provider, or is the bus itself"""
        self._update()
        current: Optional[Bus] = bus
        while current is not None:
            if current is ancestor:
                return True
            current = self._upstream_bus[current.index]
        return False

    def is_ancestor(self, ancestor: Line, bus: Bus) -> bool:
        """Whether the tree line feeds the bus. A line feeds its downstream end but not its upstream end."""
        return self.is_ancestor_of_bus(self.downstream_end(ancestor), bus)

    def is_ancestor_of_line(self, ancestor: Line, line: Line) -> bool:
        """Whether the tree line ancestor feeds the tree line"""
        return self.is_ancestor_of_bus(self.downstream_end(ancestor), self.upstream_end(line))

    def is_ancestor_of_one_end(self, ancestor: Line, line: Line) -> bool:
        """Whether the line links the subtree fed through the ancestor with a bus outside that subtree"""
        return self.is_ancestor(ancestor, line.node1) != self.is_ancestor(ancestor, line.node2)

    def path_to_provider(self, bus: Bus) -> list[DirectedLine]:
        """The lines from the bus up to its provider, each directed towards the provider"""
        self._update()
        path = []
        current = bus
        while (line := self._upstream_line[current.index]) is not None:
            path.append(DirectedLine.in_direction_from(line, current))
            current = self._upstream_bus[current.index]
        return path

    def path_from_provider(self, bus: Bus) -> list[DirectedLine]:
        """The lines from the provider down to the bus, each directed away from the provider"""
        return [directed.reversed() for directed in reversed(self.path_to_provider(bus))]

    def common_ancestor(self, bus1: Bus, bus2: Bus) -> Optional[Bus]:
        """The bus closest to both buses that is upstream of, or equal to, each of them.

        Returns None if the buses are in different trees.
        """
        self._update()
        if self._provider[bus1.index] is None or self._provider[bus1.index] is not self._provider[bus2.index]:
            return None
        while self._distance[bus1.index] > self._distance[bus2.index]:
            bus1 = self._upstream_bus[bus1.index]
        while self._distance[bus2.index] > self._distance[bus1.index]:
            bus2 = self._upstream_bus[bus2.index]
        while bus1 is not bus2:
            bus1 = self._upstream_bus[bus1.index]
            bus2 = self._upstream_bus[bus2.index]
        return bus1

    def path_between(self, start: Bus, end: Bus) -> list[DirectedLine]:
        """The directed path between two buses of the same tree, through their common ancestor"""
        ancestor = self.common_ancestor(start, end)
        if ancestor is None:
            raise NetworkStructureError(f"Buses {start.name} and {end.name} are not in the same tree")
        upward = self._path_up_to(start, ancestor)
        downward = [directed.reversed() for directed in reversed(self._path_up_to(end, ancestor))]
        return upward + downward

    def _path_up_to(self, bus: Bus, ancestor: Bus) -> list[DirectedLine]:
        path = []
        while bus is not ancestor:
            line = self._upstream_line[bus.index]
            path.append(DirectedLine.in_direction_from(line, bus))
            bus = self._upstream_bus[bus.index]
        return path

    def cycle_with(self, bridge: Line) -> list[DirectedLine]:
        """The cycle formed by a line that is not in the trees together with tree lines.

        If the ends of the line are in different trees, the cycle runs from one provider to the other. Otherwise it
        starts and ends at the common ancestor of the two ends.
        """
        self._update()
        node1, node2 = bridge.endpoints
        provider1 = self._provider[node1.index]
        provider2 = self._provider[node2.index]
        if provider1 is None or provider2 is None:
            raise NetworkStructureError(f"Line {bridge.name} does not connect two buses that are fed by providers")
        directed_bridge = DirectedLine.in_direction_from(bridge, node1)
        if provider1 is not provider2:
            return self.path_from_provider(node1) + [directed_bridge] + self.path_to_provider(node2)
        ancestor = self.common_ancestor(node1, node2)
        return (
            [directed.reversed() for directed in reversed(self._path_up_to(node1, ancestor))]
            + [directed_bridge]
            + self._path_up_to(node2, ancestor)
        )

    def find_cycle_with(self, switch_to_close: Line) -> list[DirectedLine]:
        """The cycle that would arise if the given open switch were closed.

        Returns an empty list if one end of the switch is unconnected, since closing it then creates no cycle.
        """
        if not self.is_open(switch_to_close):
            raise InvalidMoveError(f"Switch {switch_to_close.name} is not open")
        if not (self.is_bus_connected(switch_to_close.node1) and self.is_bus_connected(switch_to_close.node2)):
            return []
        return self.cycle_with(switch_to_close)

    def find_cycle_with_bridge(self, bridge: Line) -> list[DirectedLine]:
        """The cycle closed by one of the cycle bridges"""
        if bridge not in self.cycle_bridges:
            raise NetworkStructureError(f"Line {bridge.name} is not a cycle bridge")
        return self.cycle_with(bridge)

    def buses_in_subtree(self, bus: Bus) -> list[Bus]:
        """The bus and all buses fed through it, top-down"""
        self._update()
        result = []
        queue = deque([bus])
        while queue:
            current = queue.popleft()
            result.append(current)
            queue.extend(line.other_end(current) for line in self._downstream_lines[current.index])
        return result

    def lines_in_subtree(self, bus: Bus) -> list[Line]:
        """The tree lines below the bus, top-down"""
        return [line for current in self.buses_in_subtree(bus) for line in self._downstream_lines[current.index]]

    def buses_top_down(self) -> list[Bus]:
        """All connected buses, each after the bus that feeds it"""
        self._update()
        return list(self._top_down_order)

    def traverse(
        self,
        start: Bus,
        top_down: Optional[Callable[[Bus], None]] = None,
        bottom_up: Optional[Callable[[Bus], None]] = None,
    ) -> None:
        """Visit the subtree of the start bus, calling top_down before and bottom_up after the children of each bus"""
        order = self.buses_in_subtree(start)
        if top_down is not None:
            for bus in order:
                top_down(bus)
        if bottom_up is not None:
            for bus in reversed(order):
                bottom_up(bus)

    def number_of_buses_in_tree(self, provider: Bus) -> int:
        """The number of buses in the tree of the provider, including the provider"""
        if not provider.is_provider:
            raise NetworkStructureError(f"Bus {provider.name} is not a provider")
        if not self.is_radial:
            raise RadialityError("The number of buses in a tree is only defined for radial configurations")
        self._update()
        return sum(1 for root in self._provider if root is provider)

    # ------------------------------------------------------------------------------------------
    # Making the configuration radial
    # ------------------------------------------------------------------------------------------

    @property
    def connected_component_boundary(self) -> list[Line]:
        """The open switches that have one connected and one unconnected end"""
        return [
            line
            for line in self.open_lines
            if self.is_bus_connected(line.node1) != self.is_bus_connected(line.node2)
        ]

    def best_switch_in_cycle(self, bridge: Line) -> Optional[Line]:
        """The switch on the cycle of the bridge that is closest to the middle of the cycle.

        Opening it leaves the two ends of the cycle about equally far from their providers. Returns None if the
        cycle has no switchable line.
        """
        best_depth = (self.distance_to_provider(bridge.node1) + self.distance_to_provider(bridge.node2)) // 2
        switches = [directed.line for directed in self.cycle_with(bridge) if directed.line.switchable]
        if not switches:
            return None
        return min(switches, key=lambda line: abs(best_depth - self.distance_to_provider(line.node1)))

    @property
    def best_switch_from_each_cycle(self) -> list[Optional[Line]]:
        """One switch from the cycle of each bridge, without repetitions. Contains None for a cycle without switches."""
        result: list[Optional[Line]] = []
        for bridge in self.cycle_bridges:
            switch = self.best_switch_in_cycle(bridge)
            if switch not in result:
                result.append(switch)
        return result

    def find_radiality_conflict(self) -> Optional[tuple[list[DirectedLine], Line]]:
        """Find a cycle and a switch whose opening breaks it.

        Returns
        -------
        Optional[tuple[list[DirectedLine], Line]]
            The cycle and the switch, or None if the configuration has no cycles

        Raises
        ------
        RadialityError
            If the cycle contains no switchable line
        """
        bridges = self.cycle_bridges
        if not bridges:
            return None
        bridge = bridges[0]
        cycle = self.cycle_with(bridge)
        switch = self.best_switch_in_cycle(bridge)
        if switch is None:
            raise RadialityError(
                f"The network has a cycle with no switchable line: {', '.join(d.line.name for d in cycle)}"
            )
        return cycle, switch

    def make_radial(self, rng: Optional[np.random.Generator] = None, raise_on_fail: bool = True) -> bool:
        """Open and close switches until the configuration is radial.

        First the switches at the boundary of the connected part are closed until no more buses can be connected.
        Then one switch is opened in each cycle, one cycle at a time. Opening a line of a cycle never disconnects a
        bus, so the loop ends after at most one step per switch.

        Parameters
        ----------
        rng : Optional[np.random.Generator]
            If given, the cycle to break and the switch to open in it are drawn uniformly. Otherwise the first
            cycle is broken at the switch closest to its middle.
        raise_on_fail : bool
            Raise a RadialityError if the configuration cannot be made radial, instead of returning False

        Returns
        -------
        bool
            Whether the configuration is radial
        """
        while True:
            if not self.is_connected:
                boundary = self.connected_component_boundary
                if boundary:
                    for line in boundary:
                        self.set_switch(line, False)
                    continue

            bridges = self.cycle_bridges
            if not bridges:
                break

            if rng is None:
                switch = self.best_switch_in_cycle(bridges[0])
                cycle = self.cycle_with(bridges[0])
            else:
                bridge = bridges[int(rng.integers(len(bridges)))]
                cycle = self.cycle_with(bridge)
                switches = [directed.line for directed in cycle if directed.line.switchable]
                switch = switches[int(rng.integers(len(switches)))] if switches else None

            if switch is None:
                if raise_on_fail:
                    raise RadialityError(
                        f"The network has a cycle with no switchable line: {', '.join(d.line.name for d in cycle)}"
                    )
                return False
            self.set_switch(switch, True)

        if not self.is_connected:
            if raise_on_fail:
                raise RadialityError(
                    f"The buses {self.unconnected_buses_description()} cannot be connected to any provider"
                )
            return False
        return True

    def make_transformers_use_valid_modes(self, raise_on_fail: bool = True) -> bool:
        """Swap switches until every transformer is fed through a terminal it has modes for.

        The configuration must be radial. For the invalid transformer closest to a provider, the nearest switch
        upstream is opened and an open switch below the transformer is closed, so that the transformer is fed
        from another terminal.

        Returns
        -------
        bool
            Whether all transformers use valid modes
        """
        if not self.is_radial:
            raise RadialityError("Transformer modes can only be repaired in a radial configuration")

        while self.has_transformers_using_missing_modes:
            transformer = self._undominated_invalid_transformer()
            switch_to_open = self._switch_to_open_for_transformer(transformer.bus)
            switch_to_close = (
                self._switch_to_close_for_transformer(transformer.bus, self.downstream_end(switch_to_open))
                if switch_to_open is not None
                else None
            )
            if switch_to_open is None or switch_to_close is None:
                if raise_on_fail:
                    raise RadialityError(f"Transformer {transformer.name} cannot be connected with a valid mode.")
                return False

            logger.debug(
                f"Repairing transformer {transformer.name}: opening {switch_to_open.name}, closing {switch_to_close.name}"
            )
            self.set_switch(switch_to_open, True)
            self.set_switch(switch_to_close, False)
            if not self.is_radial:
                raise RadialityError(
                    f"Repairing transformer {transformer.name} by swapping {switch_to_open.name} and "
                    f"{switch_to_close.name} broke radiality"
                )
        return True

    def make_radial_flow_possible(self, rng: Optional[np.random.Generator] = None, raise_on_fail: bool = True) -> bool:
        """Make the configuration radial, then make every transformer use a valid mode"""
        if not self.make_radial(rng, raise_on_fail):
            return False
        return self.make_transformers_use_valid_modes(raise_on_fail)

    def _undominated_invalid_transformer(self) -> Transformer:
        """The invalid transformer that is reached first from the providers"""
        for bus in self.buses_top_down():
            if bus.is_transformer and bus.transformer in self._invalid_transformers:
                return bus.transformer
        raise RadialityError("No connected transformer uses a missing mode")

    def _switch_to_open_for_transformer(self, bus: Bus) -> Optional[Line]:
        """The closest switch upstream of the bus, if every transformer in between can be turned around"""
        while not bus.is_provider:
            line = self.upstream_line(bus)
            if line.switchable:
                return line
            bus = self.upstream_bus(bus)
            if bus.is_transformer and not bus.transformer.has_valid_modes_for_input_line(line):
                return None
        return None

    def _switch_to_close_for_transformer(self, start: Bus, forbidden_ancestor: Bus) -> Optional[Line]:
        """An open switch below the start bus that leads to a bus outside the subtree of the forbidden ancestor.

        Transformers on the way down must have valid modes when fed from below.
        """
        stack = [start]
        while stack:
            bus = stack.pop()
            for line in bus.incident_lines:
                if self.is_open(line):
                    if not self.is_ancestor_of_bus(forbidden_ancestor, line.other_end(bus)):
                        return line
                    continue
                if self.upstream_line(line.other_end(bus)) is line:
                    if bus.is_transformer and not bus.transformer.has_valid_modes_for_input_line(line):
                        continue
                    stack.append(line.other_end(bus))
        return None

    def swapping_switches_uses_valid_transformer_modes(self, switch_to_close: Line, switch_to_open: Line) -> bool:
        """Whether closing one switch and opening another keeps every transformer on a valid mode.

        Closing switch_to_close and opening switch_to_open reverses the flow on the path from the end of
        switch_to_close that is fed through switch_to_open up to switch_to_open. Each transformer on that path is
        then fed through what was one of its output lines.
        """
        start = next(
            (end for end in switch_to_close.endpoints if self.is_ancestor(switch_to_open, end)),
            None,
        )
        if start is None:
            raise InvalidMoveError(
                f"Switch {switch_to_open.name} does not feed either end of switch {switch_to_close.name}"
            )
        end = self.downstream_end(switch_to_open)
        bus = start
        while not bus.is_provider and bus is not end:
            line = self.upstream_line(bus)
            bus = self.upstream_bus(bus)
            if bus.is_transformer and not bus.transformer.has_valid_modes_for_input_line(line):
                return False
        return True

    # ------------------------------------------------------------------------------------------
    # Descriptions
    # ------------------------------------------------------------------------------------------

    def cycles_description(self) -> str:
        """Describe each cycle by its buses and closed switches"""
        lines = []
        for number, bridge in enumerate(self.cycle_bridges):
            cycle = self.cycle_with(bridge)
            buses = [cycle[0].start_node.name] + [directed.end_node.name for directed in cycle]
            switches = [directed.line.name for directed in cycle if directed.line.switchable]
            start, end = cycle[0].start_node, cycle[-1].end_node
            if start is not end:
                path = ", ".join(buses)
                lines.append(f"{number}: A path from provider {start.name} to provider {end.name} through {path}")
            else:
                lines.append(f"{number}: A cycle through {', '.join(buses)}")
            lines.append(f"\tClosed switches: {', '.join(switches) or 'none'}")
        return "\n".join(lines)

    def unconnected_buses_description(self) -> str:
        """List the buses that are not connected to a provider"""
        return ", ".join(bus.name for bus in self.unconnected_buses)

    def __str__(self) -> str:
        """Summarize the state of the configuration"""
        return (
            f"Configuration of {self.network.name}: {len(self.open_lines)} open switches, "
            f"{'radial' if self.is_radial else 'not radial'}"
        )

    # ------------------------------------------------------------------------------------------
    # Derivation of the radial structure
    # ------------------------------------------------------------------------------------------

    def _update(self) -> None:
        if self._computed_version == self.switch_settings.version:
            return
        with self._lock:
            if self._computed_version != self.switch_settings.version:
                self._compute_relations()

    def _compute_relations(self) -> None:
        version = self.switch_settings.version
        bus_count = self.network.bus_count
        upstream_line: list[Optional[Line]] = [None] * bus_count
        upstream_bus: list[Optional[Bus]] = [None] * bus_count
        provider_for: list[Optional[Bus]] = [None] * bus_count
        downstream: list[list[Line]] = [[] for _ in range(bus_count)]
        distance = [-1] * bus_count
        nominal: list[Optional[float]] = [None] * bus_count
        order: list[Bus] = []
        bridges: list[Line] = []
        bridge_set: set[Line] = set()
        invalid: list[Transformer] = []

        providers = self.network.providers
        for provider in providers:
            provider_for[provider.index] = provider
            distance[provider.index] = 0
            nominal[provider.index] = provider.generator_voltage

        for provider in providers:
            queue = deque([provider])
            while queue:
                bus = queue.popleft()
                order.append(bus)
                for line in bus.incident_lines:
                    if line is upstream_line[bus.index] or self.switch_settings.is_open(line):
                        continue
                    other = line.other_end(bus)
                    if provider_for[other.index] is not None:
                        if line not in bridge_set:
                            bridge_set.add(line)
                            bridges.append(line)
                        continue
                    provider_for[other.index] = provider
                    upstream_line[other.index] = line
                    upstream_bus[other.index] = bus
                    distance[other.index] = distance[bus.index] + 1
                    downstream[bus.index].append(line)
                    nominal[other.index] = self._nominal_voltage_below(bus, line, other, nominal, upstream_line, invalid)
                    queue.append(other)

        self._upstream_line = upstream_line
        self._upstream_bus = upstream_bus
        self._provider = provider_for
        self._downstream_lines = downstream
        self._distance = distance
        self._nominal_voltage = nominal
        self._top_down_order = order
        self._cycle_bridges = bridges
        self._invalid_transformers = invalid
        self._computed_version = version

    @staticmethod
    def _nominal_voltage_below(
        bus: Bus,
        line: Line,
        child: Bus,
        nominal: list[Optional[float]],
        upstream_line: list[Optional[Line]],
        invalid: list[Transformer],
    ) -> float:
        """The nominal voltage of a bus fed through the line from the given bus"""
        if not bus.is_transformer:
            return nominal[bus.index]
        transformer = bus.transformer
        input_line = upstream_line[bus.index]
        mode = transformer.mode_for(input_line, line) if input_line is not None else None
        if mode is None:
            if transformer not in invalid:
                invalid.append(transformer)
            return transformer.expected_voltage(child)
        return abs(mode.output_voltage(complex(nominal[bus.index])))
