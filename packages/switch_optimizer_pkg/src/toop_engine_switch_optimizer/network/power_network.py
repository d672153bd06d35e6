# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The power network: the owner of all buses, lines and transformers.

A network is built once through the construction API (add_transition, add_consumer, add_provider, add_line and
add_transformer) and is not modified afterwards. Buses and lines are stored in tables addressed by their index,
and by their unique names.
"""

from __future__ import annotations

import math
from collections import defaultdict, deque
from typing import Iterable, Optional

import networkx as nx

from toop_engine_switch_optimizer.exceptions import DuplicateNameError, NetworkStructureError
from toop_engine_switch_optimizer.network.elements import (
    Bus,
    BusType,
    Coordinate,
    Line,
    Transformer,
    TransformerModeData,
    TransformerOperation,
)


class PowerNetwork:
    """A power network of buses, lines and transformers"""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._buses: list[Bus] = []
        self._bus_by_name: dict[str, Bus] = {}
        self._lines: list[Line] = []
        self._line_by_name: dict[str, Line] = {}
        self._transformers: list[Transformer] = []

    # ------------------------------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------------------------------

    def add_transition(
        self, v_min: float = 0.0, v_max: float = math.inf, name: Optional[str] = None, location: Optional[Coordinate] = None
    ) -> Bus:
        """Add a connection bus without generation or consumption"""
        self._check_voltage_bounds(v_min, v_max, name)
        return self._register_bus(BusType.CONNECTION, name, v_min=v_min, v_max=v_max, location=location)

    def add_consumer(
        self, v_min: float = 0.0, v_max: float = math.inf, name: Optional[str] = None, location: Optional[Coordinate] = None
    ) -> Bus:
        """Add a consumer bus with the given voltage limits"""
        self._check_voltage_bounds(v_min, v_max, name)
        return self._register_bus(BusType.CONSUMER, name, v_min=v_min, v_max=v_max, location=location)

    def add_provider(
        self,
        generator_voltage: float,
        generation_capacity: complex,
        generation_lower_bound: complex = 0j,
        name: Optional[str] = None,
        location: Optional[Coordinate] = None,
    ) -> Bus:
        """Add a provider bus.

        Parameters
        ----------
        generator_voltage : float
            The voltage (V) of the generator
        generation_capacity : complex
            The maximum active and reactive generation (VA)
        generation_lower_bound : complex
            The minimum active and reactive generation (VA)
        name : Optional[str]
            The unique name of the bus. The bus index is used if not given.
        location : Optional[Coordinate]
            The location of the bus

        Returns
        -------
        Bus
            The new provider bus
        """
        label = name if name is not None else str(len(self._buses))
        if generator_voltage <= 0:
            raise NetworkStructureError(f"Provider {label}: generator voltage must be positive, got {generator_voltage}")
        if (
            generation_lower_bound.real > generation_capacity.real
            or generation_lower_bound.imag > generation_capacity.imag
        ):
            raise NetworkStructureError(
                f"Provider {label}: generation lower bound {generation_lower_bound} exceeds capacity {generation_capacity}"
            )
        return self._register_bus(
            BusType.PROVIDER,
            name,
            generator_voltage=generator_voltage,
            generation_capacity=complex(generation_capacity),
            generation_lower_bound=complex(generation_lower_bound),
            location=location,
        )

    def add_line(
        self,
        bus1: str,
        bus2: str,
        impedance: complex,
        i_max: float,
        v_max: float = math.inf,
        switchable: bool = False,
        switching_cost: float = 0.0,
        is_breaker: bool = False,
        name: Optional[str] = None,
    ) -> Line:
        """Add a line between two existing buses, given by name.

        Parameters
        ----------
        bus1 : str
            The name of the first endpoint
        bus2 : str
            The name of the second endpoint
        impedance : complex
            The impedance of the line (Ohm)
        i_max : float
            The current capacity of the line (A)
        v_max : float
            The maximum voltage of the line (V)
        switchable : bool
            Whether the line is a switch
        switching_cost : float
            The cost of changing the state of the switch
        is_breaker : bool
            Whether the line is a circuit breaker
        name : Optional[str]
            The unique name of the line. A name is generated from the endpoints if not given.

        Returns
        -------
        Line
            The new line
        """
        node1 = self.get_bus(bus1)
        node2 = self.get_bus(bus2)
        label = name or f"{bus1} -- {bus2}"
        if node1 is node2:
            raise NetworkStructureError(f"Line {label} connects bus {bus1} to itself")
        for node in (node1, node2):
            if node.is_transformer:
                raise NetworkStructureError(
                    f"Line {label} cannot be connected to transformer bus {node.name}, connect it to a terminal instead"
                )
        return self._register_line(
            node1, node2, complex(impedance), i_max, v_max, switchable, switching_cost, is_breaker, name
        )

    def add_transformer(
        self,
        terminal_voltages: Iterable[tuple[str, float]],
        modes: Optional[Iterable[TransformerModeData]] = None,
        name: Optional[str] = None,
        location: Optional[Coordinate] = None,
        line_names: Optional[list[str]] = None,
    ) -> Transformer:
        """Add a transformer connecting the given terminal buses.

        A transformer bus is created with the name of the transformer, and a zero impedance transformer connection
        line is added from it to each terminal.

        Parameters
        ----------
        terminal_voltages : Iterable[tuple[str, float]]
            The names of the terminal buses with their rated voltages
        modes : Optional[Iterable[TransformerModeData]]
            The modes of operation. Modes can also be added later with Transformer.add_mode.
        name : Optional[str]
            The name of the transformer and its bus
        location : Optional[Coordinate]
            The location of the transformer
        line_names : Optional[list[str]]
            Names for the connection lines, one per terminal

        Returns
        -------
        Transformer
            The new transformer
        """
        terminals = [(self.get_bus(bus_name), voltage) for bus_name, voltage in terminal_voltages]
        bus_name = name if name is not None else f"Transformer {len(self._transformers)}"
        transformer = Transformer(terminals, bus_name)
        if line_names is not None and len(line_names) != len(terminals):
            raise NetworkStructureError(
                f"Transformer {bus_name}: got {len(line_names)} line names for {len(terminals)} terminals"
            )
        for terminal in transformer.terminals:
            if terminal.is_transformer:
                raise NetworkStructureError(
                    f"Transformer {bus_name} cannot have transformer bus {terminal.name} as a terminal"
                )

        bus = self._register_bus(BusType.TRANSFORMER, bus_name, location=location, transformer=transformer)
        transformer.bus = bus
        self._transformers.append(transformer)
        for position, terminal in enumerate(transformer.terminals):
            self._register_line(
                terminal,
                bus,
                0j,
                math.inf,
                math.inf,
                switchable=False,
                switching_cost=0.0,
                is_breaker=False,
                name=line_names[position] if line_names is not None else None,
            )

        for mode in modes or []:
            if mode.voltage_ratio is None and mode.operation == TransformerOperation.FIXED_RATIO:
                raise NetworkStructureError(
                    f"Transformer {bus_name}: fixed ratio mode {mode.input_bus_name} -> {mode.output_bus_name} "
                    "was given without a voltage ratio"
                )
            transformer.add_mode(
                mode.input_bus_name,
                mode.output_bus_name,
                mode.operation,
                mode.voltage_ratio if mode.voltage_ratio is not None else 1.0,
                mode.power_factor,
                mode.bidirectional,
            )
        return transformer

    def copy_bus_from(self, bus: Bus, name: Optional[str] = None) -> Bus:
        """Add a bus with the same type and data as a bus of another network"""
        new_name = name if name is not None else bus.name
        if bus.is_provider:
            return self.add_provider(
                bus.generator_voltage, bus.generation_capacity, bus.generation_lower_bound, new_name, bus.location
            )
        if bus.is_consumer:
            return self.add_consumer(bus.v_min, bus.v_max, new_name, bus.location)
        if bus.is_connection:
            return self.add_transition(bus.v_min, bus.v_max, new_name, bus.location)
        raise NetworkStructureError(f"Bus {bus.name} is a transformer bus, copy the transformer instead")

    def copy_transformer_from(self, transformer: Transformer, name: Optional[str] = None) -> Transformer:
        """Add a transformer like one of another network, with the same terminal names, line names and modes"""
        line_names = [transformer.connection_line(terminal).name for terminal in transformer.terminals]
        copy = self.add_transformer(
            [(terminal.name, voltage) for terminal, voltage in transformer.terminal_voltages],
            modes=None,
            name=name if name is not None else transformer.name,
            location=transformer.bus.location,
            line_names=line_names,
        )
        copy.copy_modes_from(transformer, self.get_bus)
        return copy

    # ------------------------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------------------------

    @property
    def buses(self) -> list[Bus]:
        """All buses, in index order"""
        return list(self._buses)

    @property
    def bus_count(self) -> int:
        """The number of buses"""
        return len(self._buses)

    @property
    def lines(self) -> list[Line]:
        """All lines, in index order"""
        return list(self._lines)

    @property
    def line_count(self) -> int:
        """The number of lines"""
        return len(self._lines)

    @property
    def transformers(self) -> list[Transformer]:
        """All transformers"""
        return list(self._transformers)

    @property
    def providers(self) -> list[Bus]:
        """All provider buses"""
        return [bus for bus in self._buses if bus.is_provider]

    @property
    def consumers(self) -> list[Bus]:
        """All consumer buses"""
        return [bus for bus in self._buses if bus.is_consumer]

    @property
    def switchable_lines(self) -> list[Line]:
        """All switchable lines"""
        return [line for line in self._lines if line.switchable]

    @property
    def breakers(self) -> list[Line]:
        """All breakers"""
        return [line for line in self._lines if line.is_breaker]

    @property
    def max_generator_voltage(self) -> float:
        """The highest generator voltage of any provider"""
        return max((bus.generator_voltage for bus in self.providers), default=0.0)

    @property
    def max_network_voltage(self) -> float:
        """The highest voltage that can occur in the network, from generators or transformer terminals"""
        transformer_voltages = (
            voltage for transformer in self._transformers for _, voltage in transformer.terminal_voltages
        )
        return max(self.max_generator_voltage, max(transformer_voltages, default=0.0))

    def bus(self, index: int) -> Bus:
        """Return the bus with the given index"""
        return self._buses[index]

    def line(self, index: int) -> Line:
        """Return the line with the given index"""
        return self._lines[index]

    def has_bus(self, name: str) -> bool:
        """Whether a bus with the given name exists"""
        return name in self._bus_by_name

    def has_line(self, name: str) -> bool:
        """Whether a line with the given name exists"""
        return name in self._line_by_name

    def get_bus(self, name: str) -> Bus:
        """Return the bus with the given name"""
        try:
            return self._bus_by_name[name]
        except KeyError:
            raise NetworkStructureError(f"The network has no bus named {name}") from None

    def get_line(self, name: str) -> Line:
        """Return the line with the given name"""
        try:
            return self._line_by_name[name]
        except KeyError:
            raise NetworkStructureError(f"The network has no line named {name}") from None

    def try_get_bus(self, name: str) -> Optional[Bus]:
        """Return the bus with the given name, or None"""
        return self._bus_by_name.get(name)

    def try_get_line(self, name: str) -> Optional[Line]:
        """Return the line with the given name, or None"""
        return self._line_by_name.get(name)

    def lines_between(self, bus1: Bus, bus2: Bus) -> list[Line]:
        """Return all lines between two buses"""
        return [line for line in bus1.incident_lines if line.is_between(bus1, bus2)]

    def parallel_non_switchable_lines(self) -> list[list[Line]]:
        """Return the groups of two or more plain lines that connect the same pair of buses.

        Switches, breakers and transformer connections are not part of any group.
        """
        groups: dict[tuple[int, int], list[Line]] = defaultdict(list)
        for line in self._lines:
            if line.switchable or line.is_breaker or line.is_transformer_connection:
                continue
            key = tuple(sorted((line.node1.index, line.node2.index)))
            groups[key].append(line)
        return [group for group in groups.values() if len(group) >= 2]

    def closest_switches(self, bus: Bus) -> list[Line]:
        """Return the switches that can be reached from the bus without passing another switch"""
        visited = {bus}
        switches: list[Line] = []
        seen_switches: set[int] = set()
        queue = deque([bus])
        while queue:
            current = queue.popleft()
            for line in current.incident_lines:
                if line.switchable:
                    if line.index not in seen_switches:
                        seen_switches.add(line.index)
                        switches.append(line)
                    continue
                other = line.other_end(current)
                if other not in visited:
                    visited.add(other)
                    queue.append(other)
        return switches

    def to_networkx(self, include_open_lines: bool = True, is_open: Optional[dict[str, bool]] = None) -> nx.MultiGraph:
        """Export the network as a networkx MultiGraph with bus names as nodes and line names as edge keys.

        Parameters
        ----------
        include_open_lines : bool
            If false, the switches marked open in is_open are left out
        is_open : Optional[dict[str, bool]]
            The open state of switchable lines by name, used when include_open_lines is false

        Returns
        -------
        nx.MultiGraph
            The graph. Nodes carry the bus type, edges the impedance and the switch and breaker flags.
        """
        graph = nx.MultiGraph(name=self.name)
        for bus in self._buses:
            graph.add_node(bus.name, bus_type=bus.bus_type.value, index=bus.index)
        for line in self._lines:
            if not include_open_lines and is_open is not None and is_open.get(line.name, False):
                continue
            graph.add_edge(
                line.node1.name,
                line.node2.name,
                key=line.name,
                impedance=line.impedance,
                switchable=line.switchable,
                is_breaker=line.is_breaker,
            )
        return graph

    def components_without_provider(self) -> list[list[Bus]]:
        """Return the groups of buses that are not connected to any provider even with all switches closed"""
        graph = self.to_networkx()
        result = []
        for component in nx.connected_components(graph):
            buses = [self._bus_by_name[name] for name in component]
            if not any(bus.is_provider for bus in buses):
                result.append(sorted(buses, key=lambda b: b.index))
        return sorted(result, key=lambda buses: buses[0].index)

    def describe(self) -> str:
        """Return a short summary of the network size"""
        return (
            f"Network {self.name}: {len(self._buses)} buses ({len(self.providers)} providers, "
            f"{len(self.consumers)} consumers), {len(self._lines)} lines ({len(self.switchable_lines)} switchable), "
            f"{len(self._transformers)} transformers"
        )

    def __str__(self) -> str:
        """Return the network name"""
        return self.name

    # ------------------------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------------------------

    @staticmethod
    def _check_voltage_bounds(v_min: float, v_max: float, name: Optional[str]) -> None:
        if v_min < 0 or v_min > v_max:
            raise NetworkStructureError(f"Bus {name}: voltage limits [{v_min}, {v_max}] are inconsistent")

    def _register_bus(self, bus_type: BusType, name: Optional[str], **data: object) -> Bus:
        index = len(self._buses)
        name = name if name is not None else str(index)
        if name in self._bus_by_name:
            raise DuplicateNameError(f"Name {name} already exists: the network has another bus with this name")
        bus = Bus(index=index, name=name, bus_type=bus_type, **data)
        self._buses.append(bus)
        self._bus_by_name[name] = bus
        return bus

    def _register_line(
        self,
        node1: Bus,
        node2: Bus,
        impedance: complex,
        i_max: float,
        v_max: float,
        switchable: bool,
        switching_cost: float,
        is_breaker: bool,
        name: Optional[str],
    ) -> Line:
        index = len(self._lines)
        line = Line(
            index=index,
            node1=node1,
            node2=node2,
            impedance=impedance,
            i_max=i_max,
            v_max=v_max,
            switchable=switchable,
            switching_cost=switching_cost,
            is_breaker=is_breaker,
            name=name or "",
        )
        if line.name in self._line_by_name:
            raise DuplicateNameError(f"Name {line.name} already exists: the network has another line with this name")
        node1.incident_lines.append(line)
        node2.incident_lines.append(line)
        self._lines.append(line)
        self._line_by_name[line.name] = line
        return line
