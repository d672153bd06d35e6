# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The elements of a power network: buses, lines and transformers.

Elements are created through the construction API of the PowerNetwork and do not change afterwards.
Buses and lines are hashed by identity, which makes them usable as keys of the per-configuration tables.
The open/closed state of a switchable line is not stored on the line but in the SwitchSettings.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from toop_engine_switch_optimizer.exceptions import NetworkStructureError


@dataclass(frozen=True)
class Coordinate:
    """A geographic location of a bus"""

    x: float
    """Easting or longitude"""

    y: float
    """Northing or latitude"""

    @staticmethod
    def center_point(first: Coordinate, second: Coordinate) -> Coordinate:
        """Return the point halfway between two coordinates"""
        return Coordinate((first.x + second.x) / 2, (first.y + second.y) / 2)


class BusType(Enum):
    """The kind of a bus"""

    CONNECTION = "connection"
    """A plain connection point without generation or consumption"""

    CONSUMER = "consumer"
    """A bus with a power demand and voltage limits"""

    PROVIDER = "provider"
    """A bus with a generator, the root of a radial tree"""

    TRANSFORMER = "transformer"
    """The internal bus of a transformer, connected to each of its terminals by a transformer connection line"""


@dataclass(eq=False)
class Bus:
    """A node of the network"""

    index: int
    """The position of the bus in the network's bus table"""

    name: str
    """The unique name of the bus"""

    bus_type: BusType
    """What kind of bus this is"""

    v_min: float = 0.0
    """The minimum voltage (V) allowed at a consumer or connection bus"""

    v_max: float = math.inf
    """The maximum voltage (V) allowed at a consumer or connection bus"""

    generator_voltage: float = 0.0
    """The voltage (V) at which a provider generates power"""

    generation_capacity: complex = 0j
    """The maximum active and reactive generation (VA) of a provider"""

    generation_lower_bound: complex = 0j
    """The minimum active and reactive generation (VA) of a provider"""

    location: Optional[Coordinate] = None
    """The geographic location of the bus, if known"""

    transformer: Optional[Transformer] = field(default=None, repr=False)
    """For a transformer bus, the transformer it belongs to"""

    incident_lines: list[Line] = field(default_factory=list, repr=False)
    """The lines that have this bus as one of their endpoints"""

    @property
    def is_provider(self) -> bool:
        """Whether the bus is a provider"""
        return self.bus_type == BusType.PROVIDER

    @property
    def is_consumer(self) -> bool:
        """Whether the bus is a consumer"""
        return self.bus_type == BusType.CONSUMER

    @property
    def is_connection(self) -> bool:
        """Whether the bus is a plain connection bus"""
        return self.bus_type == BusType.CONNECTION

    @property
    def is_transformer(self) -> bool:
        """Whether the bus is the internal bus of a transformer"""
        return self.bus_type == BusType.TRANSFORMER

    @property
    def incident_line_count(self) -> int:
        """The number of lines connected to the bus"""
        return len(self.incident_lines)

    def __str__(self) -> str:
        """Return the bus name"""
        return self.name

    def __repr__(self) -> str:
        """Return a short representation naming the bus"""
        return f"Bus({self.name!r})"


@dataclass(eq=False)
class Line:
    """An undirected edge between two buses.

    Impedance is given in Ohm, currents in A and voltages in V.
    """

    index: int
    """The position of the line in the network's line table"""

    node1: Bus
    """The first endpoint"""

    node2: Bus
    """The second endpoint"""

    impedance: complex
    """The series impedance of the line"""

    i_max: float
    """The current capacity of the line"""

    v_max: float = math.inf
    """The maximum voltage the line can carry"""

    switchable: bool = False
    """Whether the line can be opened and closed"""

    switching_cost: float = 0.0
    """The cost of changing the state of a switchable line"""

    is_breaker: bool = False
    """Whether the line is a circuit breaker"""

    name: str = ""
    """The unique name of the line"""

    def __post_init__(self) -> None:
        """Validate the line data and set the default name"""
        if not self.name:
            self.name = f"Line {self.index}: {self.node1.name} -- {self.node2.name}"
        if self.i_max < 0:
            raise NetworkStructureError(f"Line {self.name}: IMax must be non-negative, got {self.i_max}")
        if self.v_max < 0:
            raise NetworkStructureError(f"Line {self.name}: VMax must be non-negative, got {self.v_max}")
        if self.switching_cost < 0:
            raise NetworkStructureError(f"Line {self.name}: switching cost must be non-negative, got {self.switching_cost}")

    @property
    def resistance(self) -> float:
        """The real part of the impedance"""
        return self.impedance.real

    @property
    def reactance(self) -> float:
        """The imaginary part of the impedance"""
        return self.impedance.imag

    @property
    def endpoints(self) -> tuple[Bus, Bus]:
        """Both endpoints of the line"""
        return (self.node1, self.node2)

    @property
    def is_transformer_connection(self) -> bool:
        """Whether the line connects a transformer bus to one of its terminals"""
        return self.node1.is_transformer or self.node2.is_transformer

    @property
    def transformer(self) -> Optional[Transformer]:
        """The transformer this line connects to, if it is a transformer connection"""
        if self.node1.is_transformer:
            return self.node1.transformer
        if self.node2.is_transformer:
            return self.node2.transformer
        return None

    def other_end(self, bus: Bus) -> Bus:
        """Return the endpoint that is not the given bus"""
        if bus is self.node1:
            return self.node2
        if bus is self.node2:
            return self.node1
        raise NetworkStructureError(f"Bus {bus.name} is not an endpoint of line {self.name}")

    def is_incident(self, bus: Bus) -> bool:
        """Whether the bus is one of the endpoints"""
        return bus is self.node1 or bus is self.node2

    def is_between(self, bus1: Bus, bus2: Bus) -> bool:
        """Whether the line connects the two buses, in either direction"""
        return (self.node1 is bus1 and self.node2 is bus2) or (self.node1 is bus2 and self.node2 is bus1)

    def __str__(self) -> str:
        """Return the line name"""
        return self.name

    def __repr__(self) -> str:
        """Return a short representation naming the line"""
        return f"Line({self.name!r})"


class LineDirection(Enum):
    """The direction in which a line is traversed"""

    FORWARD = 1
    """From node1 to node2"""

    REVERSE = -1
    """From node2 to node1"""

    def opposite(self) -> LineDirection:
        """Return the other direction"""
        return LineDirection.REVERSE if self == LineDirection.FORWARD else LineDirection.FORWARD


@dataclass(frozen=True)
class DirectedLine:
    """A line together with a traversal direction"""

    line: Line
    """The line"""

    direction: LineDirection = LineDirection.FORWARD
    """The direction of traversal"""

    @property
    def start_node(self) -> Bus:
        """The bus the traversal starts at"""
        return self.line.node1 if self.direction == LineDirection.FORWARD else self.line.node2

    @property
    def end_node(self) -> Bus:
        """The bus the traversal ends at"""
        return self.line.node2 if self.direction == LineDirection.FORWARD else self.line.node1

    def reversed(self) -> DirectedLine:
        """Return the same line traversed the other way"""
        return DirectedLine(self.line, self.direction.opposite())

    def adjust_for_direction(self, value: complex) -> complex:
        """Convert a value measured from node1 to node2 into a value in the traversal direction"""
        return value if self.direction == LineDirection.FORWARD else -value

    @staticmethod
    def in_direction_from(line: Line, bus: Bus) -> DirectedLine:
        """Return the line directed away from the given endpoint"""
        if bus is line.node1:
            return DirectedLine(line, LineDirection.FORWARD)
        if bus is line.node2:
            return DirectedLine(line, LineDirection.REVERSE)
        raise NetworkStructureError(f"Bus {bus.name} is not an endpoint of line {line.name}")

    @staticmethod
    def in_direction_to(line: Line, bus: Bus) -> DirectedLine:
        """Return the line directed towards the given endpoint"""
        return DirectedLine.in_direction_from(line, bus).reversed()

    def __str__(self) -> str:
        """Describe the traversal"""
        return f"{self.start_node.name} -> {self.line.name} -> {self.end_node.name}"


class TransformerOperation(Enum):
    """How a transformer mode sets its output voltage"""

    FIXED_RATIO = "fixed"
    """The output voltage is the input voltage divided by a fixed ratio"""

    AUTOMATIC = "auto"
    """The output voltage magnitude is regulated to the terminal's rated voltage, keeping the input angle"""


@dataclass(frozen=True, eq=False)
class TransformerMode:
    """A directed way of operating a transformer, from one input terminal to one output terminal"""

    transformer: Transformer = field(repr=False)
    """The transformer the mode belongs to"""

    input_bus: Bus
    """The terminal power flows in through"""

    output_bus: Bus
    """The terminal power flows out through"""

    operation: TransformerOperation
    """How the output voltage is determined"""

    ratio: float = 1.0
    """The input/output voltage ratio of a fixed ratio mode"""

    power_factor: float = 1.0
    """The fraction of the input power that reaches the output"""

    def output_voltage(self, input_voltage: complex) -> complex:
        """Return the voltage at the output terminal for the given input voltage"""
        if self.operation == TransformerOperation.AUTOMATIC:
            if input_voltage == 0:
                return 0j
            return input_voltage / abs(input_voltage) * self.transformer.expected_voltage(self.output_bus)
        return input_voltage / self.ratio

    def __str__(self) -> str:
        """Describe the mode"""
        return f"{self.input_bus.name} -> {self.output_bus.name} ({self.operation.value}, ratio {self.ratio})"


@dataclass
class TransformerModeData:
    """A mode given by terminal names, as accepted by PowerNetwork.add_transformer"""

    input_bus_name: str
    """The name of the input terminal"""

    output_bus_name: str
    """The name of the output terminal"""

    operation: TransformerOperation = TransformerOperation.FIXED_RATIO
    """How the output voltage is determined"""

    voltage_ratio: Optional[float] = None
    """The input/output voltage ratio. Required for fixed ratio operation."""

    power_factor: float = 1.0
    """The fraction of the input power that reaches the output"""

    bidirectional: bool = False
    """Also add the reverse mode, with the inverse ratio"""


class Transformer:
    """A transformer with two or three windings.

    The transformer is represented in the network by its own bus, which is connected to each terminal by a
    transformer connection line with zero impedance. Which terminal is the input depends on the direction of
    the flow through the transformer in the configuration, and the transformer must have a mode for the
    input terminal and each of the output terminals.
    """

    def __init__(self, terminal_voltages: list[tuple[Bus, float]], name: str) -> None:
        if len(terminal_voltages) not in (2, 3):
            raise NetworkStructureError(
                f"Transformer {name} must have 2 or 3 windings, got {len(terminal_voltages)} terminals"
            )
        terminals = [bus for bus, _ in terminal_voltages]
        if len({bus.name for bus in terminals}) != len(terminals):
            raise NetworkStructureError(f"Transformer {name} connects the same terminal bus more than once")
        for bus, voltage in terminal_voltages:
            if voltage <= 0:
                raise NetworkStructureError(f"Transformer {name}: voltage of terminal {bus.name} must be positive")
        self.name = name
        self.bus: Optional[Bus] = None
        self._terminal_voltages: dict[Bus, float] = dict(terminal_voltages)
        self._modes: list[TransformerMode] = []

    @property
    def terminals(self) -> list[Bus]:
        """The terminal buses, in the order they were given"""
        return list(self._terminal_voltages)

    @property
    def terminal_voltages(self) -> list[tuple[Bus, float]]:
        """The terminal buses with their rated voltages"""
        return list(self._terminal_voltages.items())

    @property
    def modes(self) -> tuple[TransformerMode, ...]:
        """All modes of operation"""
        return tuple(self._modes)

    def expected_voltage(self, terminal: Bus) -> float:
        """Return the rated voltage of a terminal"""
        if terminal not in self._terminal_voltages:
            raise NetworkStructureError(f"Bus {terminal.name} is not a terminal of transformer {self.name}")
        return self._terminal_voltages[terminal]

    def terminal_named(self, name: str) -> Bus:
        """Return the terminal with the given name"""
        for terminal in self._terminal_voltages:
            if terminal.name == name:
                return terminal
        raise NetworkStructureError(f"Transformer {self.name} has no terminal named {name}")

    def add_mode(
        self,
        input_name: str,
        output_name: str,
        operation: TransformerOperation = TransformerOperation.FIXED_RATIO,
        ratio: float = 1.0,
        power_factor: float = 1.0,
        bidirectional: bool = False,
    ) -> TransformerMode:
        """Add a mode from one terminal to another.

        Parameters
        ----------
        input_name : str
            The name of the input terminal
        output_name : str
            The name of the output terminal
        operation : TransformerOperation
            How the output voltage is determined
        ratio : float
            The input/output voltage ratio, used for fixed ratio operation
        power_factor : float
            The fraction of the input power that reaches the output, in (0, 1]
        bidirectional : bool
            If true, the reverse mode with ratio 1/ratio is added as well

        Returns
        -------
        TransformerMode
            The mode from input to output
        """
        if input_name == output_name:
            raise NetworkStructureError(f"Transformer {self.name}: a mode cannot have {input_name} as both input and output")
        if not 0.0 < power_factor <= 1.0:
            raise NetworkStructureError(f"Transformer {self.name}: power factor must be in (0, 1], got {power_factor}")
        if ratio <= 0:
            raise NetworkStructureError(f"Transformer {self.name}: voltage ratio must be positive, got {ratio}")
        input_bus = self.terminal_named(input_name)
        output_bus = self.terminal_named(output_name)
        if self.mode_for_terminals(input_bus, output_bus) is not None:
            raise NetworkStructureError(f"Transformer {self.name} already has a mode from {input_name} to {output_name}")
        mode = TransformerMode(self, input_bus, output_bus, operation, ratio, power_factor)
        self._modes.append(mode)
        if bidirectional:
            self.add_mode(output_name, input_name, operation, 1.0 / ratio, power_factor)
        return mode

    def copy_modes_from(self, other: Transformer, get_bus: Callable[[str], Bus]) -> None:
        """Add modes equal to the modes of another transformer, looking up terminals by name"""
        for mode in other.modes:
            self.add_mode(
                get_bus(mode.input_bus.name).name,
                get_bus(mode.output_bus.name).name,
                mode.operation,
                mode.ratio,
                mode.power_factor,
            )

    def mode_for_terminals(self, input_bus: Bus, output_bus: Bus) -> Optional[TransformerMode]:
        """Return the mode from the input terminal to the output terminal, or None if there is none"""
        for mode in self._modes:
            if mode.input_bus is input_bus and mode.output_bus is output_bus:
                return mode
        return None

    def mode_for(self, input_line: Line, output_line: Line) -> Optional[TransformerMode]:
        """Return the mode that takes power in through one connection line and out through another"""
        return self.mode_for_terminals(input_line.other_end(self.bus), output_line.other_end(self.bus))

    def has_valid_modes_for_input_line(self, input_line: Line) -> bool:
        """Whether the transformer has a mode from the given connection line's terminal to every other terminal"""
        input_bus = input_line.other_end(self.bus)
        return all(
            self.mode_for_terminals(input_bus, terminal) is not None
            for terminal in self._terminal_voltages
            if terminal is not input_bus
        )

    def connection_line(self, terminal: Bus) -> Line:
        """Return the transformer connection line to the given terminal"""
        for line in self.bus.incident_lines:
            if line.other_end(self.bus) is terminal:
                return line
        raise NetworkStructureError(f"Bus {terminal.name} is not connected to transformer {self.name}")

    def __str__(self) -> str:
        """Return the transformer name"""
        return self.name

    def __repr__(self) -> str:
        """Return a short representation naming the transformer"""
        return f"Transformer({self.name!r})"
