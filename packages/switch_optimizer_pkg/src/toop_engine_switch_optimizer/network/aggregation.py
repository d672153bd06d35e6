# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Network aggregation: reduce a network to a smaller, electrically equivalent network.

The aggregation removes the buses that cannot be connected to any provider, merges chains of plain lines into
serial lines, merges plain lines between the same pair of buses into parallel lines and removes dangling lines.
Switches, breakers and transformer connections are never merged, so every configuration of the aggregate network
corresponds to exactly one configuration of the original network.

Each reduction step builds a new network. Buses keep their names, and every merged line is recorded by its name
together with the lines it was merged from, so that each aggregate line can be traced back to the original lines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import logbook

from toop_engine_switch_optimizer.exceptions import NetworkStructureError
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import AggregationOptions
from toop_engine_switch_optimizer.network.elements import Bus, DirectedLine, Line, LineDirection, Transformer
from toop_engine_switch_optimizer.network.power_network import PowerNetwork
from toop_engine_switch_optimizer.network.switch_settings import SwitchSettings

logger = logbook.Logger(__name__)


class MergeType(Enum):
    """How an aggregate line was formed"""

    SINGLE_LINE = "single"
    """The line is a copy of one original line"""

    SERIAL = "serial"
    """The line replaces a chain of lines"""

    PARALLEL = "parallel"
    """The line replaces lines between the same two buses"""


@dataclass(frozen=True, eq=False)
class MergedLine:
    """The record of how an aggregate line relates to the lines of the original network.

    The record is oriented like the aggregate line: it starts at the bus named like the aggregate line's node1.
    """

    merge_type: MergeType
    """How the line was formed"""

    impedance: complex
    """The impedance of the aggregate line"""

    i_max: float
    """The current capacity of the aggregate line"""

    parts: tuple[DirectedMergedLine, ...] = ()
    """For serial and parallel merges, the merged parts. Serial parts are in order from start to end, parallel parts
    are all directed from start to end."""

    line: Optional[DirectedLine] = None
    """For a single line, the original line"""

    @staticmethod
    def single(line: Line) -> MergedLine:
        """Return the record of an original line that was not merged"""
        return MergedLine(MergeType.SINGLE_LINE, line.impedance, line.i_max, (), DirectedLine(line, LineDirection.FORWARD))

    @property
    def single_line(self) -> Line:
        """The original line of a single line record"""
        if self.line is None:
            raise NetworkStructureError(f"A {self.merge_type.value} merge does not consist of a single line")
        return self.line.line

    @property
    def lines(self) -> list[Line]:
        """All original lines that make up the aggregate line"""
        return [directed.line for directed in self.directed_lines]

    @property
    def directed_lines(self) -> list[DirectedLine]:
        """All original lines, each directed from the start towards the end of the aggregate line"""
        if self.line is not None:
            return [self.line]
        return [directed for part in self.parts for directed in part.directed_lines]

    @property
    def one_directed_path(self) -> list[DirectedLine]:
        """One path of original lines from start to end. For parallel merges, the part with the smallest line name."""
        if self.line is not None:
            return [self.line]
        if self.merge_type == MergeType.SERIAL:
            return [directed for part in self.parts for directed in part.one_directed_path]
        chosen = min(self.parts, key=lambda part: min(line.name for line in part.merged_line.lines))
        return chosen.one_directed_path

    @property
    def start_node(self) -> Bus:
        """The original bus where the aggregate line starts"""
        return self.line.start_node if self.line is not None else self.parts[0].start_node

    @property
    def end_node(self) -> Bus:
        """The original bus where the aggregate line ends"""
        return self.line.end_node if self.line is not None else self.parts[-1].end_node

    def __str__(self) -> str:
        """Describe the merge"""
        return f"{self.merge_type.value} merge of {', '.join(line.name for line in self.lines)}"


@dataclass(frozen=True)
class DirectedMergedLine:
    """A merge record traversed in a given direction"""

    merged_line: MergedLine
    """The merge record"""

    direction: LineDirection = LineDirection.FORWARD
    """FORWARD traverses the record from its start to its end"""

    @property
    def merge_type(self) -> MergeType:
        """How the line was formed"""
        return self.merged_line.merge_type

    @property
    def impedance(self) -> complex:
        """The impedance of the merged line"""
        return self.merged_line.impedance

    @property
    def i_max(self) -> float:
        """The current capacity of the merged line"""
        return self.merged_line.i_max

    @property
    def single_line(self) -> Line:
        """The original line of a single line record"""
        return self.merged_line.single_line

    @property
    def is_forward(self) -> bool:
        """Whether the record is traversed from its start to its end"""
        return self.direction == LineDirection.FORWARD

    @property
    def parts(self) -> list[DirectedMergedLine]:
        """The parts, in the direction of traversal"""
        parts = list(self.merged_line.parts)
        if self.is_forward:
            return parts
        if self.merge_type == MergeType.SERIAL:
            parts.reverse()
        return [part.reversed() for part in parts]

    @property
    def directed_lines(self) -> list[DirectedLine]:
        """All original lines, directed in the direction of traversal"""
        lines = self.merged_line.directed_lines
        if self.is_forward:
            return lines
        return [directed.reversed() for directed in lines]

    @property
    def one_directed_path(self) -> list[DirectedLine]:
        """One path of original lines in the direction of traversal"""
        path = self.merged_line.one_directed_path
        if self.is_forward:
            return path
        return [directed.reversed() for directed in reversed(path)]

    @property
    def start_node(self) -> Bus:
        """The original bus where the traversal starts"""
        return self.merged_line.start_node if self.is_forward else self.merged_line.end_node

    @property
    def end_node(self) -> Bus:
        """The original bus where the traversal ends"""
        return self.merged_line.end_node if self.is_forward else self.merged_line.start_node

    def reversed(self) -> DirectedMergedLine:
        """The same record traversed in the other direction"""
        return DirectedMergedLine(self.merged_line, self.direction.opposite())


@dataclass(eq=False)
class NetworkAggregation:
    """The mapping between an original network and its aggregate.

    Build it with NetworkAggregation.aggregate, or with NetworkAggregation.identity for an aggregate that is a
    plain copy.
    """

    original_network: PowerNetwork
    """The network that was aggregated"""

    aggregate_network: Optional[PowerNetwork] = None
    """The reduced network"""

    unconnected_buses: list[Bus] = field(default_factory=list)
    """The original buses that cannot be connected to any provider"""

    dangling_lines: list[Line] = field(default_factory=list)
    """The original lines that were removed because they lead to connection buses only"""

    dangling_buses: list[Bus] = field(default_factory=list)
    """The original buses that were removed together with dangling lines"""

    _merges: dict[str, MergedLine] = field(default_factory=dict, repr=False)

    @staticmethod
    def aggregate(network: PowerNetwork, options: Optional[AggregationOptions] = None) -> NetworkAggregation:
        """Aggregate the network.

        The reduction steps are repeated, always running the step that was run longest ago, until no step
        changes the number of lines any more.

        Parameters
        ----------
        network : PowerNetwork
            The network to aggregate
        options : Optional[AggregationOptions]
            Which reduction steps to use. All are used if not given.

        Returns
        -------
        NetworkAggregation
            The aggregation
        """
        options = options if options is not None else AggregationOptions()
        aggregation = NetworkAggregation(network)
        current = aggregation._remove_unconnected_components(network)

        steps: list[Callable[[PowerNetwork], PowerNetwork]] = []
        if options.remove_dangling_lines:
            steps.append(aggregation._remove_dangling_lines)
        if options.aggregate_parallel_lines:
            steps.append(aggregation._aggregate_parallel_lines)
        if options.aggregate_serial_lines:
            steps.append(aggregation._aggregate_serial_lines)

        size = current.line_count
        size_when_last_run = {step: size + 1 for step in steps}
        while steps:
            step = max(steps, key=lambda candidate: size_when_last_run[candidate])
            if size_when_last_run[step] == size:
                break
            current = step(current)
            size = current.line_count
            size_when_last_run[step] = size

        current.name = f"Aggregate of {network.name}"
        aggregation.aggregate_network = current
        logger.info(
            f"Aggregated network {network.name} from {network.bus_count} buses and {network.line_count} lines "
            f"to {current.bus_count} buses and {current.line_count} lines"
        )
        return aggregation

    @staticmethod
    def identity(network: PowerNetwork) -> NetworkAggregation:
        """Return an aggregation whose aggregate network is a plain copy of the network"""
        aggregation = NetworkAggregation(network)
        aggregation.aggregate_network = aggregation._trim(
            network, f"Copy of {network.name}", lambda _: True, lambda _: True, lambda _: True
        )
        return aggregation

    # ------------------------------------------------------------------------------------------
    # Mapping between the networks
    # ------------------------------------------------------------------------------------------

    def other_network(self, network: PowerNetwork) -> PowerNetwork:
        """Return the aggregate network for the original and vice versa"""
        if network is self.aggregate_network:
            return self.original_network
        if network is self.original_network:
            return self.aggregate_network
        raise NetworkStructureError(f"Network {network.name} is not part of the aggregation")

    def merge_info_for(self, line: Line) -> MergedLine:
        """Return how a line of the aggregate network was formed from original lines"""
        merge = self._merges.get(line.name)
        if merge is not None:
            return merge
        return MergedLine.single(self.original_network.get_line(line.name))

    def directed_merge_info_for(self, line: DirectedLine) -> DirectedMergedLine:
        """Return the merge record of an aggregate line, in the direction of the directed line"""
        return DirectedMergedLine(self.merge_info_for(line.line), line.direction)

    def one_disaggregated_path(self, path: list[DirectedLine]) -> list[DirectedLine]:
        """Translate a path of aggregate lines into one path of original lines"""
        return [
            original for directed in path for original in self.directed_merge_info_for(directed).one_directed_path
        ]

    def original_bus(self, bus: Bus) -> Bus:
        """The original bus of an aggregate bus"""
        return self.original_network.get_bus(bus.name)

    def aggregate_bus(self, bus: Bus) -> Optional[Bus]:
        """The aggregate bus of an original bus, or None if the bus was eliminated"""
        return self.aggregate_network.try_get_bus(bus.name)

    def aggregate_line_for(self, line: Line) -> Optional[Line]:
        """The aggregate line that contains the original line, or None if the line was removed"""
        direct = self.aggregate_network.try_get_line(line.name)
        if direct is not None and direct.name not in self._merges:
            return direct
        for aggregate_line in self.aggregate_network.lines:
            merge = self._merges.get(aggregate_line.name)
            if merge is not None and any(original is line for original in merge.lines):
                return aggregate_line
        return None

    def aggregate_settings(self, settings: SwitchSettings) -> SwitchSettings:
        """Translate switch settings of the original network to the aggregate network"""
        result = SwitchSettings(self.aggregate_network)
        result.copy_from(settings)
        return result

    def disaggregate_settings(self, settings: SwitchSettings, missing_value: bool = False) -> SwitchSettings:
        """Translate switch settings of the aggregate network to the original network.

        Switches that were removed with unconnected or dangling parts are set to missing_value (open if true).
        """
        result = SwitchSettings(self.original_network)
        result.copy_from(settings, missing_value)
        return result

    # ------------------------------------------------------------------------------------------
    # Reduction steps
    # ------------------------------------------------------------------------------------------

    def _remove_unconnected_components(self, network: PowerNetwork) -> PowerNetwork:
        """Remove the buses that are not connected to a provider even with all switches closed"""
        unconnected = {bus for component in network.components_without_provider() for bus in component}
        self.unconnected_buses = sorted(unconnected, key=lambda bus: bus.index)
        if not unconnected:
            return self._trim(network, network.name, lambda _: True, lambda _: True, lambda _: True)
        logger.debug(f"Removing {len(unconnected)} buses that cannot be connected to a provider")
        return self._trim(
            network,
            network.name,
            keep_bus=lambda bus: bus not in unconnected,
            keep_line=lambda line: line.node1 not in unconnected and line.node2 not in unconnected,
            keep_transformer=lambda transformer: transformer.bus not in unconnected,
        )

    def _remove_dangling_lines(self, network: PowerNetwork) -> PowerNetwork:
        """Remove chains of lines that end in connection buses without other lines"""
        buses_to_remove: set[Bus] = set()
        lines_to_remove: set[Line] = set()

        for start in network.buses:
            if start.incident_line_count != 1:
                continue
            bus = start
            line = bus.incident_lines[0]
            while bus.is_connection and not line.is_transformer_connection:
                buses_to_remove.add(bus)
                lines_to_remove.add(line)
                bus = line.other_end(bus)
                if bus.incident_line_count != 2:
                    break
                line = next(other for other in bus.incident_lines if other is not line)

        if not buses_to_remove:
            return network

        for bus in sorted(buses_to_remove, key=lambda bus: bus.index):
            self.dangling_buses.append(self.original_network.get_bus(bus.name))
        for line in sorted(lines_to_remove, key=lambda line: line.index):
            merge = self.merge_info_for(line)
            self.dangling_lines.extend(merge.lines)
            self.dangling_buses.extend(self._interior_buses(merge))
        logger.debug(f"Removing {len(lines_to_remove)} dangling lines")

        return self._trim(
            network,
            network.name,
            keep_bus=lambda bus: bus not in buses_to_remove,
            keep_line=lambda line: line not in lines_to_remove,
            keep_transformer=lambda _: True,
        )

    @staticmethod
    def _interior_buses(merge: MergedLine) -> list[Bus]:
        """The original buses inside a merged line, which were eliminated by serial merges"""
        ends = {merge.start_node, merge.end_node}
        buses = dict.fromkeys(bus for line in merge.lines for bus in line.endpoints)
        return [bus for bus in buses if bus not in ends]

    def _aggregate_parallel_lines(self, network: PowerNetwork) -> PowerNetwork:
        """Merge plain lines that connect the same pair of buses"""
        result = PowerNetwork(network.name)
        for bus in network.buses:
            if not bus.is_transformer:
                result.copy_bus_from(bus)

        replaced: set[Line] = set()
        for group in network.parallel_non_switchable_lines():
            lines = sorted(group, key=lambda line: line.name)
            start, end = lines[0].node1, lines[0].node2

            if all(line.impedance != 0 for line in lines):
                impedance = 1 / sum(1 / line.impedance for line in lines)
                i_max = min(line.i_max * abs(line.impedance) for line in lines) / abs(impedance)
            else:
                # Current flows only through the zero impedance lines
                impedance = 0j
                i_max = sum(line.i_max for line in lines if line.impedance == 0)
            v_max = min(line.v_max for line in lines)
            name = "[" + " || ".join(line.name for line in lines) + "]"

            new_line = result.add_line(start.name, end.name, impedance, i_max, v_max, name=name)
            replaced.update(lines)
            self._record_merge(
                new_line, MergeType.PARALLEL, [DirectedLine.in_direction_from(line, start) for line in lines]
            )

        for line in network.lines:
            if not line.is_transformer_connection and line not in replaced:
                self._copy_line(line, result)
        for transformer in network.transformers:
            result.copy_transformer_from(transformer)
        return result

    def _aggregate_serial_lines(self, network: PowerNetwork) -> PowerNetwork:
        """Merge chains of plain lines through connection buses with exactly two lines"""
        handled: set[Line] = set()
        sequences: list[list[DirectedLine]] = []
        for bus in network.buses:
            if not self._can_be_eliminated(bus) or bus.incident_lines[0] in handled:
                continue
            sequence = self._serial_sequence_around(bus)
            handled.update(directed.line for directed in sequence)
            sequences.append(sequence)

        if not sequences:
            return network

        eliminated = {directed.start_node for sequence in sequences for directed in sequence[1:]}
        merged = {directed.line for sequence in sequences for directed in sequence}

        result = PowerNetwork(network.name)
        for bus in network.buses:
            if not bus.is_transformer and bus not in eliminated:
                result.copy_bus_from(bus)

        for sequence in sequences:
            start, end = sequence[0].start_node, sequence[-1].end_node
            if start is end:
                # A loop: keep the first line, the parallel step merges the rest with it
                first = sequence[0]
                start = first.end_node
                result.copy_bus_from(start)
                self._copy_line(first.line, result)
                sequence = sequence[1:]

            impedance = sum((directed.line.impedance for directed in sequence), 0j)
            i_max = min(directed.line.i_max for directed in sequence)
            v_max = min(directed.line.v_max for directed in sequence)
            name = "+".join(directed.line.name for directed in sequence)
            new_line = result.add_line(start.name, end.name, impedance, i_max, v_max, name=name)
            self._record_merge(new_line, MergeType.SERIAL, sequence)

        for line in network.lines:
            if not line.is_transformer_connection and line not in merged:
                self._copy_line(line, result)
        for transformer in network.transformers:
            result.copy_transformer_from(transformer)
        return result

    @staticmethod
    def _can_be_eliminated(bus: Bus) -> bool:
        """Whether the bus is a connection bus between exactly two plain lines"""
        return (
            bus.is_connection
            and bus.incident_line_count == 2
            and all(
                not line.switchable and not line.is_breaker and not line.is_transformer_connection
                for line in bus.incident_lines
            )
        )

    def _serial_sequence_around(self, bus: Bus) -> list[DirectedLine]:
        """The longest chain of lines through eliminable buses that passes the bus"""
        first, second = bus.incident_lines
        sequence = [DirectedLine.in_direction_to(first, bus), DirectedLine.in_direction_from(second, bus)]
        while True:
            start, end = sequence[0].start_node, sequence[-1].end_node
            if start is end and self._can_be_eliminated(start):
                raise NetworkStructureError(
                    f"The network has a cycle of lines that can be serially aggregated, through bus {start.name}"
                )
            if self._can_be_eliminated(start):
                line = next(other for other in start.incident_lines if other is not sequence[0].line)
                sequence.insert(0, DirectedLine.in_direction_to(line, start))
                continue
            if self._can_be_eliminated(end):
                line = next(other for other in end.incident_lines if other is not sequence[-1].line)
                sequence.append(DirectedLine.in_direction_from(line, end))
                continue
            return sequence

    # ------------------------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------------------------

    def _record_merge(self, new_line: Line, merge_type: MergeType, lines: list[DirectedLine]) -> MergedLine:
        parts = tuple(self.directed_merge_info_for(directed) for directed in lines)
        merge = MergedLine(merge_type, new_line.impedance, new_line.i_max, parts)
        self._merges[new_line.name] = merge
        return merge

    @staticmethod
    def _copy_line(line: Line, network: PowerNetwork) -> Line:
        return network.add_line(
            line.node1.name,
            line.node2.name,
            line.impedance,
            line.i_max,
            line.v_max,
            switchable=line.switchable,
            switching_cost=line.switching_cost,
            is_breaker=line.is_breaker,
            name=line.name,
        )

    def _trim(
        self,
        network: PowerNetwork,
        name: str,
        keep_bus: Callable[[Bus], bool],
        keep_line: Callable[[Line], bool],
        keep_transformer: Callable[[Transformer], bool],
    ) -> PowerNetwork:
        """Copy the network, leaving out the elements rejected by the filters"""
        result = PowerNetwork(name)
        for bus in network.buses:
            if not bus.is_transformer and keep_bus(bus):
                result.copy_bus_from(bus)
        for line in network.lines:
            if not line.is_transformer_connection and keep_line(line):
                self._copy_line(line, result)
        for transformer in network.transformers:
            if keep_transformer(transformer):
                result.copy_transformer_from(transformer)
        return result
