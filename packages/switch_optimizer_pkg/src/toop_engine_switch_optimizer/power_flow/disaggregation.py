# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Mapping of a flow on an aggregate network back to the original network.

Bus voltages and provider generation are copied by name. The current and power of each aggregate line are
distributed over the original lines it was merged from: serial parts carry the same current and lose voltage and
power along the chain, parallel parts split the current in inverse proportion to their impedances. Lines that were
removed as dangling carry no flow, and their buses get the voltage of the bus they hang from.
"""

from __future__ import annotations

import math
from collections import deque

from toop_engine_switch_optimizer.network.aggregation import DirectedMergedLine, MergeType, NetworkAggregation
from toop_engine_switch_optimizer.network.elements import DirectedLine, Line
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_demands import PowerDemands
from toop_engine_switch_optimizer.power_flow.flow import PowerFlow


def disaggregate_flow(
    aggregate_flow: PowerFlow,
    aggregation: NetworkAggregation,
    original_configuration: NetworkConfiguration,
    original_demands: PowerDemands,
) -> PowerFlow:
    """Produce the flow on the original network that is equivalent to a flow on the aggregate network.

    Parameters
    ----------
    aggregate_flow : PowerFlow
        A flow computed on the aggregate network
    aggregation : NetworkAggregation
        The aggregation that produced the aggregate network
    original_configuration : NetworkConfiguration
        The configuration of the original network that corresponds to the aggregate flow's configuration
    original_demands : PowerDemands
        The demands on the original network

    Returns
    -------
    PowerFlow
        The flow on the original network, with the same status as the aggregate flow
    """
    original_network = aggregation.original_network
    flow = PowerFlow(original_configuration, original_demands)

    for provider, entry in aggregate_flow.provider_statuses.items():
        flow.provider_statuses[original_network.get_bus(provider.name)] = entry

    aggregate_network = aggregate_flow.network
    for bus in aggregate_network.buses:
        original = original_network.get_bus(bus.name)
        flow.set_voltage(original, aggregate_flow.voltage(bus))
        if bus.is_provider:
            flow.set_generated_power(original, aggregate_flow.power_injection(bus))

    for line in aggregate_network.lines:
        upstream = aggregate_flow.upstream_end(line)
        if upstream is None:
            continue
        current = aggregate_flow.downstream_current(line)
        power = aggregate_flow.power_flow(upstream, line)

        if line.is_transformer_connection:
            _copy_transformer_line(flow, aggregate_flow, line, original_network.get_line(line.name))
            continue

        merge = aggregation.directed_merge_info_for(DirectedLine.in_direction_from(line, upstream))
        _distribute(flow, merge, current, power)

    _set_dangling_flow(flow, aggregation, original_configuration)
    return flow


def _copy_transformer_line(flow: PowerFlow, aggregate_flow: PowerFlow, line: Line, original: Line) -> None:
    """Copy the flow of a transformer connection line, translating its transformer mode to the original network"""
    network = flow.network
    upstream = network.get_bus(aggregate_flow.upstream_end(line).name)
    mode = aggregate_flow.output_mode(line)
    original_mode = None
    if mode is not None:
        original_mode = original.transformer.mode_for_terminals(
            network.get_bus(mode.input_bus.name), network.get_bus(mode.output_bus.name)
        )
    flow.set_line_flow(
        original,
        upstream,
        aggregate_flow.downstream_current(line),
        aggregate_flow.power_flow(aggregate_flow.upstream_end(line), line),
        original_mode,
    )


def _distribute(flow: PowerFlow, merge: DirectedMergedLine, current: complex, power: complex) -> None:
    """Set the flow in the original lines of a merge, given the current and power entering at its start"""
    if merge.merge_type == MergeType.SINGLE_LINE:
        flow.set_line_flow(merge.single_line, merge.start_node, current, power)
        return

    if merge.merge_type == MergeType.SERIAL:
        for part in merge.parts:
            _distribute(flow, part, current, power)
            drop = current * part.impedance
            power -= current.conjugate() * drop
            flow.set_voltage(part.end_node, flow.voltage(part.start_node) - drop)
        return

    voltage = flow.voltage(merge.start_node)
    for part, share in zip(merge.parts, _parallel_shares(merge.parts)):
        part_current = current * share
        _distribute(flow, part, part_current, voltage * part_current.conjugate())


def _parallel_shares(parts: list[DirectedMergedLine]) -> list[complex]:
    """The fraction of the total current carried by each of a set of parallel lines.

    Without zero impedances, the current divides in inverse proportion to the impedances. Otherwise the zero
    impedance lines carry all current: an unlimited one alone, else in proportion to their IMax, else equally.
    """
    if all(part.impedance != 0 for part in parts):
        total = 1 / sum(1 / part.impedance for part in parts)
        return [total / part.impedance for part in parts]

    zero = [index for index, part in enumerate(parts) if part.impedance == 0]
    shares = [0j] * len(parts)
    unlimited = next((index for index in zero if math.isinf(parts[index].i_max)), None)
    if unlimited is not None:
        shares[unlimited] = 1 + 0j
        return shares
    capacity = sum(parts[index].i_max for index in zero)
    for index in zero:
        shares[index] = complex(parts[index].i_max / capacity if capacity > 0 else 1 / len(zero))
    return shares


def _set_dangling_flow(flow: PowerFlow, aggregation: NetworkAggregation, configuration: NetworkConfiguration) -> None:
    """Give the buses behind dangling lines the voltage of the bus they are fed from, and the lines zero flow"""
    dangling_buses = set(aggregation.dangling_buses)
    remaining = set(aggregation.dangling_lines)
    queue = deque(
        bus
        for line in aggregation.dangling_lines
        for bus in line.endpoints
        if bus not in dangling_buses and configuration.is_bus_connected(bus)
    )
    while queue:
        bus = queue.popleft()
        for line in bus.incident_lines:
            if line not in remaining or not configuration.is_present(line):
                continue
            remaining.discard(line)
            other = line.other_end(bus)
            flow.set_line_flow(line, bus, 0j, 0j)
            flow.set_voltage(other, flow.voltage(bus))
            queue.append(other)
