# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The result of a radial power flow computation.

A PowerFlow stores the bus voltages, the current and the power injected into each line at its upstream end and the
power generated by each provider. The direction of each line, and the transformer mode used by each transformer
output line, are recorded when the flow is computed. The flow therefore stays consistent when the configuration it
was computed for changes later.

Voltages are in V, currents in A and powers in VA.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional

import numpy as np
import pandas as pd
import pandera as pa
from pandera.typing import Index, Series

from toop_engine_switch_optimizer.network.elements import Bus, Line, TransformerMode
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_demands import PowerDemands
from toop_engine_switch_optimizer.network.power_network import PowerNetwork


class FlowStatus(IntEnum):
    """The status of a flow computation. Smaller values are worse."""

    NONE = 0
    """No flow was computed"""

    FAILED = 1
    """The computation diverged. The values of the flow may be very inconsistent."""

    APPROXIMATE = 2
    """The computation was stopped before it converged"""

    EXACT = 3
    """The computation converged"""


@dataclass(frozen=True)
class ProviderFlowStatus:
    """The outcome of the flow computation in the tree of one provider"""

    status: FlowStatus
    """How the computation ended"""

    details: str
    """Why the computation ended, empty if it converged"""

    iterations: int
    """The number of iterations that were run"""


class BusFlowSchema(pa.DataFrameModel):
    """A schema for the bus table of a power flow.

    Holds one row per bus of the network, indexed by bus name.
    """

    bus: Index[str]
    """The name of the bus"""

    bus_type: Series[str]
    """The kind of bus: connection, consumer, provider or transformer"""

    provider: Series[str] = pa.Field(nullable=True)
    """The provider whose tree the bus belongs to. Null for unconnected buses."""

    voltage_re: Series[float]
    """The real part of the voltage in V"""

    voltage_im: Series[float]
    """The imaginary part of the voltage in V"""

    voltage_magnitude: Series[float] = pa.Field(ge=0)
    """The voltage magnitude in V. Zero for unconnected buses and transformer buses."""

    nominal_voltage: Series[float] = pa.Field(nullable=True)
    """The voltage magnitude the bus would have without losses. Null for unconnected buses."""

    p_injection: Series[float]
    """The active power injected into the network at the bus in W. Negative for consumers."""

    q_injection: Series[float]
    """The reactive power injected into the network at the bus in VAr"""


class LineFlowSchema(pa.DataFrameModel):
    """A schema for the line table of a power flow.

    Holds one row per line of the network, indexed by line name. Open switches and unconnected lines carry zero flow.
    """

    line: Index[str]
    """The name of the line"""

    node1: Series[str]
    """The name of the first endpoint"""

    node2: Series[str]
    """The name of the second endpoint"""

    upstream_end: Series[str] = pa.Field(nullable=True)
    """The endpoint the flow comes from. Null for lines that carry no flow."""

    current_re: Series[float]
    """The real part of the current from node1 to node2 in A"""

    current_im: Series[float]
    """The imaginary part of the current from node1 to node2 in A"""

    current_magnitude: Series[float] = pa.Field(ge=0)
    """The current magnitude in A"""

    i_max: Series[float] = pa.Field(ge=0)
    """The current capacity of the line in A"""

    p_from_node1: Series[float]
    """The active power flowing into the line at node1 in W"""

    q_from_node1: Series[float]
    """The reactive power flowing into the line at node1 in VAr"""

    p_from_node2: Series[float]
    """The active power flowing into the line at node2 in W"""

    q_from_node2: Series[float]
    """The reactive power flowing into the line at node2 in VAr"""

    p_loss: Series[float]
    """The active power lost in the line or, for transformer output lines, in the transformer, in W"""


class PowerFlow:
    """Voltages, currents and powers in a radial configuration"""

    def __init__(self, configuration: NetworkConfiguration, demands: PowerDemands) -> None:
        self.configuration = configuration
        self.demands = demands
        self.provider_statuses: dict[Bus, ProviderFlowStatus] = {}
        self._voltages: dict[Bus, complex] = {}
        self._generated_power: dict[Bus, complex] = {}
        self._downstream_currents: dict[Line, complex] = {}
        self._injected_power: dict[Line, complex] = {}
        self._upstream_ends: dict[Line, Bus] = {}
        self._output_modes: dict[Line, TransformerMode] = {}

    @property
    def network(self) -> PowerNetwork:
        """The network of the flow"""
        return self.configuration.network

    # ------------------------------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------------------------------

    @property
    def status(self) -> FlowStatus:
        """The worst status of any provider's tree. Exact if the network has no providers."""
        return min((entry.status for entry in self.provider_statuses.values()), default=FlowStatus.EXACT)

    @property
    def iterations(self) -> int:
        """The largest number of iterations used for any provider"""
        return max((entry.iterations for entry in self.provider_statuses.values()), default=0)

    @property
    def status_details(self) -> str:
        """A description of the status, including the number of iterations"""
        iterations = f"{self.iterations} iterations"
        if len(self.provider_statuses) > 1:
            iterations = f"up to {iterations}"
        worst = min(self.provider_statuses.values(), key=lambda entry: entry.status, default=None)
        if worst is None or not worst.details:
            return iterations
        return f"{worst.details} ({iterations})"

    # ------------------------------------------------------------------------------------------
    # Flow values
    # ------------------------------------------------------------------------------------------

    def voltage(self, bus: Bus) -> complex:
        """The voltage at the bus. Zero for unconnected buses and transformer buses."""
        return self._voltages.get(bus, 0j)

    def carries_flow(self, line: Line) -> bool:
        """Whether the line is part of a tree the flow was computed for"""
        return line in self._upstream_ends

    @property
    def lines_with_flow(self) -> list[Line]:
        """The lines in the trees the flow was computed for"""
        return list(self._upstream_ends)

    def upstream_end(self, line: Line) -> Optional[Bus]:
        """The end of the line the flow comes from, or None if the line carries no flow"""
        return self._upstream_ends.get(line)

    def output_mode(self, line: Line) -> Optional[TransformerMode]:
        """The transformer mode feeding a transformer output line"""
        return self._output_modes.get(line)

    def downstream_current(self, line: Line) -> complex:
        """The current from the upstream end to the downstream end of the line"""
        return self._downstream_currents.get(line, 0j)

    def current(self, line: Line) -> complex:
        """The current in the line from node1 to node2"""
        upstream = self._upstream_ends.get(line)
        if upstream is None:
            return 0j
        current = self._downstream_currents.get(line, 0j)
        return current if upstream is line.node1 else -current

    def current_magnitude(self, line: Line) -> float:
        """The magnitude of the current, independent of the direction"""
        return abs(self.current(line))

    def power_flow(self, bus: Bus, line: Line) -> complex:
        """The power flowing from the bus into the line. Negative if the bus receives power from the line."""
        upstream = self._upstream_ends.get(line)
        if upstream is None:
            return 0j
        injected = self._injected_power.get(line, 0j)
        if bus is upstream:
            return injected
        mode = self._output_modes.get(line)
        if mode is not None:
            return -injected * mode.power_factor
        current = self._downstream_currents.get(line, 0j)
        return -(injected - line.impedance * current * current.conjugate())

    def power_injection(self, bus: Bus) -> complex:
        """The power injected into the network at the bus: generation at providers, minus demand at consumers"""
        if bus.is_provider:
            return self._generated_power.get(bus, 0j)
        if bus.is_consumer:
            return -self.demands.power_demand(bus)
        return 0j

    def power_loss(self, line: Line) -> float:
        """The active power lost in the line, or in the transformer for transformer output lines. Non-negative."""
        if line not in self._upstream_ends:
            return 0.0
        mode = self._output_modes.get(line)
        if mode is not None:
            return (self._injected_power.get(line, 0j) * (1 - mode.power_factor)).real
        current = self._downstream_currents.get(line, 0j)
        return line.resistance * (current * current.conjugate()).real

    def total_loss(self, lines: Optional[Iterable[Line]] = None) -> float:
        """The total active power loss of the given lines, or of all lines carrying flow"""
        lines = self._upstream_ends if lines is None else lines
        return sum(self.power_loss(line) for line in lines)

    # ------------------------------------------------------------------------------------------
    # Construction, used by the solvers
    # ------------------------------------------------------------------------------------------

    def set_voltage(self, bus: Bus, voltage: complex) -> None:
        """Set the voltage of a bus"""
        self._voltages[bus] = voltage

    def set_generated_power(self, bus: Bus, power: complex) -> None:
        """Set the generation of a provider"""
        self._generated_power[bus] = power

    def set_line_flow(
        self,
        line: Line,
        upstream_end: Bus,
        downstream_current: complex,
        injected_power: complex,
        output_mode: Optional[TransformerMode] = None,
    ) -> None:
        """Set the direction, current and injected power of a line"""
        self._upstream_ends[line] = upstream_end
        self._downstream_currents[line] = downstream_current
        self._injected_power[line] = injected_power
        if output_mode is not None:
            self._output_modes[line] = output_mode
        else:
            self._output_modes.pop(line, None)

    def set_downstream_current(self, line: Line, current: complex) -> None:
        """Update the current of a line whose direction is set"""
        self._downstream_currents[line] = current

    def set_injected_power(self, line: Line, power: complex) -> None:
        """Update the injected power of a line whose direction is set"""
        self._injected_power[line] = power

    def copy(self, configuration: Optional[NetworkConfiguration] = None) -> PowerFlow:
        """Return an independent copy, optionally referring to another configuration of the same network"""
        copy = PowerFlow(configuration if configuration is not None else self.configuration, self.demands)
        copy.provider_statuses = dict(self.provider_statuses)
        copy._voltages = dict(self._voltages)
        copy._generated_power = dict(self._generated_power)
        copy._downstream_currents = dict(self._downstream_currents)
        copy._injected_power = dict(self._injected_power)
        copy._upstream_ends = dict(self._upstream_ends)
        copy._output_modes = dict(self._output_modes)
        return copy

    def replace_trees(self, other: PowerFlow, providers: Iterable[Bus], configuration: NetworkConfiguration) -> PowerFlow:
        """Return a flow with the trees of the given providers taken from another flow, and the rest from this one.

        The other flow must have been computed for the given providers in the given configuration, and the
        remaining trees must be the same in this flow's configuration and the given one.
        """
        providers = set(providers)
        result = PowerFlow(configuration, self.demands)
        for bus, voltage in self._voltages.items():
            if configuration.provider_for(bus) not in providers:
                result._voltages[bus] = voltage
        for line, upstream in self._upstream_ends.items():
            if configuration.provider_for(upstream) not in providers:
                result.set_line_flow(
                    line,
                    upstream,
                    self._downstream_currents[line],
                    self._injected_power[line],
                    self._output_modes.get(line),
                )
        for bus, power in self._generated_power.items():
            if bus not in providers:
                result._generated_power[bus] = power
        for bus, entry in self.provider_statuses.items():
            if bus not in providers:
                result.provider_statuses[bus] = entry

        result._voltages.update(other._voltages)
        result._generated_power.update(other._generated_power)
        result.provider_statuses.update(other.provider_statuses)
        for line, upstream in other._upstream_ends.items():
            result.set_line_flow(
                line, upstream, other._downstream_currents[line], other._injected_power[line], other._output_modes.get(line)
            )
        return result

    # ------------------------------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------------------------------

    def bus_table(self) -> pd.DataFrame:
        """The bus values as a table validated by BusFlowSchema"""
        configuration = self.configuration
        rows = []
        for bus in self.network.buses:
            voltage = self.voltage(bus)
            provider = configuration.provider_for(bus)
            nominal = configuration.nominal_voltage(bus)
            injection = self.power_injection(bus)
            rows.append(
                {
                    "bus": bus.name,
                    "bus_type": bus.bus_type.value,
                    "provider": provider.name if provider is not None else None,
                    "voltage_re": voltage.real,
                    "voltage_im": voltage.imag,
                    "voltage_magnitude": abs(voltage),
                    "nominal_voltage": nominal if nominal is not None else np.nan,
                    "p_injection": injection.real,
                    "q_injection": injection.imag,
                }
            )
        table = pd.DataFrame(rows, columns=list(BusFlowSchema.to_schema().columns) + ["bus"]).set_index("bus")
        table["provider"] = table["provider"].astype(object)
        return BusFlowSchema.validate(table)

    def line_table(self) -> pd.DataFrame:
        """The line values as a table validated by LineFlowSchema"""
        rows = []
        for line in self.network.lines:
            current = self.current(line)
            from_node1 = self.power_flow(line.node1, line)
            from_node2 = self.power_flow(line.node2, line)
            upstream = self.upstream_end(line)
            rows.append(
                {
                    "line": line.name,
                    "node1": line.node1.name,
                    "node2": line.node2.name,
                    "upstream_end": upstream.name if upstream is not None else None,
                    "current_re": current.real,
                    "current_im": current.imag,
                    "current_magnitude": abs(current),
                    "i_max": line.i_max,
                    "p_from_node1": from_node1.real,
                    "q_from_node1": from_node1.imag,
                    "p_from_node2": from_node2.real,
                    "q_from_node2": from_node2.imag,
                    "p_loss": self.power_loss(line),
                }
            )
        table = pd.DataFrame(rows, columns=list(LineFlowSchema.to_schema().columns) + ["line"]).set_index("line")
        table["upstream_end"] = table["upstream_end"].astype(object)
        return LineFlowSchema.validate(table)

    def __str__(self) -> str:
        """Summarize the flow"""
        return f"Flow ({self.status.name}, {self.status_details}), total loss {self.total_loss():.3f} W"
