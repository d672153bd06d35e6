# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The change of a power flow caused by swapping one closed switch for an open one.

Closing a switch and opening another one on the cycle it closes only changes the trees of the providers feeding the
two ends of the closed switch. Only those trees are recomputed. Since each tree is solved independently, the
resulting flow is the same as the flow computed from scratch for the new configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from toop_engine_switch_optimizer.network.elements import Bus, Line
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.power_flow.flow import FlowStatus, PowerFlow


@dataclass(frozen=True)
class LineFlowDelta:
    """The old and new flow values of one line"""

    line: Line
    """The line"""

    old_current: complex
    """The current from node1 to node2 before the change"""

    new_current: complex
    """The current from node1 to node2 after the change"""

    old_loss: float
    """The active power loss attributed to the line before the change"""

    new_loss: float
    """The active power loss attributed to the line after the change"""

    @property
    def delta_loss(self) -> float:
        """The change of the power loss"""
        return self.new_loss - self.old_loss


@dataclass(frozen=True)
class BusFlowDelta:
    """The old and new voltage of one bus"""

    bus: Bus
    """The bus"""

    old_voltage: complex
    """The voltage before the change"""

    new_voltage: complex
    """The voltage after the change"""


@dataclass
class PowerFlowDelta:
    """The difference between the flow before and after a switch swap"""

    old_flow: PowerFlow
    """The flow before the change"""

    configuration_after: NetworkConfiguration
    """A copy of the configuration with the swap applied"""

    providers: list[Bus]
    """The providers whose trees change"""

    partial_flow: PowerFlow
    """The new flow in the trees of the affected providers only"""

    line_deltas: dict[Line, LineFlowDelta] = field(default_factory=dict)
    """The lines whose current or loss changes"""

    bus_deltas: dict[Bus, BusFlowDelta] = field(default_factory=dict)
    """The buses whose voltage changes"""

    @staticmethod
    def between(old_flow: PowerFlow, partial_flow: PowerFlow, providers: list[Bus]) -> PowerFlowDelta:
        """Compare the flow before a change to the recomputed trees after it"""
        old_configuration = old_flow.configuration
        new_configuration = partial_flow.configuration
        delta = PowerFlowDelta(old_flow, new_configuration, providers, partial_flow)

        lines: dict[Line, None] = {}
        buses: dict[Bus, None] = {}
        for provider in providers:
            for configuration in (old_configuration, new_configuration):
                lines.update(dict.fromkeys(configuration.lines_in_subtree(provider)))
                buses.update(dict.fromkeys(configuration.buses_in_subtree(provider)))

        for line in lines:
            old_current, new_current = old_flow.current(line), partial_flow.current(line)
            old_loss, new_loss = old_flow.power_loss(line), partial_flow.power_loss(line)
            if old_current != new_current or old_loss != new_loss:
                delta.line_deltas[line] = LineFlowDelta(line, old_current, new_current, old_loss, new_loss)

        for bus in buses:
            old_voltage, new_voltage = old_flow.voltage(bus), partial_flow.voltage(bus)
            if old_voltage != new_voltage:
                delta.bus_deltas[bus] = BusFlowDelta(bus, old_voltage, new_voltage)
        return delta

    @property
    def status_after(self) -> FlowStatus:
        """The status the complete flow has after the change"""
        affected = set(self.providers)
        unaffected = (
            entry.status for provider, entry in self.old_flow.provider_statuses.items() if provider not in affected
        )
        return min([*unaffected, self.partial_flow.status], default=FlowStatus.EXACT)

    @property
    def delta_loss(self) -> float:
        """The change of the total active power loss"""
        return sum(entry.delta_loss for entry in self.line_deltas.values())

    def new_current(self, line: Line) -> complex:
        """The current in the line after the change"""
        entry = self.line_deltas.get(line)
        return entry.new_current if entry is not None else self.old_flow.current(line)

    def new_voltage(self, bus: Bus) -> complex:
        """The voltage at the bus after the change"""
        entry = self.bus_deltas.get(bus)
        return entry.new_voltage if entry is not None else self.old_flow.voltage(bus)

    def apply_to(self, configuration: NetworkConfiguration) -> PowerFlow:
        """Return the complete new flow, for the given configuration that has the swap applied"""
        return self.old_flow.replace_trees(self.partial_flow, self.providers, configuration)

    def __str__(self) -> str:
        """Summarize the delta"""
        return (
            f"Flow delta for providers {', '.join(provider.name for provider in self.providers)}: "
            f"{len(self.line_deltas)} lines, {len(self.bus_deltas)} buses, loss change {self.delta_loss:.3f} W"
        )
