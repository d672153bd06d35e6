# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""A flow solver for radial configurations that applies the DistFlow equations until they converge.

For the tree below each provider, the solver

1. sets all line currents to zero and every bus voltage to the voltage of the closest provider or transformer
   output above it,
2. computes the power injected into each line as the demand plus the line losses in the subtree below it, going from
   the leaves to the provider. Losses are computed from the currents of the previous iteration, S_loss = z * |I|^2,
3. computes line currents and bus voltages from the provider downwards, I = conj(S / V_up) and V_down = V_up - z * I,
4. repeats from step 2 until the largest relative change of a bus voltage falls below the tolerance.

The first pass is the simplified DistFlow approximation, which is usually already close. Losses are small compared to
the demand, so correcting for them converges quickly. If the resistances are too large for the demand to be served,
the iteration diverges. This is detected and reported as a failed flow instead of an exception.

Each provider's tree is solved independently. The result for one tree therefore only depends on the configuration
and demands inside that tree, which the delta computation relies on.
"""

from __future__ import annotations

from typing import Iterable, Optional

import logbook

from toop_engine_switch_optimizer.exceptions import NotRadialError
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import DistFlowParameters
from toop_engine_switch_optimizer.network.aggregation import NetworkAggregation
from toop_engine_switch_optimizer.network.elements import Bus
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_demands import PowerDemands
from toop_engine_switch_optimizer.power_flow.disaggregation import disaggregate_flow
from toop_engine_switch_optimizer.power_flow.flow import FlowStatus, PowerFlow, ProviderFlowStatus

logger = logbook.Logger(__name__)

LOSS_DIVERGED = "IteratedDistFlow diverged; power loss in line exceeds output power"
DROP_DIVERGED = "IteratedDistFlow diverged; line voltage drop exceeds upstream voltage"
ZERO_VOLTAGE = "IteratedDistFlow diverged; power is drawn from a bus without voltage"
IMAX_EXCEEDED = "IMax was exceeded"
VMIN_VIOLATED = "Voltage dropped below VMin"
MAX_ITERATIONS = "Max iterations reached"


class _TreeState:
    """The status of the iteration for one provider's tree"""

    def __init__(self) -> None:
        self.status = FlowStatus.NONE
        self.details = ""

    def stop(self, status: FlowStatus, details: str) -> None:
        """Record a stop condition. A failure is not overwritten by a later approximate result."""
        if self.status == FlowStatus.FAILED:
            return
        self.status = status
        self.details = details


class IteratedDistFlow:
    """Computes power flows in radial configurations with the iterated DistFlow method"""

    def __init__(self, parameters: Optional[DistFlowParameters] = None) -> None:
        self.parameters = parameters if parameters is not None else DistFlowParameters()

    def compute_flow(
        self,
        configuration: NetworkConfiguration,
        demands: PowerDemands,
        providers: Optional[Iterable[Bus]] = None,
    ) -> PowerFlow:
        """Compute the flow in the configuration.

        Parameters
        ----------
        configuration : NetworkConfiguration
            The configuration to compute the flow for. It must not contain cycles, and every transformer must have a
            mode for the direction it is fed from. Buses that are not connected to a provider are allowed and get zero
            voltage.
        demands : PowerDemands
            The demand of each consumer
        providers : Optional[Iterable[Bus]]
            Only solve the trees of these providers. The flow is then empty outside of these trees.
            Defaults to all providers.

        Returns
        -------
        PowerFlow
            The flow. Its status is the worst status of any provider's tree.

        Raises
        ------
        NotRadialError
            If the configuration has cycles or a transformer is fed in a direction it has no mode for
        """
        if not configuration.allows_radial_flow(require_connected=False):
            raise NotRadialError(
                "Cannot compute flow with IteratedDistFlow because the network is not radial or is missing a "
                "transformer mode"
            )

        flow = PowerFlow(configuration, demands)
        providers = configuration.network.providers if providers is None else list(providers)
        for provider in providers:
            flow.provider_statuses[provider] = self._solve_tree(flow, provider)

        if flow.status < FlowStatus.EXACT:
            logger.debug(f"Flow for {configuration.network.name} is {flow.status.name}: {flow.status_details}")
        return flow

    def disaggregate_flow(
        self,
        aggregate_flow: PowerFlow,
        aggregation: NetworkAggregation,
        original_configuration: NetworkConfiguration,
        original_demands: PowerDemands,
    ) -> PowerFlow:
        """Map a flow computed on an aggregated network to the original network, without iterating again"""
        return disaggregate_flow(aggregate_flow, aggregation, original_configuration, original_demands)

    def _solve_tree(self, flow: PowerFlow, provider: Bus) -> ProviderFlowStatus:
        """Run the iteration for the tree of one provider and return how it ended"""
        configuration = flow.configuration
        order = configuration.buses_in_subtree(provider)
        state = _TreeState()

        self._set_initial_voltage_and_current(flow, order)

        iteration = 0
        while state.status == FlowStatus.NONE:
            if iteration == self.parameters.max_iterations:
                state.stop(FlowStatus.APPROXIMATE, MAX_ITERATIONS)
                break
            iteration += 1

            previous_voltages = [flow.voltage(bus) for bus in order]
            self._update_power(flow, order, state)
            self._update_voltage_and_current(flow, order, state)

            change = max(
                (_relative_change(old, flow.voltage(bus)) for bus, old in zip(order, previous_voltages)),
                default=0.0,
            )
            if change < self.parameters.tolerance and state.status == FlowStatus.NONE:
                state.status = FlowStatus.EXACT

        return ProviderFlowStatus(status=state.status, details=state.details, iterations=iteration)

    @staticmethod
    def _set_initial_voltage_and_current(flow: PowerFlow, order: list[Bus]) -> None:
        """Set zero currents and flat voltages in the tree, top-down"""
        configuration = flow.configuration
        for bus in order:
            if bus.is_provider:
                flow.set_voltage(bus, complex(bus.generator_voltage))
                continue
            line = configuration.upstream_line(bus)
            upstream = configuration.upstream_bus(bus)
            mode = configuration.transformer_mode_for_output_line(line) if upstream.is_transformer else None
            flow.set_line_flow(line, upstream, 0j, 0j, mode)

            if bus.is_transformer:
                continue
            if mode is not None:
                flow.set_voltage(bus, mode.output_voltage(flow.voltage(mode.input_bus)))
            else:
                flow.set_voltage(bus, flow.voltage(upstream))

    @staticmethod
    def _update_power(flow: PowerFlow, order: list[Bus], state: _TreeState) -> None:
        """Update the power injected into each line, from the leaves to the provider"""
        configuration = flow.configuration
        for bus in reversed(order):
            power = sum((flow.power_flow(bus, line) for line in configuration.downstream_lines(bus)), 0j)

            if bus.is_provider:
                flow.set_generated_power(bus, power)
                continue

            if bus.is_consumer:
                power += flow.demands.power_demand(bus)

            upstream_line = configuration.upstream_line(bus)
            mode = flow.output_mode(upstream_line)
            if mode is not None:
                power /= mode.power_factor
            elif not upstream_line.is_transformer_connection:
                current = flow.downstream_current(upstream_line)
                loss = upstream_line.impedance * current * current.conjugate()
                if loss.real > power.real:
                    state.stop(FlowStatus.FAILED, LOSS_DIVERGED)
                power += loss

            flow.set_injected_power(upstream_line, power)

    def _update_voltage_and_current(self, flow: PowerFlow, order: list[Bus], state: _TreeState) -> None:
        """Update line currents and bus voltages, from the provider to the leaves"""
        configuration = flow.configuration
        for upstream_bus in order:
            for line in configuration.downstream_lines(upstream_bus):
                downstream_bus = line.other_end(upstream_bus)

                current = 0j
                if not upstream_bus.is_transformer:
                    voltage_in = flow.voltage(upstream_bus)
                    power = flow.power_flow(upstream_bus, line)
                    if voltage_in != 0:
                        current = (power / voltage_in).conjugate()
                    elif power != 0:
                        state.stop(FlowStatus.FAILED, ZERO_VOLTAGE)
                    flow.set_downstream_current(line, current)

                    if self.parameters.stop_on_imax_violation and abs(current) > line.i_max:
                        state.stop(FlowStatus.APPROXIMATE, IMAX_EXCEEDED)

                # The voltage of a transformer bus is undefined
                if downstream_bus.is_transformer:
                    continue

                mode = flow.output_mode(line)
                if mode is not None:
                    voltage = mode.output_voltage(flow.voltage(mode.input_bus))
                else:
                    voltage_in = flow.voltage(upstream_bus)
                    drop = current * line.impedance
                    voltage = voltage_in - drop
                    if abs(drop) > abs(voltage_in):
                        state.stop(FlowStatus.FAILED, DROP_DIVERGED)

                flow.set_voltage(downstream_bus, voltage)

                if self.parameters.stop_on_vmin_violation and abs(voltage) < downstream_bus.v_min:
                    state.stop(FlowStatus.APPROXIMATE, VMIN_VIOLATED)

                if mode is not None:
                    power_out = -flow.power_flow(downstream_bus, line)
                    current = (power_out / voltage).conjugate() if voltage != 0 else 0j
                    flow.set_downstream_current(line, current)

    def __str__(self) -> str:
        """Name the solver"""
        return "Iterated DistFlow"


def _relative_change(old: complex, new: complex) -> float:
    """The change of a voltage relative to its magnitude. Zero if both values are zero."""
    scale = max(abs(old), abs(new))
    if scale == 0:
        return 0.0
    return abs(new - old) / scale
