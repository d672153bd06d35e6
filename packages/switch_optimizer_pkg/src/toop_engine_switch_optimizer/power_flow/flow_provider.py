# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The flow provider used by solutions and criteria to compute flows, flow deltas and disaggregated flows.

Solutions cache one flow per flow provider, so a provider is hashed by identity.
"""

from __future__ import annotations

from typing import Optional

from toop_engine_switch_optimizer.exceptions import InvalidMoveError
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import DistFlowParameters
from toop_engine_switch_optimizer.network.aggregation import NetworkAggregation
from toop_engine_switch_optimizer.network.elements import Line
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_demands import PowerDemands
from toop_engine_switch_optimizer.power_flow.flow import PowerFlow
from toop_engine_switch_optimizer.power_flow.iterated_distflow import IteratedDistFlow
from toop_engine_switch_optimizer.power_flow.power_flow_delta import PowerFlowDelta


class FlowProvider:
    """Computes flows with the iterated DistFlow solver"""

    def __init__(self, parameters: Optional[DistFlowParameters] = None) -> None:
        self.solver = IteratedDistFlow(parameters)

    @property
    def parameters(self) -> DistFlowParameters:
        """The parameters of the solver"""
        return self.solver.parameters

    def compute_flow(self, configuration: NetworkConfiguration, demands: PowerDemands) -> PowerFlow:
        """Compute the flow for a configuration that allows radial flow"""
        return self.solver.compute_flow(configuration, demands)

    def compute_power_flow_delta(self, old_flow: PowerFlow, switch_to_open: Line, switch_to_close: Line) -> PowerFlowDelta:
        """Compute how the flow changes when one switch is closed and another one on its cycle is opened.

        Parameters
        ----------
        old_flow : PowerFlow
            The current flow. Its configuration must still be the one it was computed for.
        switch_to_open : Line
            A closed switch on the cycle of switch_to_close
        switch_to_close : Line
            An open switch

        Returns
        -------
        PowerFlowDelta
            The delta. The old flow and its configuration are not modified.
        """
        configuration = old_flow.configuration
        if configuration.is_open(switch_to_open):
            raise InvalidMoveError(f"Switch {switch_to_open.name} is already open")
        if not configuration.is_open(switch_to_close):
            raise InvalidMoveError(f"Switch {switch_to_close.name} is already closed")

        providers = []
        for bus in switch_to_close.endpoints:
            provider = configuration.provider_for(bus)
            if provider is not None and provider not in providers:
                providers.append(provider)

        new_configuration = configuration.clone()
        new_configuration.set_switch(switch_to_close, False)
        new_configuration.set_switch(switch_to_open, True)
        partial_flow = self.solver.compute_flow(new_configuration, old_flow.demands, providers)
        return PowerFlowDelta.between(old_flow, partial_flow, providers)

    def disaggregate_flow(
        self,
        aggregate_flow: PowerFlow,
        aggregation: NetworkAggregation,
        original_configuration: NetworkConfiguration,
        original_demands: PowerDemands,
    ) -> PowerFlow:
        """Map a flow on the aggregate network to the original network"""
        return self.solver.disaggregate_flow(aggregate_flow, aggregation, original_configuration, original_demands)

    def __str__(self) -> str:
        """Name the provider"""
        return str(self.solver)
