# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Solutions of a switching problem: one network configuration per period.

Each period solution caches the flow computed by each flow provider. Changing a switch clears the cache, except
when a move installs the flow it already computed as a delta.
"""

from __future__ import annotations

import threading
from typing import Optional

import logbook
import numpy as np

from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.encoding.problem import PeriodData, SwitchingProblem
from toop_engine_switch_optimizer.exceptions import NetworkStructureError
from toop_engine_switch_optimizer.network.aggregation import NetworkAggregation
from toop_engine_switch_optimizer.network.elements import Bus, Line
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_network import PowerNetwork
from toop_engine_switch_optimizer.network.switch_settings import SwitchSettings
from toop_engine_switch_optimizer.power_flow.flow import FlowStatus, PowerFlow
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider

logger = logbook.Logger(__name__)


class PeriodSolution:
    """The configuration chosen for one period, and the flows computed for it"""

    def __init__(self, period_data: PeriodData, switch_settings: Optional[SwitchSettings] = None) -> None:
        """Create the period solution. The switch settings are owned by the solution, pass a clone if needed."""
        if switch_settings is not None and switch_settings.network is not period_data.network:
            raise NetworkStructureError("The switch settings refer to a different network than the period data")
        self.period_data = period_data
        self.configuration = NetworkConfiguration(period_data.network, switch_settings)
        self._flows: dict[FlowProvider, Optional[PowerFlow]] = {}
        self._lock = threading.Lock()

    @property
    def period(self) -> Period:
        """The period"""
        return self.period_data.period

    @property
    def network(self) -> PowerNetwork:
        """The network"""
        return self.period_data.network

    @property
    def switch_settings(self) -> SwitchSettings:
        """The switch settings of the configuration"""
        return self.configuration.switch_settings

    @property
    def open_switches(self) -> list[Line]:
        """The open switches"""
        return self.switch_settings.open_switches

    @property
    def closed_switches(self) -> list[Line]:
        """The closed switches"""
        return self.switch_settings.closed_switches

    @property
    def is_radial(self) -> bool:
        """Whether the configuration is radial"""
        return self.configuration.is_radial

    def allows_radial_flow(self, require_connected: bool = True) -> bool:
        """Whether a radial flow can be computed for the configuration"""
        return self.configuration.allows_radial_flow(require_connected)

    @property
    def unconnected_consumers_with_demand(self) -> list[Bus]:
        """The consumers with nonzero demand that are not connected to any provider"""
        demands = self.period_data.demands
        return [
            bus for bus in self.configuration.unconnected_buses if bus.is_consumer and abs(demands.power_demand(bus)) > 0
        ]

    def is_open(self, line: Line) -> bool:
        """Whether the switch is open"""
        return self.configuration.is_open(line)

    def set_switch(self, line: Line, is_open: bool) -> bool:
        """Set a switch. Cached flows are cleared if the state changes."""
        changed = self.configuration.set_switch(line, is_open)
        if changed:
            self.clear_flows()
        return changed

    def number_of_different_switches(self, other: PeriodSolution) -> int:
        """The number of switches set differently in the other period solution"""
        return self.switch_settings.number_of_different_switches(other.switch_settings)

    def clone(self, copy_flows: bool = False) -> PeriodSolution:
        """Return a copy with its own switch settings"""
        copy = PeriodSolution(self.period_data, self.switch_settings.clone())
        if copy_flows:
            with self._lock:
                flows = dict(self._flows)
            for provider, flow in flows.items():
                copy._flows[provider] = flow.copy(copy.configuration) if flow is not None else None
        return copy

    # ------------------------------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------------------------------

    @property
    def flows(self) -> dict[FlowProvider, Optional[PowerFlow]]:
        """The cached flows by flow provider"""
        with self._lock:
            return dict(self._flows)

    def clear_flows(self) -> None:
        """Forget the cached flows"""
        with self._lock:
            self._flows.clear()

    def flow(self, provider: FlowProvider) -> Optional[PowerFlow]:
        """The flow computed by the provider, computing it if needed.

        Returns None if no flow can be computed because the configuration has cycles or a transformer is fed in a
        direction it has no mode for. The returned flow may have status failed.
        """
        self.compute_flow(provider)
        with self._lock:
            return self._flows[provider]

    def set_flow(self, provider: FlowProvider, flow: Optional[PowerFlow]) -> None:
        """Install a flow computed elsewhere"""
        with self._lock:
            self._flows[provider] = flow

    def compute_flow(self, provider: FlowProvider) -> bool:
        """Compute the flow unless it is cached. Returns whether a usable flow exists."""
        with self._lock:
            if provider in self._flows:
                flow = self._flows[provider]
                return flow is not None and flow.status != FlowStatus.FAILED

            if not self.configuration.allows_radial_flow(require_connected=False):
                self._flows[provider] = None
                return False

            flow = provider.compute_flow(self.configuration, self.period_data.demands)
            self._flows[provider] = flow
            return flow.status != FlowStatus.FAILED

    def __str__(self) -> str:
        """Summarize the period solution"""
        return f"{self.period}: {self.switch_settings}"


class SwitchingSolution:
    """A configuration for each period of a switching problem"""

    def __init__(
        self,
        problem: SwitchingProblem,
        settings_per_period: Optional[dict[Period, SwitchSettings]] = None,
    ) -> None:
        """Create the solution.

        Parameters
        ----------
        problem : SwitchingProblem
            The problem to solve
        settings_per_period : Optional[dict[Period, SwitchSettings]]
            The switch settings of each period. Periods without settings start with every switch closed.
        """
        self.problem = problem
        settings_per_period = settings_per_period or {}
        self.period_solutions: dict[Period, PeriodSolution] = {
            data.period: PeriodSolution(data, settings_per_period.get(data.period)) for data in problem.all_period_data
        }

    @staticmethod
    def unchanging(problem: SwitchingProblem) -> SwitchingSolution:
        """The solution that uses the start configuration of the problem in every period"""
        if problem.start_configuration is None:
            raise NetworkStructureError(f"Problem {problem.name} has no start configuration")
        settings = {period: problem.start_configuration.switch_settings.clone() for period in problem.periods}
        return SwitchingSolution(problem, settings)

    @staticmethod
    def disaggregate(
        aggregate_solution: SwitchingSolution,
        problem: SwitchingProblem,
        aggregation: NetworkAggregation,
    ) -> SwitchingSolution:
        """Translate a solution of the aggregated problem to the original problem, including its flows"""
        solution = SwitchingSolution(problem)
        solution.copy_switch_settings_from(aggregate_solution)
        solution.copy_disaggregated_flows(aggregate_solution, aggregation)
        return solution

    @property
    def network(self) -> PowerNetwork:
        """The network"""
        return self.problem.network

    @property
    def single_period_solutions(self) -> list[PeriodSolution]:
        """The period solutions in chronological order"""
        return [self.period_solutions[period] for period in self.problem.periods]

    def period_solution(self, period: Period) -> PeriodSolution:
        """The solution of one period"""
        return self.period_solutions[period]

    def set_switch(self, period: Period, line: Line, is_open: bool) -> bool:
        """Set a switch in one period"""
        return self.period_solutions[period].set_switch(line, is_open)

    def previous_switch_settings(self, period: Period) -> Optional[SwitchSettings]:
        """The settings in use before the period: the previous period's, or the start configuration's"""
        previous = self.problem.previous_period(period)
        if previous is not None:
            return self.period_solutions[previous].switch_settings
        start = self.problem.start_configuration
        return start.switch_settings if start is not None else None

    def next_switch_settings(self, period: Period) -> Optional[SwitchSettings]:
        """The settings in use after the period: the next period's, or the target configuration's"""
        following = self.problem.next_period(period)
        if following is not None:
            return self.period_solutions[following].switch_settings
        target = self.problem.target_configuration
        return target.switch_settings if target is not None else None

    def flow(self, period: Period, provider: FlowProvider) -> Optional[PowerFlow]:
        """The flow of one period, computed if needed"""
        return self.period_solutions[period].flow(provider)

    def is_complete(self, provider: FlowProvider) -> bool:
        """Whether a flow can be computed in every period"""
        return all(period_solution.flow(provider) is not None for period_solution in self.single_period_solutions)

    def clone(self, copy_flows: bool = False) -> SwitchingSolution:
        """Return an independent copy. Flows are copied only if asked for."""
        copy = SwitchingSolution.__new__(SwitchingSolution)
        copy.problem = self.problem
        copy.period_solutions = {
            period: period_solution.clone(copy_flows) for period, period_solution in self.period_solutions.items()
        }
        return copy

    def make_radial_flow_possible(self, rng: Optional[np.random.Generator] = None) -> None:
        """Change switches in every period so that each configuration is radial and uses valid transformer modes.

        Raises
        ------
        RadialityError
            If some period's configuration cannot be made radial
        """
        for period_solution in self.single_period_solutions:
            radial = period_solution.configuration.clone()
            radial.make_radial_flow_possible(rng)
            changed = period_solution.switch_settings.different_switches(radial.switch_settings)
            for line in changed:
                period_solution.set_switch(line, radial.is_open(line))
            if changed:
                logger.debug(f"Changed {len(changed)} switches to allow radial flow in {period_solution.period}")

    def copy_switch_settings_from(self, other: SwitchingSolution) -> None:
        """Take over the switch settings of a solution on another network, matching periods in order and switches by
        name.

        Switches that do not exist in the other network keep the state of the start configuration, or are closed if
        the problem has none.
        """
        start = self.problem.start_configuration
        for source, target in zip(other.single_period_solutions, self.single_period_solutions):
            states = source.switch_settings.to_mapping()
            for line in target.network.switchable_lines:
                if line.name in states:
                    is_open = states[line.name]
                else:
                    is_open = start.is_open(line) if start is not None else False
                target.set_switch(line, is_open)

    def copy_disaggregated_flows(self, aggregate_solution: SwitchingSolution, aggregation: NetworkAggregation) -> None:
        """Disaggregate the flows cached in a solution of the aggregated problem and cache them here"""
        for period_solution in self.single_period_solutions:
            aggregate_period = aggregate_solution.period_solution(period_solution.period)
            for provider, aggregate_flow in aggregate_period.flows.items():
                if aggregate_flow is None:
                    continue
                flow = provider.disaggregate_flow(
                    aggregate_flow, aggregation, period_solution.configuration, period_solution.period_data.demands
                )
                period_solution.set_flow(provider, flow)

    def to_mapping(self) -> dict[str, dict[str, bool]]:
        """The open state of every switch, by period id and line name"""
        return {
            period_solution.period.id: period_solution.switch_settings.to_mapping()
            for period_solution in self.single_period_solutions
        }

    def __str__(self) -> str:
        """Summarize the solution"""
        return f"Solution of {self.problem.name} with {len(self.period_solutions)} periods"
