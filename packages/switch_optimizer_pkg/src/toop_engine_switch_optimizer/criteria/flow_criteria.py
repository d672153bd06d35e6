# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Objectives and constraints evaluated on power flows.

Values are summed over the periods of a solution. Periods where no radial flow can be computed contribute nothing;
constraints are not satisfied by such solutions.

For a swap move, delta_value and legal_move only look at the lines and buses in the cached flow delta, together with
what is already known about the flows the move does not change.
"""

from __future__ import annotations

import math
from typing import Optional

from toop_engine_switch_optimizer.criteria.criterion import FlowDependentCriterion
from toop_engine_switch_optimizer.encoding.moves import Move
from toop_engine_switch_optimizer.encoding.solution import PeriodSolution, SwitchingSolution
from toop_engine_switch_optimizer.network.elements import Bus, Line
from toop_engine_switch_optimizer.power_flow.flow import FlowStatus, PowerFlow
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider

UNIT_MWH = 1.0 / (1.0e6 * 3600.0)
"""Converts W times seconds to MWh"""

UNIT_AH = 1.0 / 3600.0
"""Converts A times seconds to Ah"""


class TotalLossObjective(FlowDependentCriterion):
    """The active power lost in lines and transformers, in MWh"""

    name = "Total loss (MWh)"

    def with_provider(self, flow_provider: FlowProvider) -> TotalLossObjective:
        """The loss computed with another flow provider"""
        return TotalLossObjective(flow_provider)

    def value(self, solution: SwitchingSolution) -> float:
        """The energy lost over all periods. Zero if some period has no radial flow."""
        if not solution.is_complete(self.flow_provider):
            return 0.0
        return sum(self._period_loss(period_solution) for period_solution in solution.single_period_solutions)

    def delta_value(self, move: Move) -> float:
        """The change of the energy lost in the move's period"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().delta_value(move)
        return delta.delta_loss * move.period.length_seconds * UNIT_MWH

    def _period_loss(self, period_solution: PeriodSolution) -> float:
        flow = self.flow(period_solution)
        return self.cached_for_flow(flow, PowerFlow.total_loss) * period_solution.period.length_seconds * UNIT_MWH


class LineCapacityCriterion(FlowDependentCriterion):
    """Penalizes currents above a fraction of each line's IMax.

    As an objective, the value is the excess current integrated over time, in Ah. As a constraint, it requires that
    no line carries more than the allowed current.
    """

    def __init__(self, flow_provider: FlowProvider, threshold: float = 1.0) -> None:
        """Create the criterion.

        Parameters
        ----------
        flow_provider : FlowProvider
            The provider of the flows
        threshold : float
            The fraction of IMax a line may carry without penalty, in [0, 1]
        """
        super().__init__(flow_provider)
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Invalid capacity limit fraction {threshold}, must be in [0, 1]")
        self.threshold = threshold
        self.name = "IMax violation (Ah)" if threshold == 1.0 else f"IMax({threshold * 100:.1f}%) violation (Ah)"

    def with_provider(self, flow_provider: FlowProvider) -> LineCapacityCriterion:
        """The criterion evaluated with another flow provider"""
        return LineCapacityCriterion(flow_provider, self.threshold)

    def line_penalty(self, line: Line, current: complex) -> float:
        """The current in excess of the allowed current, in A"""
        return max(abs(current) - line.i_max * self.threshold, 0.0)

    def violations(self, flow: PowerFlow) -> dict[Line, float]:
        """The lines whose current exceeds the allowed current, with the excess"""

        def compute(flow: PowerFlow) -> dict[Line, float]:
            result = {}
            for line in flow.lines_with_flow:
                penalty = self.line_penalty(line, flow.current(line))
                if penalty > 0:
                    result[line] = penalty
            return result

        return self.cached_for_flow(flow, compute)

    def value(self, solution: SwitchingSolution) -> float:
        """The excess current integrated over all periods"""
        total = 0.0
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is not None:
                total += sum(self.violations(flow).values()) * period_solution.period.length_seconds * UNIT_AH
        return total

    def is_satisfied(self, solution: SwitchingSolution) -> bool:
        """Whether every period has a flow in which no line is overloaded"""
        return all(self._period_satisfied(period_solution) for period_solution in solution.single_period_solutions)

    def delta_value(self, move: Move) -> float:
        """The change of the excess current in the move's period"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().delta_value(move)
        change = sum(
            self.line_penalty(line, entry.new_current) - self.line_penalty(line, entry.old_current)
            for line, entry in delta.line_deltas.items()
        )
        return change * move.period.length_seconds * UNIT_AH

    def legal_move(self, move: Move) -> bool:
        """Whether no line is overloaded after the move"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().legal_move(move)
        if any(self.line_penalty(line, entry.new_current) > 0 for line, entry in delta.line_deltas.items()):
            return False
        if any(line not in delta.line_deltas for line in self.violations(delta.old_flow)):
            return False
        return all(self._period_satisfied(period_solution) for period_solution in self.other_periods(move))

    def reason(self, solution: SwitchingSolution) -> str:
        """The overloaded lines in each period"""
        rows = []
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is None:
                rows.append(f"Period {period_solution.period.index}: no radial flow")
                continue
            for line in self.violations(flow):
                rows.append(
                    f"Period {period_solution.period.index}, Line {line.name}: {flow.current_magnitude(line)}>"
                    f"{line.i_max * self.threshold}"
                )
        if not rows:
            return "No line capacities violated."
        return "The following lines have their capacity violated:\n" + "\n".join(rows)

    def _period_satisfied(self, period_solution: PeriodSolution) -> bool:
        flow = self.flow(period_solution)
        return flow is not None and not self.violations(flow)


def voltage_penalty(magnitude: float, v_min: float, v_max: float) -> float:
    """How far the voltage magnitude is outside [v_min, v_max]"""
    if math.isnan(magnitude) or math.isinf(magnitude):
        return math.inf
    if magnitude > v_max:
        return magnitude - v_max
    if magnitude < v_min:
        return v_min - magnitude
    return 0.0


class ConsumerVoltageLimitsConstraint(FlowDependentCriterion):
    """Requires the voltage of each connected consumer to be within the consumer's limits"""

    name = "Consumer bus voltage limits"

    def with_provider(self, flow_provider: FlowProvider) -> ConsumerVoltageLimitsConstraint:
        """The constraint evaluated with another flow provider"""
        return ConsumerVoltageLimitsConstraint(flow_provider)

    @staticmethod
    def bus_penalty(bus: Bus, voltage: complex) -> float:
        """How far the voltage is outside the consumer's limits, in V"""
        return voltage_penalty(abs(voltage), bus.v_min, bus.v_max)

    def violations(self, flow: PowerFlow) -> dict[Bus, float]:
        """The connected consumers whose voltage is outside their limits, with the penalty"""

        def compute(flow: PowerFlow) -> dict[Bus, float]:
            result = {}
            configuration = flow.configuration
            for bus in flow.network.consumers:
                if not configuration.is_bus_connected(bus):
                    continue
                penalty = self.bus_penalty(bus, flow.voltage(bus))
                if penalty > 0:
                    result[bus] = penalty
            return result

        return self.cached_for_flow(flow, compute)

    def value(self, solution: SwitchingSolution) -> float:
        """The sum of the voltage penalties over all periods"""
        total = 0.0
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is not None:
                total += sum(self.violations(flow).values())
        return total

    def is_satisfied(self, solution: SwitchingSolution) -> bool:
        """Whether every period has a flow with all consumer voltages within limits"""
        return all(self._period_satisfied(period_solution) for period_solution in solution.single_period_solutions)

    def delta_value(self, move: Move) -> float:
        """The change of the voltage penalties of the consumers whose voltage changes"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().delta_value(move)
        return sum(
            self.bus_penalty(bus, entry.new_voltage) - self.bus_penalty(bus, entry.old_voltage)
            for bus, entry in delta.bus_deltas.items()
            if bus.is_consumer
        )

    def legal_move(self, move: Move) -> bool:
        """Whether all consumer voltages are within limits after the move"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().legal_move(move)
        if any(
            self.bus_penalty(bus, entry.new_voltage) > 0 for bus, entry in delta.bus_deltas.items() if bus.is_consumer
        ):
            return False
        if any(bus not in delta.bus_deltas for bus in self.violations(delta.old_flow)):
            return False
        return all(self._period_satisfied(period_solution) for period_solution in self.other_periods(move))

    def reason(self, solution: SwitchingSolution) -> str:
        """The consumers with voltages outside their limits"""
        rows = []
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is None:
                rows.append(f"Period {period_solution.period.index}: no radial flow")
                continue
            for bus in self.violations(flow):
                rows.append(
                    f"Period {period_solution.period.index}: Voltage {abs(flow.voltage(bus))} of bus {bus.name} is "
                    f"outside bounds [{bus.v_min}, {bus.v_max}]"
                )
        return "\n".join(rows)

    def _period_satisfied(self, period_solution: PeriodSolution) -> bool:
        flow = self.flow(period_solution)
        return flow is not None and not self.violations(flow)


class LineVoltageLimitsConstraint(FlowDependentCriterion):
    """Requires the voltage at both ends of each line carrying flow to be at most the line's VMax"""

    name = "Line voltage limits"

    def with_provider(self, flow_provider: FlowProvider) -> LineVoltageLimitsConstraint:
        """The constraint evaluated with another flow provider"""
        return LineVoltageLimitsConstraint(flow_provider)

    @staticmethod
    def line_penalty(line: Line, voltage1: complex, voltage2: complex) -> float:
        """How far the higher end voltage exceeds VMax, in V"""
        if math.isinf(line.v_max):
            return 0.0
        return voltage_penalty(max(abs(voltage1), abs(voltage2)), -math.inf, line.v_max)

    def violations(self, flow: PowerFlow) -> dict[Line, float]:
        """The lines whose voltage exceeds VMax, with the penalty"""

        def compute(flow: PowerFlow) -> dict[Line, float]:
            result = {}
            for line in flow.lines_with_flow:
                penalty = self.line_penalty(line, flow.voltage(line.node1), flow.voltage(line.node2))
                if penalty > 0:
                    result[line] = penalty
            return result

        return self.cached_for_flow(flow, compute)

    def value(self, solution: SwitchingSolution) -> float:
        """The sum of the line voltage penalties over all periods"""
        total = 0.0
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is not None:
                total += sum(self.violations(flow).values())
        return total

    def is_satisfied(self, solution: SwitchingSolution) -> bool:
        """Whether every period has a flow in which no line voltage exceeds VMax"""
        return all(self._period_satisfied(period_solution) for period_solution in solution.single_period_solutions)

    def _changes(self, move: Move) -> Optional[dict[Line, tuple[float, float]]]:
        """The old and new penalty of each line whose penalty may change"""
        delta = self.flow_delta(move)
        if delta is None:
            return None
        old_flow = delta.old_flow
        after = delta.configuration_after
        lines: dict[Line, None] = dict.fromkeys(delta.line_deltas)
        lines.update(dict.fromkeys(move.switches))
        for bus in delta.bus_deltas:
            lines.update(dict.fromkeys(bus.incident_lines))

        changes = {}
        for line in lines:
            old = 0.0
            if old_flow.carries_flow(line):
                old = self.line_penalty(line, old_flow.voltage(line.node1), old_flow.voltage(line.node2))
            new = 0.0
            if after.is_in_tree(line):
                new = self.line_penalty(line, delta.new_voltage(line.node1), delta.new_voltage(line.node2))
            changes[line] = (old, new)
        return changes

    def delta_value(self, move: Move) -> float:
        """The change of the penalties of the lines whose end voltages change"""
        changes = self._changes(move)
        if changes is None:
            return super().delta_value(move)
        return sum(new - old for old, new in changes.values())

    def legal_move(self, move: Move) -> bool:
        """Whether no line voltage exceeds VMax after the move"""
        changes = self._changes(move)
        if changes is None:
            return super().legal_move(move)
        if any(new > 0 for _, new in changes.values()):
            return False
        if any(line not in changes for line in self.violations(self.flow_delta(move).old_flow)):
            return False
        return all(self._period_satisfied(period_solution) for period_solution in self.other_periods(move))

    def _period_satisfied(self, period_solution: PeriodSolution) -> bool:
        flow = self.flow(period_solution)
        return flow is not None and not self.violations(flow)


class ProviderCapacityConstraint(FlowDependentCriterion):
    """Requires the active power generated by each provider to be within its capacity.

    As an objective, the value is the sum of the squared excess generation.
    """

    name = "Provider capacity"

    def with_provider(self, flow_provider: FlowProvider) -> ProviderCapacityConstraint:
        """The constraint evaluated with another flow provider"""
        return ProviderCapacityConstraint(flow_provider)

    @staticmethod
    def provider_penalty(provider: Bus, generation: complex) -> float:
        """The squared excess active generation"""
        return max(generation.real - provider.generation_capacity.real, 0.0) ** 2

    def _period_penalty(self, flow: PowerFlow) -> float:
        return sum(
            self.provider_penalty(provider, flow.power_injection(provider)) for provider in flow.network.providers
        )

    def value(self, solution: SwitchingSolution) -> float:
        """The penalties summed over all periods"""
        total = 0.0
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is not None:
                total += self.cached_for_flow(flow, self._period_penalty)
        return total

    def is_satisfied(self, solution: SwitchingSolution) -> bool:
        """Whether every period has a flow in which each provider is within its capacity"""
        return all(self._period_satisfied(period_solution) for period_solution in solution.single_period_solutions)

    def delta_value(self, move: Move) -> float:
        """The change of the penalties of the providers whose trees change"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().delta_value(move)
        return sum(
            self.provider_penalty(provider, delta.partial_flow.power_injection(provider))
            - self.provider_penalty(provider, delta.old_flow.power_injection(provider))
            for provider in delta.providers
        )

    def legal_move(self, move: Move) -> bool:
        """Whether each provider is within its capacity after the move"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().legal_move(move)
        for provider in delta.old_flow.network.providers:
            flow = delta.partial_flow if provider in delta.providers else delta.old_flow
            if self.provider_penalty(provider, flow.power_injection(provider)) > 0:
                return False
        return all(self._period_satisfied(period_solution) for period_solution in self.other_periods(move))

    def reason(self, solution: SwitchingSolution) -> str:
        """The providers whose capacity is exceeded"""
        rows = []
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is None:
                rows.append(f"Period {period_solution.period.index}: no radial flow")
                continue
            for provider in flow.network.providers:
                if self.provider_penalty(provider, flow.power_injection(provider)) > 0:
                    rows.append(f"Period {period_solution.period.index}: Capacity of provider {provider.name} is exceeded")
        return "\n".join(rows)

    def _period_satisfied(self, period_solution: PeriodSolution) -> bool:
        flow = self.flow(period_solution)
        return flow is not None and self.cached_for_flow(flow, self._period_penalty) == 0


class FlowComputationConstraint(FlowDependentCriterion):
    """Requires the flow computation to succeed, with an exact or approximate result, in every period"""

    name = "Computing a consistent flow"

    def with_provider(self, flow_provider: FlowProvider) -> FlowComputationConstraint:
        """The constraint evaluated with another flow provider"""
        return FlowComputationConstraint(flow_provider)

    def _period_ok(self, period_solution: PeriodSolution) -> bool:
        flow = self.flow(period_solution)
        return flow is not None and flow.status >= FlowStatus.APPROXIMATE

    def value(self, solution: SwitchingSolution) -> float:
        """The number of periods without a usable flow"""
        return float(sum(not self._period_ok(period_solution) for period_solution in solution.single_period_solutions))

    def is_satisfied(self, solution: SwitchingSolution) -> bool:
        """Whether every period has a usable flow"""
        return all(self._period_ok(period_solution) for period_solution in solution.single_period_solutions)

    def delta_value(self, move: Move) -> float:
        """One if the move makes the flow of its period fail, minus one if it repairs it"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().delta_value(move)
        failed_before = not self._period_ok(move.solution.period_solution(move.period))
        failed_after = delta.status_after < FlowStatus.APPROXIMATE
        return float(failed_after) - float(failed_before)

    def legal_move(self, move: Move) -> bool:
        """Whether every period has a usable flow after the move"""
        delta = self.flow_delta(move)
        if delta is None:
            return super().legal_move(move)
        if delta.status_after < FlowStatus.APPROXIMATE:
            return False
        return all(self._period_ok(period_solution) for period_solution in self.other_periods(move))

    def reason(self, solution: SwitchingSolution) -> str:
        """The status of each period whose flow failed"""
        rows = []
        for period_solution in solution.single_period_solutions:
            flow = self.flow(period_solution)
            if flow is None:
                rows.append(f"Period {period_solution.period.id}: Flow computation failed.")
            elif flow.status < FlowStatus.APPROXIMATE:
                rows.append(f"Period {period_solution.period.id}: {flow.status_details}.")
        return " ".join(rows) if rows else "Consistent flow computed OK."
