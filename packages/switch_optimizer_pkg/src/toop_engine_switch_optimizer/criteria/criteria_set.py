# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Constraints and weighted objectives, evaluated together.

The objective value of a solution is the weighted sum of the objective components. A move is legal if every
constraint is satisfied after it, and its delta value is the weighted sum of the component deltas.
"""

from __future__ import annotations

from typing import Optional

import logbook

from toop_engine_switch_optimizer.criteria.criterion import Criterion, FlowDependentCriterion
from toop_engine_switch_optimizer.criteria.flow_criteria import (
    ConsumerVoltageLimitsConstraint,
    FlowComputationConstraint,
    LineCapacityCriterion,
    LineVoltageLimitsConstraint,
    ProviderCapacityConstraint,
    TotalLossObjective,
)
from toop_engine_switch_optimizer.criteria.topology_criteria import ConfigChangeCost, TransformerModesConstraint
from toop_engine_switch_optimizer.encoding.moves import Move
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.exceptions import SwitchOptimizerError
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import OptimizerParameters
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider

logger = logbook.Logger(__name__)


class CriteriaSet:
    """The constraints a solution must satisfy and the weighted objectives it is scored by"""

    def __init__(
        self,
        constraints: Optional[list[Criterion]] = None,
        objectives: Optional[list[tuple[Criterion, float]]] = None,
    ) -> None:
        self.constraints: list[Criterion] = list(constraints or [])
        self.objectives: list[tuple[Criterion, float]] = list(objectives or [])

    def add_constraint(self, constraint: Criterion) -> CriteriaSet:
        """Add a constraint. Returns the set for chaining."""
        self.constraints.append(constraint)
        return self

    def add_objective(self, objective: Criterion, weight: float = 1.0) -> CriteriaSet:
        """Add a weighted objective component. Returns the set for chaining."""
        self.objectives.append((objective, weight))
        return self

    # ------------------------------------------------------------------------------------------
    # Solutions
    # ------------------------------------------------------------------------------------------

    def objective_value(self, solution: SwitchingSolution) -> float:
        """The weighted sum of the objective components"""
        return sum(weight * objective.value(solution) for objective, weight in self.objectives)

    def objective_components(self, solution: SwitchingSolution) -> dict[str, float]:
        """The unweighted value of each objective component, by name"""
        return {str(objective): objective.value(solution) for objective, _ in self.objectives}

    def is_feasible(self, solution: SwitchingSolution) -> bool:
        """Whether the solution satisfies every constraint"""
        return all(constraint.is_satisfied(solution) for constraint in self.constraints)

    def infeasibility(self, solution: SwitchingSolution) -> float:
        """The sum of the constraint values, zero if every constraint is satisfied"""
        return sum(constraint.value(solution) for constraint in self.constraints)

    def unsatisfied_reasons(self, solution: SwitchingSolution) -> list[str]:
        """A description of each violated constraint"""
        return [
            f"{constraint}: {constraint.reason(solution)}"
            for constraint in self.constraints
            if not constraint.is_satisfied(solution)
        ]

    # ------------------------------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------------------------------

    def delta_value(self, move: Move) -> float:
        """The change of the objective value caused by the move"""
        return sum(weight * objective.delta_value(move) for objective, weight in self.objectives if weight != 0)

    def legal_move(self, move: Move) -> bool:
        """Whether every constraint is satisfied after the move"""
        return all(constraint.legal_move(move) for constraint in self.constraints)

    def evaluate(self, move: Move) -> Optional[float]:
        """The delta value of a legal move, or None if the move is illegal"""
        if not self.legal_move(move):
            return None
        return self.delta_value(move)

    # ------------------------------------------------------------------------------------------
    # Derived sets
    # ------------------------------------------------------------------------------------------

    @property
    def flow_provider(self) -> Optional[FlowProvider]:
        """The flow provider used by the flow dependent criteria.

        Raises
        ------
        SwitchOptimizerError
            If the criteria use different flow providers
        """
        providers = {
            criterion.flow_provider
            for criterion in self.constraints + [objective for objective, _ in self.objectives]
            if isinstance(criterion, FlowDependentCriterion)
        }
        if len(providers) > 1:
            raise SwitchOptimizerError(f"The criteria use {len(providers)} different flow providers")
        return next(iter(providers), None)

    def with_provider(self, flow_provider: FlowProvider) -> CriteriaSet:
        """The same criteria, with every flow dependent criterion using the given flow provider"""

        def convert(criterion: Criterion) -> Criterion:
            if isinstance(criterion, FlowDependentCriterion):
                return criterion.with_provider(flow_provider)
            return criterion

        return CriteriaSet(
            [convert(constraint) for constraint in self.constraints],
            [(convert(objective), weight) for objective, weight in self.objectives],
        )

    def relaxed_for(self, solution: SwitchingSolution) -> CriteriaSet:
        """The criteria with each constraint the solution violates turned into an objective of weight one.

        The original objectives are dropped, so a descent on the relaxed set only reduces the violations while
        keeping the satisfied constraints satisfied.
        """
        relaxed = CriteriaSet()
        for constraint in self.constraints:
            if constraint.is_satisfied(solution):
                relaxed.add_constraint(constraint)
            else:
                logger.info(f"Relaxing constraint {constraint}")
                relaxed.add_objective(constraint, 1.0)
        return relaxed

    def __str__(self) -> str:
        """List the constraints and weighted objectives"""
        constraints = ", ".join(str(constraint) for constraint in self.constraints)
        objectives = ", ".join(f"{weight:g} * {objective}" for objective, weight in self.objectives)
        return f"Constraints: [{constraints}], objectives: [{objectives}]"


def default_criteria_set(flow_provider: FlowProvider, parameters: Optional[OptimizerParameters] = None) -> CriteriaSet:
    """The criteria used by the optimizer unless the caller gives others.

    Feasible solutions need a consistent flow, valid transformer modes, and voltages and generation within limits.
    The objective is dominated by the energy lost, followed by line overloads and the switching cost.
    """
    parameters = parameters if parameters is not None else OptimizerParameters()
    criteria = CriteriaSet()
    criteria.add_constraint(TransformerModesConstraint())
    criteria.add_constraint(FlowComputationConstraint(flow_provider))
    criteria.add_constraint(ConsumerVoltageLimitsConstraint(flow_provider))
    criteria.add_constraint(LineVoltageLimitsConstraint(flow_provider))
    criteria.add_constraint(ProviderCapacityConstraint(flow_provider))

    criteria.add_objective(TotalLossObjective(flow_provider), 1e6)
    criteria.add_objective(LineCapacityCriterion(flow_provider, parameters.line_capacity_threshold), 1000.0)
    criteria.add_objective(LineCapacityCriterion(flow_provider, 0.5), 1.0)
    criteria.add_objective(ConfigChangeCost(), 0.002 * parameters.switching_cost_weight)
    return criteria
