# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The switch configuration optimizer.

The optimization runs in these steps:

1. The network is aggregated, if enabled, and the problem is translated to the aggregate network.
2. The start solution is translated by switch name and repaired to a radial, feasible solution.
3. The descent or the parallel descent improves the solution within the time and iteration budget.
4. The solution is translated back to the original network, including its flows, and evaluated there.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

import logbook
import numpy as np
import pandas as pd
import pandera as pa
from pandera.typing import Index, Series

from toop_engine_switch_optimizer.criteria.criteria_set import CriteriaSet, default_criteria_set
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import AlgorithmType, OptimizerParameters
from toop_engine_switch_optimizer.local_search.dependence_rule import MoveDependenceRule
from toop_engine_switch_optimizer.local_search.descent import Descent, LocalSearch
from toop_engine_switch_optimizer.local_search.neighborhood import generate_for_problem
from toop_engine_switch_optimizer.local_search.parallel_descent import ParallelNeighborhoodDescent
from toop_engine_switch_optimizer.local_search.selectors import (
    NeighborhoodSelector,
    RetryImprovingMoveInAdjacentPeriodsSelector,
    SequentialSelector,
)
from toop_engine_switch_optimizer.local_search.stop_criterion import StopCriterion
from toop_engine_switch_optimizer.network.aggregation import NetworkAggregation
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider
from toop_engine_switch_optimizer.solvers.feasible_solution_constructor import FeasibleSolutionConstructor

logger = logbook.Logger(__name__)


class ObjectiveComponentSchema(pa.DataFrameModel):
    """A schema for the objective components of an optimization result, indexed by criterion name"""

    criterion: Index[str]
    """The name of the objective component"""

    value: Series[float] = pa.Field(nullable=True)
    """The unweighted value of the component"""

    weight: Series[float]
    """The weight of the component in the objective"""

    weighted_value: Series[float] = pa.Field(nullable=True)
    """The contribution of the component to the objective value"""


@dataclass
class OptimizationResult:
    """The outcome of an optimization on the original network"""

    solution: SwitchingSolution
    """The best solution found"""

    objective_value: float
    """The weighted objective value of the solution"""

    is_feasible: bool
    """Whether the solution satisfies every constraint"""

    unsatisfied_constraints: list[str] = field(default_factory=list)
    """A description of each violated constraint"""

    components: list[tuple[str, float, float]] = field(default_factory=list)
    """The name, unweighted value and weight of each objective component"""

    start_objective_value: Optional[float] = None
    """The objective value of the repaired start solution on the searched network"""

    iterations: int = 0
    """The number of descent iterations"""

    applied_moves: int = 0
    """The number of moves applied by the descent"""

    elapsed_seconds: float = 0.0
    """The wall clock time of the optimization"""

    def component_table(self) -> pd.DataFrame:
        """The objective components as a table validated by ObjectiveComponentSchema"""
        table = pd.DataFrame(
            [
                {"criterion": name, "value": value, "weight": weight, "weighted_value": value * weight}
                for name, value, weight in self.components
            ],
            columns=["criterion", "value", "weight", "weighted_value"],
        ).set_index("criterion")
        return ObjectiveComponentSchema.validate(table.astype(float))

    def to_dict(self) -> dict:
        """A JSON serializable summary, including the open state of every switch per period"""
        return {
            "objective_value": self.objective_value,
            "is_feasible": self.is_feasible,
            "unsatisfied_constraints": list(self.unsatisfied_constraints),
            "components": {name: value for name, value, _ in self.components},
            "start_objective_value": self.start_objective_value,
            "iterations": self.iterations,
            "applied_moves": self.applied_moves,
            "elapsed_seconds": self.elapsed_seconds,
            "switches": self.solution.to_mapping(),
        }


class ConfigOptimizer:
    """Finds switch settings for each period of a switching problem"""

    def __init__(
        self, parameters: Optional[OptimizerParameters] = None, flow_provider: Optional[FlowProvider] = None
    ) -> None:
        self.parameters = parameters if parameters is not None else OptimizerParameters()
        self.flow_provider = flow_provider if flow_provider is not None else FlowProvider(self.parameters.flow)
        self.stop_criterion: Optional[StopCriterion] = None

    def stop(self) -> None:
        """Ask a running optimization to stop after its current iteration. May be called from another thread."""
        if self.stop_criterion is not None:
            self.stop_criterion.trigger()

    def optimize(
        self,
        problem: SwitchingProblem,
        criteria: Optional[CriteriaSet] = None,
        start_solution: Optional[SwitchingSolution] = None,
    ) -> OptimizationResult:
        """Optimize the switch settings of every period.

        Parameters
        ----------
        problem : SwitchingProblem
            The problem to solve
        criteria : Optional[CriteriaSet]
            The constraints and objectives. The default criteria are used if None.
        start_solution : Optional[SwitchingSolution]
            The solution to start from. If None, every period starts from the start configuration of the problem, or
            with every switch closed.

        Returns
        -------
        OptimizationResult
            The best solution found, evaluated on the original network

        Raises
        ------
        RadialityError
            If the start solution cannot be made radial in some period
        """
        started = time.monotonic()
        parameters = self.parameters
        criteria = criteria if criteria is not None else default_criteria_set(self.flow_provider, parameters)
        self.stop_criterion = StopCriterion(parameters.time_limit_seconds, parameters.max_iterations)
        self.stop_criterion.start()
        rng = np.random.default_rng(parameters.seed)
        logger.info(f"Optimizing {problem} with {parameters.algorithm.value}")

        aggregation = None
        search_problem = problem
        if parameters.aggregates:
            aggregation = NetworkAggregation.aggregate(problem.network, parameters.aggregation)
            search_problem = problem.create_aggregated_problem(aggregation)
            logger.info(
                f"Aggregated {len(problem.network.lines)} lines to {len(search_problem.network.lines)} lines and "
                f"{len(problem.network.buses)} buses to {len(search_problem.network.buses)} buses"
            )

        solution = SwitchingSolution(search_problem)
        if start_solution is not None:
            solution.copy_switch_settings_from(start_solution)
        elif problem.start_configuration is not None:
            solution.copy_switch_settings_from(SwitchingSolution.unchanging(problem))

        FeasibleSolutionConstructor(parameters, rng).construct(solution, criteria, self.stop_criterion)
        start_value = criteria.objective_value(solution)

        search = self._create_search(solution, rng)
        best = search.optimize(solution, criteria, self.stop_criterion)

        if aggregation is not None:
            result_solution = SwitchingSolution.disaggregate(best, problem, aggregation)
        else:
            result_solution = best

        result = OptimizationResult(
            solution=result_solution,
            objective_value=criteria.objective_value(result_solution),
            is_feasible=criteria.is_feasible(result_solution),
            unsatisfied_constraints=criteria.unsatisfied_reasons(result_solution),
            components=[
                (str(objective), objective.value(result_solution), weight) for objective, weight in criteria.objectives
            ],
            start_objective_value=start_value,
            iterations=search.statistics.iterations,
            applied_moves=search.statistics.applied_moves,
            elapsed_seconds=time.monotonic() - started,
        )
        logger.info(
            f"Optimization finished in {result.elapsed_seconds:.1f} s: objective value {start_value:.6g} -> "
            f"{result.objective_value:.6g}, feasible: {result.is_feasible}"
        )
        return result

    def _create_search(self, solution: SwitchingSolution, rng: np.random.Generator) -> LocalSearch:
        parameters = self.parameters
        neighborhoods = generate_for_problem(solution.problem, parameters.use_small_neighborhoods)
        selector: NeighborhoodSelector = SequentialSelector(
            neighborhoods, rng if parameters.shuffle_neighborhoods else None
        )
        if parameters.retry_in_adjacent_periods and solution.problem.period_count > 1:
            selector = RetryImprovingMoveInAdjacentPeriodsSelector(selector, solution)

        if parameters.algorithm == AlgorithmType.DESCENT:
            return Descent(selector, parameters.acceptable_setback)
        return ParallelNeighborhoodDescent(
            selector,
            MoveDependenceRule(),
            minimum_parallel_moves=parameters.minimum_parallel_moves,
            max_workers=parameters.max_workers,
            acceptable_setback=parameters.acceptable_setback,
        )
