# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Turns a start solution into a radial, and if possible feasible, solution.

Every period is first made radial with valid transformer modes. If some constraint is still violated, a descent is
run on the relaxed criteria, in which the violated constraints are the objective. This is repeated while it reduces
the violations.
"""

from __future__ import annotations

from typing import Optional

import logbook
import numpy as np

from toop_engine_switch_optimizer.criteria.criteria_set import CriteriaSet
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import OptimizerParameters
from toop_engine_switch_optimizer.local_search.descent import Descent
from toop_engine_switch_optimizer.local_search.neighborhood import generate_for_problem
from toop_engine_switch_optimizer.local_search.selectors import SequentialSelector
from toop_engine_switch_optimizer.local_search.stop_criterion import StopCriterion

logger = logbook.Logger(__name__)


class FeasibleSolutionConstructor:
    """Repairs solutions before the optimization starts"""

    max_relaxation_rounds = 3

    def __init__(self, parameters: Optional[OptimizerParameters] = None, rng: Optional[np.random.Generator] = None) -> None:
        self.parameters = parameters if parameters is not None else OptimizerParameters()
        self.rng = rng if rng is not None else np.random.default_rng(self.parameters.seed)

    def construct(
        self, solution: SwitchingSolution, criteria: CriteriaSet, stop_criterion: Optional[StopCriterion] = None
    ) -> bool:
        """Repair the solution in place.

        Returns
        -------
        bool
            Whether the solution satisfies every constraint afterwards

        Raises
        ------
        RadialityError
            If some period cannot be made radial
        """
        solution.make_radial_flow_possible(self.rng)
        if criteria.is_feasible(solution):
            return True

        violation = criteria.infeasibility(solution)
        for round_number in range(self.max_relaxation_rounds):
            if stop_criterion is not None and stop_criterion.is_triggered:
                break
            logger.info(f"Start solution is infeasible (violation {violation:.6g}), relaxation round {round_number + 1}")
            relaxed = criteria.relaxed_for(solution)
            neighborhoods = generate_for_problem(solution.problem, self.parameters.use_small_neighborhoods)
            selector = SequentialSelector(neighborhoods, self.rng if self.parameters.shuffle_neighborhoods else None)
            Descent(selector).optimize(solution, relaxed, stop_criterion)
            if criteria.is_feasible(solution):
                logger.info("Found a feasible solution")
                return True
            new_violation = criteria.infeasibility(solution)
            if not new_violation < violation:
                break
            violation = new_violation

        for reason in criteria.unsatisfied_reasons(solution):
            logger.warning(f"Could not satisfy constraint {reason}")
        return False
