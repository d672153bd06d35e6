# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Single threaded descent.

The descent asks its selector for a neighborhood, explores it for the best legal move and applies that move if it is
acceptable. A move is acceptable if it improves the objective, or if it worsens it by at most the acceptable setback.
With a positive setback the search may leave the best solution, which is therefore kept as a copy. The selector only
learns about progress when a move reaches a new best value, so a worsening move and its reverse cannot keep the
search alive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import logbook

from toop_engine_switch_optimizer.criteria.criteria_set import CriteriaSet
from toop_engine_switch_optimizer.encoding.moves import Move
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.local_search.neighborhood import find_best_move
from toop_engine_switch_optimizer.local_search.selectors import NeighborhoodSelector
from toop_engine_switch_optimizer.local_search.stop_criterion import StopCriterion

logger = logbook.Logger(__name__)


@dataclass
class SearchStatistics:
    """What a search did"""

    iterations: int = 0
    """The number of neighborhoods explored by the descent, or rounds of the parallel descent"""

    applied_moves: int = 0
    """The number of moves applied"""

    start_value: float = 0.0
    """The objective value of the start solution"""

    best_value: float = 0.0
    """The objective value of the best solution found"""


class BestSolutionTracker:
    """Follows the objective value along the search path and keeps the best solution seen.

    A move counts as progress only if it lowers the best value by more than a relative tolerance. Rounding errors
    of a worsening move followed by its reverse are not progress.
    """

    relative_tolerance = 1e-9

    def __init__(self, solution: SwitchingSolution, criteria: CriteriaSet, keep_copies: bool) -> None:
        self.solution = solution
        self.keep_copies = keep_copies
        self.current_value = criteria.objective_value(solution)
        self.best_value = self.current_value
        self._best: Optional[SwitchingSolution] = solution.clone(copy_flows=True) if keep_copies else None

    def register_move(self, delta_value: float) -> bool:
        """Update the current value after a move was applied to the solution.

        Returns
        -------
        bool
            Whether the solution reached a new best value
        """
        self.current_value += delta_value
        threshold = self.best_value - self.relative_tolerance * max(1.0, abs(self.best_value))
        improved = self.current_value < threshold
        if self.current_value < self.best_value:
            self.best_value = self.current_value
            if self.keep_copies:
                self._best = self.solution.clone(copy_flows=True)
        return improved

    @property
    def best(self) -> SwitchingSolution:
        """The best solution seen. Without copies, this is the searched solution itself."""
        return self._best if self._best is not None else self.solution


class LocalSearch:
    """The acceptance rule shared by the descents"""

    def __init__(self, selector: NeighborhoodSelector, acceptable_setback: float = 0.0) -> None:
        if acceptable_setback < 0:
            raise ValueError(f"The acceptable setback must be non-negative, got {acceptable_setback}")
        self.selector = selector
        self.acceptable_setback = acceptable_setback
        self.statistics = SearchStatistics()

    def is_acceptable(self, delta_value: float) -> bool:
        """Whether a move with the given delta value may be applied"""
        if delta_value < 0:
            return True
        return self.acceptable_setback > 0 and delta_value <= self.acceptable_setback

    def _apply(self, move: Move, delta_value: float, tracker: BestSolutionTracker) -> bool:
        move.apply(propagate=True)
        improved = tracker.register_move(delta_value)
        self.statistics.applied_moves += 1
        logger.debug(f"Applied {move} with delta {delta_value:.6g}, objective now {tracker.current_value:.6g}")
        return improved


class Descent(LocalSearch):
    """Explores one neighborhood at a time and applies its best move if acceptable"""

    def optimize(
        self,
        solution: SwitchingSolution,
        criteria: CriteriaSet,
        stop_criterion: Optional[StopCriterion] = None,
    ) -> SwitchingSolution:
        """Improve the solution in place until the selector or the stop criterion ends the search.

        Returns
        -------
        SwitchingSolution
            The best solution found. This is the given solution unless a positive setback led the search away
            from the best solution.
        """
        stop_criterion = stop_criterion if stop_criterion is not None else StopCriterion()
        stop_criterion.start()
        tracker = BestSolutionTracker(solution, criteria, keep_copies=self.acceptable_setback > 0)
        self.statistics = SearchStatistics(start_value=tracker.current_value, best_value=tracker.best_value)
        logger.info(f"Starting descent at objective value {tracker.current_value:.6g}")

        while not stop_criterion.is_triggered:
            neighborhood = self.selector.select()
            if neighborhood is None:
                break
            neighborhood.init(solution)
            best = find_best_move(neighborhood, criteria)
            if best is not None and self.is_acceptable(best.delta_value):
                improved = self._apply(best.move, best.delta_value, tracker)
                self.selector.register_result(neighborhood, best.move, improved)
            else:
                self.selector.register_result(neighborhood, None, False)
            stop_criterion.register_iteration()
            self.statistics.iterations += 1

        self.statistics.best_value = tracker.best_value
        logger.info(
            f"Descent finished after {self.statistics.iterations} neighborhoods and {self.statistics.applied_moves} "
            f"moves, best objective value {tracker.best_value:.6g}"
        )
        return tracker.best
