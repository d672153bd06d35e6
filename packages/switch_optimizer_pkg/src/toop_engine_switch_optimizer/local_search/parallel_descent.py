# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Descent that explores several neighborhoods concurrently.

Each round has three phases:

1. The coordinator selects neighborhoods and initializes them. It also computes the topology and the flows of every
   period, so that the workers only read the solution.
2. Worker threads explore one neighborhood each and return its best legal move.
3. The coordinator goes through the results in the order the neighborhoods were selected. An acceptable move is
   committed unless the dependence rule finds it dependent on the moves already committed in the round. Committed
   moves are applied one after another, each re-evaluated on the state left by the previous ones.

The solution is only changed in the third phase, so the outcome of a round does not depend on the thread schedule.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import logbook

from toop_engine_switch_optimizer.criteria.criteria_set import CriteriaSet
from toop_engine_switch_optimizer.encoding.moves import Move
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.local_search.dependence_rule import MoveDependenceRule
from toop_engine_switch_optimizer.local_search.descent import BestSolutionTracker, LocalSearch, SearchStatistics
from toop_engine_switch_optimizer.local_search.neighborhood import MoveInfo, Neighborhood, find_best_move
from toop_engine_switch_optimizer.local_search.selectors import NeighborhoodSelector
from toop_engine_switch_optimizer.local_search.stop_criterion import StopCriterion

logger = logbook.Logger(__name__)


class ParallelNeighborhoodDescent(LocalSearch):
    """Explores at least minimum_parallel_moves neighborhoods per round on a pool of worker threads"""

    def __init__(
        self,
        selector: NeighborhoodSelector,
        dependence_rule: Optional[MoveDependenceRule] = None,
        minimum_parallel_moves: int = 4,
        max_workers: int = 4,
        acceptable_setback: float = 0.0,
    ) -> None:
        """Create the descent.

        Parameters
        ----------
        selector : NeighborhoodSelector
            Chooses the neighborhoods of each round and decides when the search ends
        dependence_rule : Optional[MoveDependenceRule]
            Decides which of the moves found in a round can be applied together
        minimum_parallel_moves : int
            The number of neighborhoods explored per round, fewer only if the selector runs out
        max_workers : int
            The number of worker threads
        acceptable_setback : float
            The largest increase of the objective value a move may cause and still be applied
        """
        super().__init__(selector, acceptable_setback)
        if minimum_parallel_moves < 1 or max_workers < 1:
            raise ValueError("The parallel descent needs at least one worker and one neighborhood per round")
        self.dependence_rule = dependence_rule if dependence_rule is not None else MoveDependenceRule()
        self.minimum_parallel_moves = minimum_parallel_moves
        self.max_workers = max_workers

    def optimize(
        self,
        solution: SwitchingSolution,
        criteria: CriteriaSet,
        stop_criterion: Optional[StopCriterion] = None,
    ) -> SwitchingSolution:
        """Improve the solution in place until the selector runs out or the stop criterion ends the search.

        Returns
        -------
        SwitchingSolution
            The best solution found
        """
        stop_criterion = stop_criterion if stop_criterion is not None else StopCriterion()
        stop_criterion.start()
        tracker = BestSolutionTracker(solution, criteria, keep_copies=self.acceptable_setback > 0)
        self.statistics = SearchStatistics(start_value=tracker.current_value, best_value=tracker.best_value)
        logger.info(
            f"Starting parallel descent with {self.max_workers} workers at objective value {tracker.current_value:.6g}"
        )

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="neighborhood") as executor:
            while not stop_criterion.is_triggered:
                self._prepare(solution, criteria)
                batch = self._select_batch(solution)
                if not batch:
                    break
                futures = [executor.submit(find_best_move, neighborhood, criteria) for neighborhood in batch]
                results = [future.result() for future in futures]
                applied = self._commit(batch, results, criteria, tracker)
                stop_criterion.register_iteration()
                self.statistics.iterations += 1
                logger.debug(f"Round {self.statistics.iterations}: applied {applied} of {len(batch)} neighborhoods")

        self.statistics.best_value = tracker.best_value
        logger.info(
            f"Parallel descent finished after {self.statistics.iterations} rounds and "
            f"{self.statistics.applied_moves} moves, best objective value {tracker.best_value:.6g}"
        )
        return tracker.best

    @staticmethod
    def _prepare(solution: SwitchingSolution, criteria: CriteriaSet) -> None:
        """Compute everything the workers read, so that they do not race to compute it"""
        provider = criteria.flow_provider
        for period_solution in solution.single_period_solutions:
            _ = period_solution.configuration.is_radial
            if provider is not None:
                period_solution.flow(provider)

    def _select_batch(self, solution: SwitchingSolution) -> list[Neighborhood]:
        batch = []
        while len(batch) < self.minimum_parallel_moves:
            neighborhood = self.selector.select()
            if neighborhood is None:
                break
            neighborhood.init(solution)
            batch.append(neighborhood)
        return batch

    def _commit(
        self,
        batch: list[Neighborhood],
        results: list[Optional[MoveInfo]],
        criteria: CriteriaSet,
        tracker: BestSolutionTracker,
    ) -> int:
        """Apply the independent acceptable moves of a round. Returns the number of moves applied."""
        committed: list[Move] = []
        for result in results:
            if result is None or not self.is_acceptable(result.delta_value):
                continue
            if self.dependence_rule.are_dependent(committed, result.move):
                logger.debug(f"Skipping {result.move}, it depends on a move committed in this round")
                continue
            committed.append(result.move)

        outcomes: dict[int, tuple[Move, bool]] = {}
        applied: list[Move] = []
        for move in committed:
            current: Optional[Move] = move
            for previous in applied:
                current = self.dependence_rule.update(current, previous)
                if current is None:
                    break
            if current is None:
                continue
            delta = criteria.evaluate(current) if applied else self._first_delta(move, results)
            if delta is None or not self.is_acceptable(delta):
                logger.debug(f"Dropping {current}, it is no longer acceptable after the moves applied before it")
                continue
            improved = self._apply(current, delta, tracker)
            applied.append(current)
            outcomes[id(move)] = (current, improved)

        for neighborhood, result in zip(batch, results):
            outcome = outcomes.get(id(result.move)) if result is not None else None
            if outcome is None:
                self.selector.register_result(neighborhood, None, False)
            else:
                self.selector.register_result(neighborhood, outcome[0], outcome[1])
        return len(applied)

    @staticmethod
    def _first_delta(move: Move, results: list[Optional[MoveInfo]]) -> float:
        """The delta value the worker computed for a move, still valid while nothing has been applied"""
        return next(result.delta_value for result in results if result is not None and result.move is move)
