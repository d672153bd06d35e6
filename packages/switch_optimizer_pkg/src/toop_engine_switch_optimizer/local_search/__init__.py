# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Local search over switch swaps: neighborhoods, selectors, the descents and the move dependence rule."""

from .dependence_rule import MoveDependenceRule
from .descent import BestSolutionTracker, Descent, LocalSearch, SearchStatistics
from .neighborhood import (
    CloseSwitchAndOpenOtherNeighborhood,
    MoveInfo,
    MoveListNeighborhood,
    Neighborhood,
    all_moves,
    find_best_move,
    generate_for_problem,
)
from .parallel_descent import ParallelNeighborhoodDescent
from .selectors import NeighborhoodSelector, RetryImprovingMoveInAdjacentPeriodsSelector, SequentialSelector
from .stop_criterion import StopCriterion

__all__ = [
    "BestSolutionTracker",
    "CloseSwitchAndOpenOtherNeighborhood",
    "Descent",
    "LocalSearch",
    "MoveDependenceRule",
    "MoveInfo",
    "MoveListNeighborhood",
    "Neighborhood",
    "NeighborhoodSelector",
    "ParallelNeighborhoodDescent",
    "RetryImprovingMoveInAdjacentPeriodsSelector",
    "SearchStatistics",
    "SequentialSelector",
    "StopCriterion",
    "all_moves",
    "find_best_move",
    "generate_for_problem",
]
