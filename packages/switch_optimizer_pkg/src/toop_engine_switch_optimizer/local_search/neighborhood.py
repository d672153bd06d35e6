# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Neighborhoods: generators of the moves the local search considers.

A neighborhood is initialized for the current state of a solution and then enumerates its moves. Exploring a
neighborhood evaluates every move and keeps the best legal one.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np

from toop_engine_switch_optimizer.criteria.criteria_set import CriteriaSet
from toop_engine_switch_optimizer.encoding.moves import Move, SwapSwitchStatusMove
from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.network.elements import Line


class Neighborhood(ABC):
    """A set of moves in one period, generated for the current state of a solution"""

    def __init__(self, period: Period) -> None:
        self.period = period
        self.solution: Optional[SwitchingSolution] = None

    def init(self, solution: SwitchingSolution) -> None:
        """Prepare the moves for the current state of the solution"""
        self.solution = solution

    @abstractmethod
    def moves(self) -> Iterator[Move]:
        """The moves of the neighborhood. Only valid after init."""

    def __iter__(self) -> Iterator[Move]:
        """Iterate over the moves"""
        return self.moves()


class CloseSwitchAndOpenOtherNeighborhood(Neighborhood):
    """Closes one open switch and opens a closed switch on the cycle this creates.

    Each move keeps the configuration radial. Moves that would feed a transformer through a terminal without modes
    are left out.
    """

    def __init__(self, switch_to_close: Line, period: Period, use_small_neighborhood: bool = False) -> None:
        """Create the neighborhood.

        Parameters
        ----------
        switch_to_close : Line
            The switch to close. The neighborhood is empty while it is closed.
        period : Period
            The period the moves change
        use_small_neighborhood : bool
            Only open the nearest switch on either side of the switch to close, instead of any switch on the cycle
        """
        super().__init__(period)
        self.switch_to_close = switch_to_close
        self.use_small_neighborhood = use_small_neighborhood
        self._switches_to_open: list[Line] = []

    def init(self, solution: SwitchingSolution) -> None:
        """Find the switches on the cycle the switch to close would create"""
        super().init(solution)
        self._switches_to_open = []
        configuration = solution.period_solution(self.period).configuration
        if not configuration.is_open(self.switch_to_close):
            return
        cycle = configuration.find_cycle_with(self.switch_to_close)
        position = next((i for i, directed in enumerate(cycle) if directed.line is self.switch_to_close), None)
        if position is None:
            return

        before = [directed.line for directed in cycle[:position] if directed.line.switchable]
        after = [directed.line for directed in cycle[position + 1 :] if directed.line.switchable]
        if self.use_small_neighborhood:
            candidates = before[-1:] + after[:1]
        else:
            candidates = before + after
        self._switches_to_open = [
            line
            for line in candidates
            if configuration.swapping_switches_uses_valid_transformer_modes(self.switch_to_close, line)
        ]

    @property
    def switches_to_open(self) -> list[Line]:
        """The switches that may be opened, found by init"""
        return list(self._switches_to_open)

    def moves(self) -> Iterator[Move]:
        """One swap for each switch to open"""
        for line in self._switches_to_open:
            yield SwapSwitchStatusMove(self.solution, self.period, line, self.switch_to_close)

    def __str__(self) -> str:
        """Name the switch to close"""
        return f"Close {self.switch_to_close.name} in {self.period}"


class MoveListNeighborhood(Neighborhood):
    """A fixed list of moves of one period"""

    def __init__(self, moves: list[Move]) -> None:
        if not moves:
            raise ValueError("A move list neighborhood needs at least one move")
        super().__init__(moves[0].period)
        self._moves = list(moves)

    def moves(self) -> Iterator[Move]:
        """The moves, for the solution they were created for"""
        yield from self._moves

    def __str__(self) -> str:
        """List the moves"""
        return ", ".join(str(move) for move in self._moves)


def generate_for_problem(
    problem: SwitchingProblem,
    use_small_neighborhoods: bool = False,
    rng: Optional[np.random.Generator] = None,
) -> list[Neighborhood]:
    """One neighborhood per switch and period, shuffled if a random generator is given"""
    neighborhoods: list[Neighborhood] = [
        CloseSwitchAndOpenOtherNeighborhood(line, period, use_small_neighborhoods)
        for period in problem.periods
        for line in problem.network.switchable_lines
    ]
    if rng is not None:
        order = rng.permutation(len(neighborhoods))
        neighborhoods = [neighborhoods[int(i)] for i in order]
    return neighborhoods


def all_moves(solution: SwitchingSolution, use_small_neighborhoods: bool = False) -> list[Move]:
    """Every swap move of the current state of the solution, in every period"""
    result = []
    for neighborhood in generate_for_problem(solution.problem, use_small_neighborhoods):
        neighborhood.init(solution)
        result.extend(neighborhood)
    return result


@dataclass
class MoveInfo:
    """The best move found in a neighborhood"""

    move: Move
    """The move"""

    delta_value: float
    """The change of the objective value the move causes"""

    neighborhood: Neighborhood
    """The neighborhood the move came from"""


def find_best_move(neighborhood: Neighborhood, criteria: CriteriaSet) -> Optional[MoveInfo]:
    """The legal move with the lowest delta value, or None if the neighborhood has no legal move.

    The neighborhood must be initialized. Ties are broken by the order of the moves.
    """
    best = None
    for move in neighborhood:
        delta = criteria.evaluate(move)
        if delta is None or math.isnan(delta):
            continue
        if best is None or delta < best.delta_value:
            best = MoveInfo(move, delta, neighborhood)
    return best
