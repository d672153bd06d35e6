# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Neighborhood selectors decide which neighborhood the local search explores next, and when it stops."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from typing import Iterator, Optional

import logbook
import numpy as np

from toop_engine_switch_optimizer.encoding.moves import Move, SwapSwitchStatusMove
from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.local_search.neighborhood import Neighborhood
from toop_engine_switch_optimizer.network.elements import Line

logger = logbook.Logger(__name__)


class NeighborhoodSelector(ABC):
    """Chooses the next neighborhood to explore"""

    @abstractmethod
    def select(self) -> Optional[Neighborhood]:
        """The next neighborhood, or None if the search should stop"""

    @abstractmethod
    def register_result(self, neighborhood: Neighborhood, applied_move: Optional[Move], improved: bool) -> None:
        """Tell the selector what exploring a neighborhood led to.

        Parameters
        ----------
        neighborhood : Neighborhood
            The neighborhood that was explored
        applied_move : Optional[Move]
            The move that was applied, or None
        improved : bool
            Whether the applied move took the search to a new best objective value
        """


class SequentialSelector(NeighborhoodSelector):
    """Cycles through a fixed list of neighborhoods.

    The search stops after every neighborhood was selected once without reaching a new best objective value. If a
    random generator is given, the order is shuffled at the start of each pass.
    """

    def __init__(self, neighborhoods: list[Neighborhood], rng: Optional[np.random.Generator] = None) -> None:
        self.neighborhoods = list(neighborhoods)
        self.rng = rng
        self._position = 0
        self._since_improvement = 0
        self._shuffle()

    def _shuffle(self) -> None:
        if self.rng is not None and self.neighborhoods:
            order = self.rng.permutation(len(self.neighborhoods))
            self.neighborhoods = [self.neighborhoods[int(i)] for i in order]

    def select(self) -> Optional[Neighborhood]:
        """The next neighborhood in the current order"""
        if self._since_improvement >= len(self.neighborhoods):
            return None
        if self._position >= len(self.neighborhoods):
            self._position = 0
            self._shuffle()
        neighborhood = self.neighborhoods[self._position]
        self._position += 1
        self._since_improvement += 1
        return neighborhood

    def register_result(self, neighborhood: Neighborhood, applied_move: Optional[Move], improved: bool) -> None:
        """Restart the count of neighborhoods without improvement if the search reached a new best value"""
        if applied_move is not None and improved:
            self._since_improvement = 0


class _RetryNeighborhood(Neighborhood):
    """The swap of an improving move, tried in another period"""

    def __init__(self, period: Period, switch_to_open: Line, switch_to_close: Line) -> None:
        super().__init__(period)
        self.switch_to_open = switch_to_open
        self.switch_to_close = switch_to_close
        self._valid = False

    def init(self, solution: SwitchingSolution) -> None:
        """Check that the swap keeps the configuration of the period radial"""
        super().init(solution)
        configuration = solution.period_solution(self.period).configuration
        self._valid = (
            configuration.is_present(self.switch_to_open)
            and configuration.is_open(self.switch_to_close)
            and configuration.is_ancestor_of_one_end(self.switch_to_open, self.switch_to_close)
            and configuration.swapping_switches_uses_valid_transformer_modes(self.switch_to_close, self.switch_to_open)
        )

    def moves(self) -> Iterator[Move]:
        """The swap, if it is valid in the period"""
        if self._valid:
            yield SwapSwitchStatusMove(self.solution, self.period, self.switch_to_open, self.switch_to_close)

    def __str__(self) -> str:
        """Describe the retried swap"""
        return f"Retry open {self.switch_to_open.name}, close {self.switch_to_close.name} in {self.period}"


class RetryImprovingMoveInAdjacentPeriodsSelector(NeighborhoodSelector):
    """Wraps a selector and retries each swap that reached a new best value in the previous and the next period.

    Demands of adjacent periods are usually similar, and switching the same way in neighbouring periods also avoids
    switching costs. Retries are selected before the wrapped selector is asked again.
    """

    def __init__(self, selector: NeighborhoodSelector, solution: SwitchingSolution) -> None:
        self.selector = selector
        self.problem = solution.problem
        self._pending: deque[_RetryNeighborhood] = deque()

    def select(self) -> Optional[Neighborhood]:
        """A pending retry, or the next neighborhood of the wrapped selector"""
        if self._pending:
            return self._pending.popleft()
        return self.selector.select()

    def register_result(self, neighborhood: Neighborhood, applied_move: Optional[Move], improved: bool) -> None:
        """Forward the result to the wrapped selector and schedule retries of a swap that reached a new best value"""
        self.selector.register_result(neighborhood, applied_move, improved)
        if not isinstance(applied_move, SwapSwitchStatusMove) or not improved:
            return
        for period in (self.problem.previous_period(applied_move.period), self.problem.next_period(applied_move.period)):
            if period is not None:
                self._pending.append(
                    _RetryNeighborhood(period, applied_move.switch_to_open, applied_move.switch_to_close)
                )
        logger.debug(f"Retrying {applied_move} in adjacent periods")
