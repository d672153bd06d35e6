# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The interface shared by objectives and constraints.

A criterion gives the value of a solution and tells whether the solution satisfies it. For moves, it gives the
change of the value and whether the solution still satisfies it after the move. For swap moves these are computed
from the cached flow delta. For other moves the criterion falls back to evaluating a copy of the solution with the
move applied.
"""

from __future__ import annotations

import threading
import weakref
from abc import ABC, abstractmethod
from typing import Callable, Optional, TypeVar

from toop_engine_switch_optimizer.encoding.moves import Move, SwapSwitchStatusMove
from toop_engine_switch_optimizer.encoding.solution import PeriodSolution, SwitchingSolution
from toop_engine_switch_optimizer.power_flow.flow import PowerFlow
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider
from toop_engine_switch_optimizer.power_flow.power_flow_delta import PowerFlowDelta

T = TypeVar("T")


class Criterion(ABC):
    """An objective component or a constraint"""

    name: str = ""

    @abstractmethod
    def value(self, solution: SwitchingSolution) -> float:
        """The value of the solution. Zero means no penalty for constraints."""

    def is_satisfied(self, solution: SwitchingSolution) -> bool:
        """Whether the solution satisfies the criterion"""
        return True

    def delta_value(self, move: Move) -> float:
        """The change of the value if the move were applied"""
        return self._value_after(move, self.value) - self.value(move.solution)

    def legal_move(self, move: Move) -> bool:
        """Whether the solution satisfies the criterion after the move"""
        return self._value_after(move, self.is_satisfied)

    def reason(self, solution: SwitchingSolution) -> str:
        """Why the solution does not satisfy the criterion"""
        return "" if self.is_satisfied(solution) else f"{self.name} is not satisfied"

    @staticmethod
    def _value_after(move: Move, evaluate: Callable[[SwitchingSolution], T]) -> T:
        after = move.solution.clone()
        move.get_clone_for(after).apply(propagate=False)
        return evaluate(after)

    def __str__(self) -> str:
        """The name of the criterion"""
        return self.name


class FlowDependentCriterion(Criterion):
    """A criterion evaluated on the flows computed by a flow provider.

    Values that depend only on one flow can be cached per flow object with cached_for_flow. Flows are replaced, not
    changed, when the solution changes, so the cache needs no invalidation.
    """

    def __init__(self, flow_provider: FlowProvider) -> None:
        self.flow_provider = flow_provider
        self._flow_cache: weakref.WeakKeyDictionary[PowerFlow, object] = weakref.WeakKeyDictionary()
        self._cache_lock = threading.Lock()

    @abstractmethod
    def with_provider(self, flow_provider: FlowProvider) -> FlowDependentCriterion:
        """The same criterion evaluated with another flow provider"""

    def flow_delta(self, move: Move) -> Optional[PowerFlowDelta]:
        """The cached flow delta of a swap move, or None for other moves"""
        if isinstance(move, SwapSwitchStatusMove):
            return move.get_cached_power_flow_delta(self.flow_provider)
        return None

    def flow(self, period_solution: PeriodSolution) -> Optional[PowerFlow]:
        """The flow of a period, or None if no radial flow is possible"""
        return period_solution.flow(self.flow_provider)

    def cached_for_flow(self, flow: PowerFlow, compute: Callable[[PowerFlow], T]) -> T:
        """Compute a value of the flow once and return the cached value afterwards"""
        with self._cache_lock:
            if flow in self._flow_cache:
                return self._flow_cache[flow]
        result = compute(flow)
        with self._cache_lock:
            self._flow_cache[flow] = result
        return result

    def other_periods(self, move: Move) -> list[PeriodSolution]:
        """The period solutions the move does not change"""
        return [
            period_solution
            for period_solution in move.solution.single_period_solutions
            if period_solution.period != move.period
        ]

    def __str__(self) -> str:
        """The name of the criterion and its flow provider"""
        return f"{self.name} ({self.flow_provider})"
