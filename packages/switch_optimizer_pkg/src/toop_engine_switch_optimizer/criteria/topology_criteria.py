# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Criteria that depend only on the switch settings, not on the flows."""

from __future__ import annotations

from typing import Optional

from toop_engine_switch_optimizer.criteria.criterion import Criterion
from toop_engine_switch_optimizer.encoding.moves import Move, SwapSwitchStatusMove
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.network.elements import Line
from toop_engine_switch_optimizer.network.switch_settings import SwitchSettings


def switching_cost(settings: SwitchSettings, other: Optional[SwitchSettings]) -> float:
    """The cost of changing between two switch settings of the same network"""
    if other is None:
        return 0.0
    return sum(line.switching_cost for line in settings.different_switches(other))


class ConfigChangeCost(Criterion):
    """The total cost of the switch changes, from the start configuration through the periods to the target
    configuration.
    """

    name = "Switching cost"

    def value(self, solution: SwitchingSolution) -> float:
        """The cost of every switch change over the horizon"""
        total = 0.0
        for period_solution in solution.single_period_solutions:
            total += switching_cost(
                period_solution.switch_settings, solution.previous_switch_settings(period_solution.period)
            )
        last = solution.single_period_solutions[-1]
        total += switching_cost(last.switch_settings, solution.next_switch_settings(last.period))
        return total

    def delta_value(self, move: Move) -> float:
        """The change of the cost caused by the switches of the move, given the neighbouring periods"""
        if not isinstance(move, SwapSwitchStatusMove):
            return super().delta_value(move)
        settings = move.solution.period_solution(move.period).switch_settings
        neighbours = [
            move.solution.previous_switch_settings(move.period),
            move.solution.next_switch_settings(move.period),
        ]
        delta = 0.0
        for line in (move.switch_to_open, move.switch_to_close):
            delta += line.switching_cost * sum(self._change(settings, neighbour, line) for neighbour in neighbours)
        return delta

    @staticmethod
    def _change(settings: SwitchSettings, neighbour: Optional[SwitchSettings], line: Line) -> int:
        """Plus one if toggling the line creates a difference to the neighbour, minus one if it removes one"""
        if neighbour is None:
            return 0
        return -1 if settings.is_open(line) != neighbour.is_open(line) else 1


class TransformerModesConstraint(Criterion):
    """Requires each transformer to be fed through a terminal it has modes for"""

    name = "Transformer modes"

    def value(self, solution: SwitchingSolution) -> float:
        """The number of transformers using missing modes, summed over the periods"""
        return float(
            sum(
                len(period_solution.configuration.transformers_using_missing_modes)
                for period_solution in solution.single_period_solutions
            )
        )

    def is_satisfied(self, solution: SwitchingSolution) -> bool:
        """Whether no period has a transformer fed through a terminal without modes"""
        return not any(
            period_solution.configuration.has_transformers_using_missing_modes
            for period_solution in solution.single_period_solutions
        )

    def delta_value(self, move: Move) -> float:
        """The change of the number of transformers using missing modes in the move's period"""
        if not isinstance(move, SwapSwitchStatusMove):
            return super().delta_value(move)
        configuration = move.configuration
        after = configuration.clone()
        move.apply_to(after)
        return float(len(after.transformers_using_missing_modes) - len(configuration.transformers_using_missing_modes))

    def legal_move(self, move: Move) -> bool:
        """Whether every transformer uses a valid mode after the move"""
        if not isinstance(move, SwapSwitchStatusMove):
            return super().legal_move(move)
        configuration = move.configuration
        if not configuration.swapping_switches_uses_valid_transformer_modes(move.switch_to_close, move.switch_to_open):
            return False
        for period_solution in move.solution.single_period_solutions:
            if period_solution.period != move.period and period_solution.configuration.has_transformers_using_missing_modes:
                return False
        if not configuration.has_transformers_using_missing_modes:
            return True
        after = configuration.clone()
        move.apply_to(after)
        return not after.has_transformers_using_missing_modes

    def reason(self, solution: SwitchingSolution) -> str:
        """The transformers without a valid mode in each period"""
        rows = []
        for period_solution in solution.single_period_solutions:
            for transformer in period_solution.configuration.transformers_using_missing_modes:
                rows.append(f"{period_solution.period}: transformer {transformer.name} has no mode for its input")
        return "\n".join(rows)
