# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Decides whether swap moves found on the same state of a solution can all be applied.

Moves that touch the same switch in the same period are dependent. Otherwise a set of swaps is independent if
applying all of them keeps every period radial. This is decided on the configuration before any of the moves is
applied:

Opening the switches to open cuts each provider tree into parts. A part is identified by the first opened switch on
the path from its buses to the provider, or by the provider if there is none. Each switch to close links two parts.
The result is radial if and only if these links form a forest in which every part is connected to exactly one
provider.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Optional, Union

import logbook

from toop_engine_switch_optimizer.encoding.moves import Move, SwapSwitchStatusMove
from toop_engine_switch_optimizer.network.elements import Bus, Line
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration

logger = logbook.Logger(__name__)

Part = Union[Bus, Line]


class _PartForest:
    """Union-find over the parts of the cut trees, remembering which sets contain a provider"""

    def __init__(self) -> None:
        self._parent: dict[Part, Part] = {}
        self._has_provider: dict[Part, bool] = {}

    def add(self, part: Part, is_provider: bool) -> None:
        if part not in self._parent:
            self._parent[part] = part
            self._has_provider[part] = is_provider

    def find(self, part: Part) -> Part:
        root = part
        while self._parent[root] is not root:
            root = self._parent[root]
        while self._parent[part] is not root:
            self._parent[part], part = root, self._parent[part]
        return root

    def union(self, first: Part, second: Part) -> bool:
        """Link two parts. Returns False if this closes a cycle or connects two providers."""
        root1, root2 = self.find(first), self.find(second)
        if root1 is root2:
            return False
        if self._has_provider[root1] and self._has_provider[root2]:
            return False
        self._parent[root2] = root1
        self._has_provider[root1] = self._has_provider[root1] or self._has_provider[root2]
        return True

    def all_parts_fed(self) -> bool:
        return all(self._has_provider[self.find(part)] for part in self._parent)


class MoveDependenceRule:
    """Decides which moves found in parallel can be applied together"""

    def are_independent(self, moves: list[Move]) -> bool:
        """Whether all moves can be applied together, evaluated on the state they were all created for.

        Moves other than swaps are always considered dependent on each other.
        """
        if len(moves) <= 1:
            return True
        if not all(isinstance(move, SwapSwitchStatusMove) for move in moves):
            return False

        touched: set[tuple[object, Line]] = set()
        by_period: dict[object, list[SwapSwitchStatusMove]] = defaultdict(list)
        for move in moves:
            for line in move.switches:
                key = (move.period, line)
                if key in touched:
                    return False
                touched.add(key)
            by_period[move.period].append(move)

        for period_moves in by_period.values():
            configuration = period_moves[0].configuration
            if not self._is_radial_after(configuration, period_moves):
                return False
        return True

    def are_dependent(self, committed: list[Move], candidate: Move) -> bool:
        """Whether the candidate cannot be applied together with the moves already committed"""
        return not self.are_independent([*committed, candidate])

    def update(self, move_to_update: Move, applied_move: Move) -> Optional[Move]:
        """The move to apply after another move was applied to the same solution.

        Returns None if the swap is no longer valid, i.e. a switch no longer has the state the move expects or the
        swap would create a cycle. Otherwise the move is returned, with its cached flow delta cleared if the applied
        move changed the same period.
        """
        if not isinstance(move_to_update, SwapSwitchStatusMove) or not isinstance(applied_move, SwapSwitchStatusMove):
            return None
        configuration = move_to_update.configuration
        if not configuration.is_present(move_to_update.switch_to_open):
            return None
        if not configuration.is_open(move_to_update.switch_to_close):
            return None
        if not configuration.is_ancestor_of_one_end(move_to_update.switch_to_open, move_to_update.switch_to_close):
            return None
        if move_to_update.period == applied_move.period:
            move_to_update.clear_cached_power_flow_delta()
        return move_to_update

    @staticmethod
    def _is_radial_after(configuration: NetworkConfiguration, moves: list[SwapSwitchStatusMove]) -> bool:
        for move in moves:
            if not configuration.is_present(move.switch_to_open) or not configuration.is_open(move.switch_to_close):
                logger.debug(f"{move} does not match the configuration")
                return False
            if not configuration.is_in_tree(move.switch_to_open):
                return False

        opened = {move.switch_to_open for move in moves}
        forest = _PartForest()
        for line in opened:
            forest.add(line, False)

        def part_of(bus: Bus) -> Optional[Part]:
            for directed in configuration.path_to_provider(bus):
                if directed.line in opened:
                    return directed.line
            provider = configuration.provider_for(bus)
            if provider is not None:
                forest.add(provider, True)
            return provider

        for move in moves:
            first, second = (part_of(end) for end in move.switch_to_close.endpoints)
            if first is None or second is None:
                return False
            if not forest.union(first, second):
                return False
        return forest.all_parts_fed()
