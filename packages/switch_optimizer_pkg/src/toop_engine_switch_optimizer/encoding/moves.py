# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Moves: changes of the switch settings of one period of a solution.

A move is created for the current state of a solution and validated against it. After a move is applied, its reverse
restores the previous switch settings. Swap moves cache the flow delta computed while they are evaluated, so that
applying an accepted move does not recompute the flow.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional

import numpy as np

from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.exceptions import InvalidMoveError
from toop_engine_switch_optimizer.network.elements import Bus, Line
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider
from toop_engine_switch_optimizer.power_flow.power_flow_delta import PowerFlowDelta


class Move(ABC):
    """A change that can be applied to a solution"""

    def __init__(self, solution: SwitchingSolution, period: Period) -> None:
        self.solution = solution
        self.period = period

    @abstractmethod
    def apply(self, propagate: bool = True) -> None:
        """Apply the move to its solution.

        Parameters
        ----------
        propagate : bool
            If true, flows that the move already knows are installed in the solution. Otherwise cached flows are
            only invalidated and recomputed when needed.
        """

    @abstractmethod
    def get_reverse(self) -> Move:
        """The move that undoes this move. Only valid after this move was applied."""

    @abstractmethod
    def get_clone_for(self, solution: SwitchingSolution) -> Move:
        """The same move for another solution of the same problem"""

    @property
    @abstractmethod
    def switches(self) -> list[Line]:
        """The switches the move changes"""


class ChangeSwitchesMove(Move):
    """Opens some switches and closes others in one period"""

    def __init__(
        self,
        solution: SwitchingSolution,
        period: Period,
        switches_to_open: Iterable[Line],
        switches_to_close: Iterable[Line],
    ) -> None:
        """Create the move.

        Raises
        ------
        InvalidMoveError
            If a switch to open is already open or a switch to close is already closed
        """
        super().__init__(solution, period)
        self.switches_to_open = list(switches_to_open)
        self.switches_to_close = list(switches_to_close)
        settings = solution.period_solution(period).switch_settings
        if any(settings.is_open(line) for line in self.switches_to_open):
            raise InvalidMoveError("A switch to open is already open")
        if any(settings.is_closed(line) for line in self.switches_to_close):
            raise InvalidMoveError("A switch to close is already closed")

    @property
    def switches(self) -> list[Line]:
        """The switches to open followed by the switches to close"""
        return self.switches_to_open + self.switches_to_close

    @property
    def does_something(self) -> bool:
        """Whether the move changes any switch"""
        return bool(self.switches_to_open or self.switches_to_close)

    @property
    def configuration(self) -> NetworkConfiguration:
        """The configuration the move changes"""
        return self.solution.period_solution(self.period).configuration

    def apply(self, propagate: bool = True) -> None:
        """Set the switches in the solution"""
        for line in self.switches_to_close:
            self.solution.set_switch(self.period, line, False)
        for line in self.switches_to_open:
            self.solution.set_switch(self.period, line, True)

    def apply_to(self, configuration: NetworkConfiguration) -> None:
        """Set the switches in another configuration of the same network"""
        for line in self.switches_to_close:
            configuration.set_switch(line, False)
        for line in self.switches_to_open:
            configuration.set_switch(line, True)

    def get_reverse(self) -> ChangeSwitchesMove:
        """The move that closes the opened switches and opens the closed ones"""
        return ChangeSwitchesMove(self.solution, self.period, self.switches_to_close, self.switches_to_open)

    def get_clone_for(self, solution: SwitchingSolution) -> ChangeSwitchesMove:
        """The same move for another solution"""
        return ChangeSwitchesMove(solution, self.period, self.switches_to_open, self.switches_to_close)

    def __str__(self) -> str:
        """Describe the move, e.g. 'Open s1, close s2'"""
        opened = ", ".join(line.name for line in self.switches_to_open)
        closed = ", ".join(line.name for line in self.switches_to_close)
        period = f", period {self.period.index}" if self.solution.problem.period_count > 1 else ""
        if not self.switches_to_close:
            return f"Open {opened}{period}"
        if not self.switches_to_open:
            return f"Close {closed}{period}"
        return f"Open {opened}, close {closed}{period}"


class SwapSwitchStatusMove(ChangeSwitchesMove):
    """Closes one open switch and opens one closed switch on the cycle it closes"""

    def __init__(self, solution: SwitchingSolution, period: Period, switch_to_open: Line, switch_to_close: Line) -> None:
        super().__init__(solution, period, [switch_to_open], [switch_to_close])
        self.switch_to_open = switch_to_open
        self.switch_to_close = switch_to_close
        self._deltas: dict[FlowProvider, tuple[int, PowerFlowDelta]] = {}
        self._lock = threading.Lock()

    def get_cached_power_flow_delta(self, provider: FlowProvider) -> PowerFlowDelta:
        """The change of the flow caused by the move, computed once per flow provider.

        A cached delta is recomputed if the switch settings of the period changed since it was computed.
        """
        period_solution = self.solution.period_solution(self.period)
        version = period_solution.switch_settings.version
        with self._lock:
            cached = self._deltas.get(provider)
            if cached is not None and cached[0] == version:
                return cached[1]

        old_flow = period_solution.flow(provider)
        if old_flow is None:
            raise InvalidMoveError(f"No flow can be computed in {self.period}, so the flow delta of {self} is undefined")
        delta = provider.compute_power_flow_delta(old_flow, self.switch_to_open, self.switch_to_close)
        with self._lock:
            self._deltas[provider] = (version, delta)
        return delta

    def clear_cached_power_flow_delta(self) -> None:
        """Forget the cached flow deltas"""
        with self._lock:
            self._deltas.clear()

    def new_upstream_line(self, bus: Bus) -> Optional[Line]:
        """The line that feeds the bus after the move"""
        configuration = self.configuration
        old_upstream = configuration.upstream_line(bus)
        if not configuration.is_ancestor(self.switch_to_open, bus):
            return old_upstream
        for end in self.switch_to_close.endpoints:
            if configuration.is_ancestor_of_bus(bus, end):
                if bus is end:
                    return self.switch_to_close
                return _downstream_line_toward(configuration, bus, end)
        return old_upstream

    def apply(self, propagate: bool = True) -> None:
        """Swap the switches. With propagate, flows from cached deltas are installed in the solution."""
        period_solution = self.solution.period_solution(self.period)
        version = period_solution.switch_settings.version
        with self._lock:
            deltas = {provider: delta for provider, (computed, delta) in self._deltas.items() if computed == version}
            self._deltas.clear()

        super().apply(propagate)

        if propagate:
            for provider, delta in deltas.items():
                period_solution.set_flow(provider, delta.apply_to(period_solution.configuration))

    def get_reverse(self) -> SwapSwitchStatusMove:
        """The swap that closes the opened switch and opens the closed one"""
        return SwapSwitchStatusMove(self.solution, self.period, self.switch_to_close, self.switch_to_open)

    def get_clone_for(self, solution: SwitchingSolution) -> SwapSwitchStatusMove:
        """The same swap for another solution"""
        return SwapSwitchStatusMove(solution, self.period, self.switch_to_open, self.switch_to_close)


def _downstream_line_toward(configuration: NetworkConfiguration, bus: Bus, descendant: Bus) -> Line:
    """The downstream line of the bus on the path to one of its descendants"""
    current = descendant
    while True:
        upstream = configuration.upstream_bus(current)
        if upstream is bus:
            return configuration.upstream_line(current)
        current = upstream


def create_move(
    solution: SwitchingSolution, period: Period, should_be_open: Callable[[Line], bool]
) -> ChangeSwitchesMove:
    """The move that sets each switch of the period to the state given by a function"""
    period_solution = solution.period_solution(period)
    to_open = [line for line in period_solution.closed_switches if should_be_open(line)]
    to_close = [line for line in period_solution.open_switches if not should_be_open(line)]
    return ChangeSwitchesMove(solution, period, to_open, to_close)


def create_update_move(
    solution: SwitchingSolution, period: Period, target: NetworkConfiguration
) -> ChangeSwitchesMove:
    """The move that gives the period the switch settings of the target configuration"""
    return create_move(solution, period, target.is_open)


def create_move_for_radial_flow(
    solution: SwitchingSolution, period: Period, rng: Optional[np.random.Generator] = None
) -> ChangeSwitchesMove:
    """The move that makes the configuration of the period radial with valid transformer modes"""
    radial = solution.period_solution(period).configuration.clone()
    radial.make_radial_flow_possible(rng)
    return create_update_move(solution, period, radial)


def set_open_only(solution: SwitchingSolution, period: Period, open_switches: Iterable[str]) -> None:
    """Open exactly the named switches in the period and close all others"""
    names = set(open_switches)
    create_move(solution, period, lambda line: line.name in names).apply()


def set_closed_only(solution: SwitchingSolution, period: Period, closed_switches: Iterable[str]) -> None:
    """Close exactly the named switches in the period and open all others"""
    names = set(closed_switches)
    create_move(solution, period, lambda line: line.name not in names).apply()
