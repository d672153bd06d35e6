# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Periods, switching problems, their solutions and the moves that change solutions."""

from .moves import (
    ChangeSwitchesMove,
    Move,
    SwapSwitchStatusMove,
    create_move,
    create_move_for_radial_flow,
    create_update_move,
    set_closed_only,
    set_open_only,
)
from .period import Period
from .problem import PeriodData, SwitchingProblem
from .solution import PeriodSolution, SwitchingSolution

__all__ = [
    "ChangeSwitchesMove",
    "Move",
    "Period",
    "PeriodData",
    "PeriodSolution",
    "SwapSwitchStatusMove",
    "SwitchingProblem",
    "SwitchingSolution",
    "create_move",
    "create_move_for_radial_flow",
    "create_update_move",
    "set_closed_only",
    "set_open_only",
]
