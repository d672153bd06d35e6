# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Switch configuration optimization for radial distribution networks.

The package is organized leaf-first:

- network: buses, lines, transformers, switch settings, the radiality engine and aggregation
- power_flow: the iterated DistFlow solver, flow results, deltas and disaggregation
- encoding: periods, demands, problems, solutions and moves
- criteria: objectives and constraints with incremental evaluation
- local_search: neighborhoods, descent, parallel descent and the move dependence rule
- solvers: feasible solution construction and the overall configuration optimizer
"""

from beartype import BeartypeConf
from beartype.claw import beartype_this_package

# Leave this at the top. Otherwise the modules imported before wont be beartyped
beartype_this_package(conf=BeartypeConf(is_pep484_tower=True))
