# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The optimizer pipeline: start solution repair, local search, and the result on the original network."""

from .config_optimizer import ConfigOptimizer, ObjectiveComponentSchema, OptimizationResult
from .feasible_solution_constructor import FeasibleSolutionConstructor

__all__ = [
    "ConfigOptimizer",
    "FeasibleSolutionConstructor",
    "ObjectiveComponentSchema",
    "OptimizationResult",
]
