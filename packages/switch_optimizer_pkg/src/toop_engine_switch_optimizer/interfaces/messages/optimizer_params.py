# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The parameters for the switch optimizer.

The flow solver, the network aggregation and the local search each have their own parameter model,
the optimizer parameters bundle them together.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, NonNegativeFloat, PositiveFloat, PositiveInt, model_validator


class AlgorithmType(str, Enum):
    """The local search algorithm used by the optimizer"""

    DESCENT = "descent"
    """Single threaded descent, exploring one neighborhood at a time"""

    PARALLEL_DESCENT = "parallel_descent"
    """Several neighborhoods are explored concurrently, independent improving moves are applied together"""


class DistFlowParameters(BaseModel):
    """Parameters for the iterated DistFlow solver"""

    model_config = ConfigDict(extra="forbid")

    max_iterations: PositiveInt = 1000
    """The maximum number of iterations per provider tree. The result is approximate if the iteration stops here."""

    tolerance: PositiveFloat = 1e-10
    """The iteration has converged when the largest relative change of a bus voltage is below this value."""

    stop_on_imax_violation: bool = False
    """Stop with an approximate result as soon as a line current exceeds the line's IMax"""

    stop_on_vmin_violation: bool = False
    """Stop with an approximate result as soon as a consumer voltage drops below the consumer's VMin"""


class AggregationOptions(BaseModel):
    """Options for reducing a network to a smaller, electrically equivalent network"""

    model_config = ConfigDict(extra="forbid")

    aggregate_serial_lines: bool = True
    """Merge chains of non-switchable lines through connection buses of degree 2"""

    aggregate_parallel_lines: bool = True
    """Merge non-switchable lines that connect the same pair of buses"""

    remove_dangling_lines: bool = True
    """Remove lines that lead to connection buses without any consumer or provider beyond them"""


class OptimizerParameters(BaseModel):
    """The parameters of the switch configuration optimizer"""

    model_config = ConfigDict(extra="forbid")

    algorithm: AlgorithmType = AlgorithmType.PARALLEL_DESCENT
    """The local search algorithm to use"""

    acceptable_setback: NonNegativeFloat = 0.0
    """A move that makes the objective worse by at most this amount may still be accepted by the descent.
    The best solution found is always kept, so setbacks only affect the search path."""

    minimum_parallel_moves: PositiveInt = 4
    """The minimum number of neighborhoods explored in each round of the parallel descent"""

    max_workers: PositiveInt = 4
    """The number of worker threads exploring neighborhoods in the parallel descent"""

    time_limit_seconds: Optional[PositiveFloat] = None
    """Wall clock budget of the optimization. Running neighborhood evaluations are completed when it expires."""

    max_iterations: Optional[PositiveInt] = None
    """Maximum number of descent iterations (neighborhoods for the descent, rounds for the parallel descent)"""

    seed: int = 42
    """The seed for the random number generator"""

    aggregates: bool = True
    """Aggregate the network before optimizing and disaggregate the result afterwards"""

    use_small_neighborhoods: bool = False
    """Only consider the switches next to the switch to close on its cycle, instead of all switches in the cycle"""

    shuffle_neighborhoods: bool = True
    """Explore neighborhoods in a random order"""

    retry_in_adjacent_periods: bool = True
    """Retry an improving move in the previous and next periods"""

    switching_cost_weight: NonNegativeFloat = 1.0
    """The weight of the switching cost relative to the total loss in MWh"""

    line_capacity_threshold: float = 1.0
    """The fraction of each line's IMax that may be used before the capacity constraint is violated"""

    flow: DistFlowParameters = DistFlowParameters()
    """Parameters of the flow solver used to evaluate configurations"""

    aggregation: AggregationOptions = AggregationOptions()
    """Options for the network aggregation"""

    @model_validator(mode="after")
    def check_line_capacity_threshold(self) -> OptimizerParameters:
        """Ensure that the line capacity threshold is a fraction"""
        if not 0.0 <= self.line_capacity_threshold <= 1.0:
            raise ValueError(f"Line capacity threshold must be in [0, 1], got {self.line_capacity_threshold}")
        return self

    @model_validator(mode="after")
    def check_parallel_moves(self) -> OptimizerParameters:
        """Ensure that each worker gets at least one neighborhood per round"""
        if self.algorithm == AlgorithmType.PARALLEL_DESCENT and self.minimum_parallel_moves < self.max_workers:
            raise ValueError(
                f"minimum_parallel_moves ({self.minimum_parallel_moves}) must be at least max_workers ({self.max_workers})"
            )
        return self
