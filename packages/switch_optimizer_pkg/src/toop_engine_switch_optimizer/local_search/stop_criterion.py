# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The time and iteration budget of a search."""

from __future__ import annotations

import threading
import time
from typing import Optional


class StopCriterion:
    """Tells a search when its budget is spent, or when it was asked to stop.

    The search checks the criterion between iterations, so a running iteration is always completed.
    """

    def __init__(self, time_limit_seconds: Optional[float] = None, max_iterations: Optional[int] = None) -> None:
        self.time_limit_seconds = time_limit_seconds
        self.max_iterations = max_iterations
        self.iterations = 0
        self._start: Optional[float] = None
        self._triggered = threading.Event()

    def start(self) -> None:
        """Start the clock. Called by the search, a second call keeps the first start time."""
        if self._start is None:
            self._start = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        """The seconds since start"""
        return 0.0 if self._start is None else time.monotonic() - self._start

    def trigger(self) -> None:
        """Ask the search to stop after the running iteration. May be called from any thread."""
        self._triggered.set()

    def register_iteration(self) -> None:
        """Count one iteration"""
        self.iterations += 1

    @property
    def is_triggered(self) -> bool:
        """Whether the search should stop"""
        if self._triggered.is_set():
            return True
        if self.max_iterations is not None and self.iterations >= self.max_iterations:
            return True
        return self.time_limit_seconds is not None and self.elapsed_seconds >= self.time_limit_seconds
