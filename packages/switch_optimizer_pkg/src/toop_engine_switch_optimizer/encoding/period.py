# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""A time period of a switching problem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional


@dataclass(frozen=True)
class Period:
    """A time interval during which the demands and the switch settings are constant"""

    start_time: datetime
    """When the period starts"""

    end_time: datetime
    """When the period ends"""

    index: int = 0
    """The position of the period in its problem"""

    id: Optional[str] = field(default=None, compare=False)
    """An identifier for the period. Defaults to the index."""

    def __post_init__(self) -> None:
        """Check the interval and fill in the default id"""
        if self.end_time <= self.start_time:
            raise ValueError(f"Period {self.index} ends at {self.end_time}, before it starts at {self.start_time}")
        if self.id is None:
            object.__setattr__(self, "id", str(self.index))

    @property
    def length(self) -> timedelta:
        """The duration of the period"""
        return self.end_time - self.start_time

    @property
    def length_seconds(self) -> float:
        """The duration of the period in seconds"""
        return self.length.total_seconds()

    @staticmethod
    def default() -> Period:
        """A one hour period starting at midnight on 2000-01-01"""
        return Period(datetime(2000, 1, 1), datetime(2000, 1, 1, 1), 0)

    @staticmethod
    def following(period: Period, length: timedelta) -> Period:
        """The period of the given length that starts when the given period ends"""
        return Period(period.end_time, period.end_time + length, period.index + 1)

    def __str__(self) -> str:
        """Name the period"""
        return f"Period {self.index}: {self.id}"
