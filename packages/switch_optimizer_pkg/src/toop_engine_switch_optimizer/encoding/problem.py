# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The switching problem: a network, the demands in a sequence of periods and optional start and target
configurations.

The objectives and constraints are kept outside of the problem, in a CriteriaSet, so that the same problem can be
evaluated with different criteria.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.exceptions import NetworkStructureError
from toop_engine_switch_optimizer.network.aggregation import NetworkAggregation
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_demands import PowerDemands
from toop_engine_switch_optimizer.network.power_network import PowerNetwork


@dataclass(frozen=True, eq=False)
class PeriodData:
    """The demands of one period"""

    network: PowerNetwork
    """The network the demands are for"""

    demands: PowerDemands
    """The demand of each consumer during the period"""

    period: Period
    """The period"""

    def __post_init__(self) -> None:
        """Check that the demands belong to the network"""
        if self.demands.network is not self.network:
            raise NetworkStructureError(f"The demands of {self.period} refer to a different network")


class SwitchingProblem:
    """A multi-period switching problem on one network"""

    def __init__(
        self,
        period_data: Sequence[PeriodData],
        name: str = "",
        start_configuration: Optional[NetworkConfiguration] = None,
        target_configuration: Optional[NetworkConfiguration] = None,
    ) -> None:
        """Create the problem.

        Parameters
        ----------
        period_data : Sequence[PeriodData]
            The data of each period, in chronological order
        name : str
            A name for the problem
        start_configuration : Optional[NetworkConfiguration]
            The configuration in use before the first period. Switching away from it is counted by the switching cost.
        target_configuration : Optional[NetworkConfiguration]
            The configuration wanted after the last period. Switching to it is counted by the switching cost.
        """
        if not period_data:
            raise ValueError("A switching problem needs at least one period")
        for first, second in zip(period_data, period_data[1:]):
            if first.period.start_time >= second.period.start_time:
                raise ValueError("The periods are not chronological")
        network = period_data[0].network
        if any(data.network is not network for data in period_data):
            raise NetworkStructureError("The period data refer to different networks")
        for configuration in (start_configuration, target_configuration):
            if configuration is not None and configuration.network is not network:
                raise NetworkStructureError("The start or target configuration refers to a different network")

        self.name = name
        self.network = network
        self._period_data = {data.period: data for data in period_data}
        self._periods = [data.period for data in period_data]
        self.start_configuration = start_configuration.clone() if start_configuration is not None else None
        self.target_configuration = target_configuration.clone() if target_configuration is not None else None

    @staticmethod
    def single_period(
        network: PowerNetwork,
        demands: PowerDemands,
        period: Optional[Period] = None,
        name: str = "",
        start_configuration: Optional[NetworkConfiguration] = None,
    ) -> SwitchingProblem:
        """Create a problem with one period"""
        data = PeriodData(network, demands, period if period is not None else Period.default())
        return SwitchingProblem([data], name or network.name, start_configuration)

    @property
    def periods(self) -> list[Period]:
        """The periods in chronological order"""
        return list(self._periods)

    @property
    def period_count(self) -> int:
        """The number of periods"""
        return len(self._periods)

    @property
    def all_period_data(self) -> list[PeriodData]:
        """The data of each period in chronological order"""
        return [self._period_data[period] for period in self._periods]

    def period_data(self, period: Period) -> PeriodData:
        """The data of a period"""
        try:
            return self._period_data[period]
        except KeyError as e:
            raise NetworkStructureError(f"{period} is not part of problem {self.name}") from e

    def previous_period(self, period: Period) -> Optional[Period]:
        """The period before the given one, or None for the first period"""
        position = self._periods.index(period)
        return self._periods[position - 1] if position > 0 else None

    def next_period(self, period: Period) -> Optional[Period]:
        """The period after the given one, or None for the last period"""
        position = self._periods.index(period)
        return self._periods[position + 1] if position + 1 < len(self._periods) else None

    def single_period_copy(self, period: Period) -> SwitchingProblem:
        """A problem containing only the given period, without start and target configurations"""
        return SwitchingProblem([self.period_data(period)], f"{self.name} ({period})")

    def create_aggregated_problem(self, aggregation: NetworkAggregation) -> SwitchingProblem:
        """The equivalent problem on the aggregate network.

        Demands are moved to the aggregate consumers by name. The start and target configurations are translated by
        switch name.
        """
        if aggregation.original_network is not self.network:
            raise NetworkStructureError("Cannot aggregate a problem for a different network")
        network = aggregation.aggregate_network
        period_data = [PeriodData(network, data.demands.copy_to(network), data.period) for data in self.all_period_data]

        def translate(configuration: Optional[NetworkConfiguration]) -> Optional[NetworkConfiguration]:
            if configuration is None:
                return None
            return NetworkConfiguration(network, aggregation.aggregate_settings(configuration.switch_settings))

        return SwitchingProblem(
            period_data,
            f"Aggregate of {self.name}",
            translate(self.start_configuration),
            translate(self.target_configuration),
        )

    def __str__(self) -> str:
        """Summarize the problem"""
        return f"Switching problem {self.name}: {self.period_count} periods on {self.network.name}"
