# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The open/closed state of the switchable lines of a network.

Non-switchable lines are always closed and have no entry. Every change increments a version counter, which lets
derived state such as the radial trees of a NetworkConfiguration detect that it is stale.
"""

from __future__ import annotations

from typing import Callable, Mapping, Optional

from toop_engine_switch_optimizer.exceptions import ConfigurationMismatchError, NetworkStructureError
from toop_engine_switch_optimizer.network.elements import Line
from toop_engine_switch_optimizer.network.power_network import PowerNetwork


class SwitchSettings:
    """A mapping from every switchable line of a network to its open state"""

    def __init__(self, network: PowerNetwork, is_open: Optional[Callable[[Line], bool]] = None) -> None:
        self.network = network
        self._open: dict[Line, bool] = {
            line: bool(is_open(line)) if is_open is not None else False for line in network.switchable_lines
        }
        self.version = 0

    @staticmethod
    def all_closed(network: PowerNetwork) -> SwitchSettings:
        """Return settings with every switch closed"""
        return SwitchSettings(network)

    @staticmethod
    def all_open(network: PowerNetwork) -> SwitchSettings:
        """Return settings with every switch open"""
        return SwitchSettings(network, lambda _: True)

    def is_open(self, line: Line) -> bool:
        """Whether the line is open. Non-switchable lines are always closed."""
        return self._open.get(line, False)

    def is_closed(self, line: Line) -> bool:
        """Whether the line is closed"""
        return not self.is_open(line)

    def set_switch(self, line: Line, is_open: bool) -> bool:
        """Set the state of a switch.

        Returns
        -------
        bool
            Whether the state changed
        """
        if line not in self._open:
            raise NetworkStructureError(f"Line {line.name} is not switchable")
        if self._open[line] == is_open:
            return False
        self._open[line] = is_open
        self.version += 1
        return True

    def switch(self, line: Line) -> None:
        """Toggle the state of a switch"""
        self.set_switch(line, not self.is_open(line))

    @property
    def open_switches(self) -> list[Line]:
        """The open switches, in line index order"""
        return [line for line, is_open in self._open.items() if is_open]

    @property
    def closed_switches(self) -> list[Line]:
        """The closed switches, in line index order"""
        return [line for line, is_open in self._open.items() if not is_open]

    def different_switches(self, other: SwitchSettings) -> list[Line]:
        """Return the switches of this network whose state differs in the other settings.

        The other settings may belong to a different network, switches are matched by name.
        """
        if other.network is self.network:
            return [line for line, is_open in self._open.items() if other._open[line] != is_open]
        other_states = other.to_mapping()
        return [line for line, is_open in self._open.items() if other_states.get(line.name, is_open) != is_open]

    def number_of_different_switches(self, other: SwitchSettings) -> int:
        """Return the number of switches whose state differs"""
        return len(self.different_switches(other))

    def copy_from(self, other: SwitchSettings, missing_value: bool = False) -> None:
        """Take over the state of the switches from other settings, matching switches by name.

        Switches that do not exist in the other settings are set to missing_value (open if true).
        """
        other_states = other.to_mapping()
        for line in self._open:
            self.set_switch(line, other_states.get(line.name, missing_value))

    def clone(self) -> SwitchSettings:
        """Return an independent copy with the same states"""
        copy = SwitchSettings(self.network)
        copy._open = dict(self._open)
        return copy

    def to_mapping(self) -> dict[str, bool]:
        """Return the open state of each switch by line name"""
        return {line.name: is_open for line, is_open in self._open.items()}

    @staticmethod
    def from_mapping(network: PowerNetwork, mapping: Mapping[str, bool]) -> SwitchSettings:
        """Create settings from open states given by line name.

        The mapping must name every switchable line of the network, and only those.
        """
        switchable_names = {line.name for line in network.switchable_lines}
        missing = sorted(switchable_names - set(mapping))
        unknown = sorted(name for name in mapping if not network.has_line(name))
        not_switchable = sorted(name for name in mapping if network.has_line(name) and name not in switchable_names)
        if missing or unknown or not_switchable:
            problems = []
            if missing:
                problems.append(f"missing switches: {', '.join(missing)}")
            if unknown:
                problems.append(f"unknown lines: {', '.join(unknown)}")
            if not_switchable:
                problems.append(f"lines that are not switchable: {', '.join(not_switchable)}")
            raise ConfigurationMismatchError(
                f"Switch configuration does not match network {network.name}: {'; '.join(problems)}"
            )
        return SwitchSettings(network, lambda line: bool(mapping[line.name]))

    def __eq__(self, other: object) -> bool:
        """Compare the states of the switches by name"""
        if not isinstance(other, SwitchSettings):
            return False
        return self.to_mapping() == other.to_mapping()

    __hash__ = None

    def __str__(self) -> str:
        """List the open switches"""
        return f"Open switches: {', '.join(line.name for line in self.open_switches) or 'none'}"
