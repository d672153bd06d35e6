# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Whether a network admits any radial configuration that can carry flow."""

from __future__ import annotations

from enum import Flag, auto

import logbook

from toop_engine_switch_optimizer.exceptions import RadialityError
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_network import PowerNetwork

logger = logbook.Logger(__name__)


class ConnectivityType(Flag):
    """Problems with the network structure that prevent any radial configuration from carrying flow"""

    OK = 0
    """A radial configuration with valid transformer modes exists"""

    HAS_UNBREAKABLE_CYCLE = auto()
    """Some cycle contains no switchable line"""

    HAS_DISCONNECTED_COMPONENT = auto()
    """Some buses cannot be connected to any provider"""

    HAS_INCONSISTENT_TRANSFORMER_MODES = auto()
    """Some transformer cannot be connected with a valid mode"""


def analyse_connectivity(network: PowerNetwork) -> ConnectivityType:
    """Analyse whether the network admits a radial configuration that can carry flow.

    The analysis starts from the configuration with all switches closed and tries to make it radial with valid
    transformer modes.
    """
    result = ConnectivityType.OK
    if network.components_without_provider():
        result |= ConnectivityType.HAS_DISCONNECTED_COMPONENT

    configuration = NetworkConfiguration.all_closed(network)
    try:
        configuration.make_radial(raise_on_fail=True)
    except RadialityError as error:
        logger.debug(f"Network {network.name} cannot be made radial: {error}")
        if configuration.has_cycles:
            result |= ConnectivityType.HAS_UNBREAKABLE_CYCLE
        if not configuration.is_connected:
            result |= ConnectivityType.HAS_DISCONNECTED_COMPONENT
        return result

    if not configuration.make_transformers_use_valid_modes(raise_on_fail=False):
        result |= ConnectivityType.HAS_INCONSISTENT_TRANSFORMER_MODES
    return result
