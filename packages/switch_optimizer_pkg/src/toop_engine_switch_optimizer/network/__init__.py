# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""The network model: elements, switch settings, radial configurations, demands and aggregation."""

from .aggregation import DirectedMergedLine, MergedLine, MergeType, NetworkAggregation
from .connectivity import ConnectivityType, analyse_connectivity
from .elements import (
    Bus,
    BusType,
    Coordinate,
    DirectedLine,
    Line,
    LineDirection,
    Transformer,
    TransformerMode,
    TransformerModeData,
    TransformerOperation,
)
from .network_configuration import NetworkConfiguration
from .power_demands import PowerDemands
from .power_network import PowerNetwork
from .switch_settings import SwitchSettings

__all__ = [
    "Bus",
    "BusType",
    "ConnectivityType",
    "Coordinate",
    "DirectedLine",
    "DirectedMergedLine",
    "Line",
    "LineDirection",
    "MergeType",
    "MergedLine",
    "NetworkAggregation",
    "NetworkConfiguration",
    "PowerDemands",
    "PowerNetwork",
    "SwitchSettings",
    "Transformer",
    "TransformerMode",
    "TransformerModeData",
    "TransformerOperation",
    "analyse_connectivity",
]
