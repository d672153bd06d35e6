# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Networks and problems from text descriptions, and random test networks."""

from .network_builder import NetworkBuilder
from .random_network_builder import RandomNetworkBuilder, RandomNetworkParameters, create_random_network

__all__ = [
    "NetworkBuilder",
    "RandomNetworkBuilder",
    "RandomNetworkParameters",
    "create_random_network",
]
