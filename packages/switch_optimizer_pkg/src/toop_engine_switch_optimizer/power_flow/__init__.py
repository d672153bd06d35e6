# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Radial power flow: the iterated DistFlow solver, flow results, flow deltas and disaggregation."""

from .disaggregation import disaggregate_flow
from .flow import BusFlowSchema, FlowStatus, LineFlowSchema, PowerFlow, ProviderFlowStatus
from .flow_provider import FlowProvider
from .iterated_distflow import IteratedDistFlow
from .power_flow_delta import BusFlowDelta, LineFlowDelta, PowerFlowDelta

__all__ = [
    "BusFlowDelta",
    "BusFlowSchema",
    "FlowProvider",
    "FlowStatus",
    "IteratedDistFlow",
    "LineFlowDelta",
    "LineFlowSchema",
    "PowerFlow",
    "PowerFlowDelta",
    "ProviderFlowStatus",
    "disaggregate_flow",
]
