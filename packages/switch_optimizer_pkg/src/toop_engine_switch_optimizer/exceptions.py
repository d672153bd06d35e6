# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Exceptions raised by the switch optimizer.

Structural problems with the input are fatal and are raised as soon as they are detected. A flow
computation that does not converge is not an error, it is reported through the flow status instead.
"""


class SwitchOptimizerError(Exception):
    """Base class of all errors raised by the switch optimizer"""

    pass


class NetworkStructureError(SwitchOptimizerError):
    """An error in the structure of the network or its input data, e.g. inconsistent bounds or unknown names"""

    pass


class DuplicateNameError(NetworkStructureError):
    """A bus or line name is used more than once in the same network"""

    pass


class RadialityError(SwitchOptimizerError):
    """A configuration cannot be made radial, or cannot carry radial flow through its transformers"""

    pass


class NotRadialError(SwitchOptimizerError):
    """A computation that requires a radial configuration was given a configuration with cycles"""

    pass


class InvalidMoveError(SwitchOptimizerError):
    """A move does not match the state of the configuration it is applied to"""

    pass


class ConfigurationMismatchError(SwitchOptimizerError):
    """An external switch configuration does not match the switchable lines of the network"""

    pass
