# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Build networks, configurations and problems from a compact text description.

Each description is either a bus or a chain of lines:

    Gen[generatorVoltage=1000]
    Gen -- l1[r=0.5] -- Mid -- s1[open] -- Cons[consumption=(100,10)]
    Gen -- l1 -o- l2 -- Cons

Buses are created when first mentioned and may be given properties in brackets, separated by ';'. A line is
switchable if it is given the property 'open' or 'closed'. ' -o- ' inserts an anonymous connection bus between two
lines. A transformer is described like a bus with the property 'transformer'. Inside a chain, its terminals and
connection lines are taken from its neighbours:

    A -- l1 -- T[transformer; voltages=(1000,100); operation=fixed] -- l2 -- B

Bus properties: consumption, consumer, vMinV, vMaxV, generatorVoltage, generator (or provider),
generationCapacity, generationLowerBound.
Line properties: r, z=(re,im), open, closed, breaker, iMax, vMax, switchingCost.
Transformer properties: transformer, ends, voltages, operation (fixed or auto), factor, upstream, lines.
"""

from __future__ import annotations

import math
import re
from typing import Iterable, Optional, Sequence

from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.encoding.problem import PeriodData, SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.exceptions import NetworkStructureError
from toop_engine_switch_optimizer.network.elements import Bus, Line, Transformer, TransformerOperation
from toop_engine_switch_optimizer.network.network_configuration import NetworkConfiguration
from toop_engine_switch_optimizer.network.power_demands import PowerDemands
from toop_engine_switch_optimizer.network.power_network import PowerNetwork
from toop_engine_switch_optimizer.network.switch_settings import SwitchSettings
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider

LINE_SEPARATOR = " -- "
ANONYMOUS_NODE_SEPARATOR = " -o- "
DEFAULT_I_MAX = 100.0
DEFAULT_GENERATION_CAPACITY = complex(1e20, 1e20)

_TRANSFORMER_PROPERTY = re.compile(r"[\[;]\s*transformer\s*[\];]", re.IGNORECASE)
_ENDS_PROPERTY = re.compile(r"[\[;]\s*ends\s*=", re.IGNORECASE)

Properties = dict[str, Optional[str]]


class NetworkBuilder:
    """Builds a network, a configuration and demands from text descriptions"""

    def __init__(self, flow_provider: Optional[FlowProvider] = None, name: str = "") -> None:
        self.flow_provider = flow_provider if flow_provider is not None else FlowProvider()
        self.network = PowerNetwork(name)
        self.default_impedance: complex = 1 + 0j
        self.default_generator_voltage = 1.0
        self.default_consumer_demand: complex = 1 + 0j
        self._period = Period.default()
        self._demands: dict[str, complex] = {}
        self._line_is_open: dict[Line, bool] = {}
        self._anonymous_node_counter = 1
        self._power_demands: Optional[PowerDemands] = None
        self._period_data: Optional[PeriodData] = None

    @staticmethod
    def create(*descriptions: str) -> NetworkBuilder:
        """Create a builder and add each description"""
        builder = NetworkBuilder()
        for description in descriptions:
            builder.add(description)
        return builder

    # ------------------------------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------------------------------

    @property
    def configuration(self) -> NetworkConfiguration:
        """A new configuration with the switch states given in the descriptions"""
        return NetworkConfiguration(self.network, SwitchSettings(self.network, lambda line: self._line_is_open[line]))

    @property
    def demands(self) -> PowerDemands:
        """The demands given in the descriptions"""
        if self._power_demands is None:
            self._power_demands = PowerDemands(self.network, self._demands)
        return self._power_demands

    @property
    def period_data(self) -> PeriodData:
        """The demands for the builder's period"""
        if self._period_data is None:
            self._period_data = PeriodData(self.network, self.demands, self._period)
        return self._period_data

    def use_period(self, period: Period) -> None:
        """Use another period than the default one"""
        self._period = period
        self._period_data = None

    def repeated_period_data(self, period_count: int) -> list[PeriodData]:
        """The builder's demands for a number of consecutive periods of the same length"""
        result = []
        data = self.period_data
        for _ in range(period_count):
            result.append(data)
            data = PeriodData(self.network, data.demands, Period.following(data.period, data.period.length))
        return result

    def problem(self, period_data: Sequence[PeriodData], name: str = "") -> SwitchingProblem:
        """A problem for the given periods"""
        return SwitchingProblem(period_data, name or self.network.name)

    @property
    def single_period_problem(self) -> SwitchingProblem:
        """A problem with the builder's period only"""
        return self.problem([self.period_data])

    @property
    def one_period_problem(self) -> SwitchingProblem:
        """A problem with the builder's period, and the builder's configuration as start configuration"""
        return SwitchingProblem([self.period_data], self.network.name, start_configuration=self.configuration)

    def solution(self, problem: SwitchingProblem) -> SwitchingSolution:
        """A solution of the problem that uses the builder's configuration in every period"""
        return SwitchingSolution(
            problem, {period: self.configuration.switch_settings for period in problem.periods}
        )

    @property
    def single_period_solution(self) -> SwitchingSolution:
        """A solution of the single period problem with the builder's configuration"""
        return self.solution(self.single_period_problem)

    def bus(self, name: str) -> Bus:
        """The bus with the given name"""
        return self.network.get_bus(name)

    def line(self, name: str) -> Line:
        """The line with the given name"""
        return self.network.get_line(name)

    def demand(self, consumer: Bus) -> complex:
        """The demand given for a consumer"""
        return self._demands[consumer.name]

    # ------------------------------------------------------------------------------------------
    # Adding elements
    # ------------------------------------------------------------------------------------------

    def add(self, description: str) -> None:
        """Add a bus or a chain of lines"""
        if LINE_SEPARATOR in description:
            self.add_lines(description)
        else:
            self.add_bus(description)

    def add_bus(self, description: str) -> Bus:
        """Add a bus, or return an existing bus if only its name is given"""
        name, properties = _parse(description)
        if "transformer" in properties:
            return self._add_transformer(name, properties).bus

        if self.network.has_bus(name):
            if properties:
                raise NetworkStructureError(f"Cannot add properties to existing bus {name}")
            return self.network.get_bus(name)

        kind = "connection"
        consumption = 0j
        generator_voltage = 0.0
        generation_capacity = DEFAULT_GENERATION_CAPACITY
        generation_lower_bound = 0j
        v_min = 0.0
        v_max = math.inf

        for key, value in properties.items():
            if key == "consumption":
                kind = "consumer"
                consumption = _parse_complex(value)
            elif key == "consumer":
                kind = "consumer"
                consumption = self.default_consumer_demand
            elif key == "vMinV":
                v_min = _parse_float(value)
            elif key == "vMaxV":
                v_max = _parse_float(value)
            elif key == "generatorVoltage":
                kind = "provider"
                generator_voltage = _parse_float(value)
            elif key in ("generator", "provider"):
                kind = "provider"
                generator_voltage = self.default_generator_voltage
            elif key == "generationCapacity":
                generation_capacity = _parse_complex(value)
            elif key == "generationLowerBound":
                generation_lower_bound = _parse_complex(value)
            else:
                raise NetworkStructureError(f"Unknown bus property {key}")

        self._invalidate()
        if kind == "consumer":
            bus = self.network.add_consumer(v_min, v_max, name)
            self._demands[name] = consumption
            return bus
        if kind == "provider":
            return self.network.add_provider(generator_voltage, generation_capacity, generation_lower_bound, name)
        return self.network.add_transition(v_min, v_max, name)

    def add_transformer(self, description: str) -> Transformer:
        """Add a transformer described like a bus"""
        name, properties = _parse(description)
        return self._add_transformer(name, properties)

    def add_line(self, description: str) -> Optional[Line]:
        """Add a single line 'from -- line -- to'"""
        parts = description.split(LINE_SEPARATOR)
        if len(parts) != 3:
            raise NetworkStructureError(f"A line is described as 'from -- line -- to', got '{description}'")
        return self._add_line(*(part.strip() for part in parts))

    def add_lines(self, description: str) -> None:
        """Add a chain of lines 'bus -- line -- bus -- ... -- bus'"""
        items = [
            item.strip()
            for segment in description.split(LINE_SEPARATOR)
            for item in self._insert_anonymous_nodes(segment)
        ]
        if len(items) % 2 == 0:
            raise NetworkStructureError("Buses and lines must alternate: bus -- line -- bus -- ... -- bus")

        # Buses first, then transformers with their connection lines, then the other lines
        for item in items[::2]:
            if not _TRANSFORMER_PROPERTY.search(item):
                self.add_bus(item)

        for position in range(0, len(items), 2):
            item = items[position]
            if not _TRANSFORMER_PROPERTY.search(item):
                continue
            if not _ENDS_PROPERTY.search(item):
                if position == 0 or position + 2 >= len(items):
                    raise NetworkStructureError("Transformer ends can only be inferred inside a chain")
                previous_bus, previous_line = _name_of(items[position - 2]), _name_of(items[position - 1])
                next_line, next_bus = _name_of(items[position + 1]), _name_of(items[position + 2])
                closing = item.index("]")
                item = (
                    f"{item[:closing]};ends=({previous_bus},{next_bus});lines=({previous_line},{next_line})"
                    f"{item[closing:]}"
                )
            self.add_transformer(item)

        for position in range(0, len(items) - 2, 2):
            self._add_line(_name_of(items[position]), items[position + 1], _name_of(items[position + 2]))

    # ------------------------------------------------------------------------------------------
    # Text export and import
    # ------------------------------------------------------------------------------------------

    @staticmethod
    def write(network: PowerNetwork, configuration: NetworkConfiguration, demands: PowerDemands) -> str:
        """Describe a network, its switch states and demands in the builder's format"""
        rows = []
        for bus in network.buses:
            if bus.is_provider:
                properties = [
                    f"generatorVoltage={_format(bus.generator_voltage)}",
                    f"generationCapacity={_format(bus.generation_capacity)}",
                ]
                if bus.generation_lower_bound != 0:
                    properties.append(f"generationLowerBound={_format(bus.generation_lower_bound)}")
            elif bus.is_consumer:
                properties = [f"consumption={_format(demands.power_demand(bus))}"]
            elif bus.is_connection:
                properties = []
            else:
                continue
            if not bus.is_provider:
                if bus.v_min != 0:
                    properties.append(f"vMinV={_format(bus.v_min)}")
                if not math.isinf(bus.v_max):
                    properties.append(f"vMaxV={_format(bus.v_max)}")
            rows.append(f"{bus.name}[{'; '.join(properties)}]" if properties else bus.name)

        for transformer in network.transformers:
            rows.append(_describe_transformer(transformer))

        for line in network.lines:
            if line.is_transformer_connection:
                continue
            properties = [f"z={_format(line.impedance)}"]
            if line.i_max != DEFAULT_I_MAX:
                properties.append(f"iMax={_format(line.i_max)}")
            if not math.isinf(line.v_max):
                properties.append(f"vMax={_format(line.v_max)}")
            if line.switchable:
                properties.append("open" if configuration.is_open(line) else "closed")
                if line.switching_cost:
                    properties.append(f"switchingCost={_format(line.switching_cost)}")
            if line.is_breaker:
                properties.append("breaker")
            rows.append(
                f"{line.node1.name}{LINE_SEPARATOR}{_sanitize(line.name)}[{'; '.join(properties)}]"
                f"{LINE_SEPARATOR}{line.node2.name}"
            )
        return "\n".join(rows) + "\n"

    @staticmethod
    def read(text: str | Iterable[str]) -> NetworkBuilder:
        """Create a builder from descriptions, one per line. Empty lines and lines starting with '#' are skipped."""
        rows = text.splitlines() if isinstance(text, str) else text
        builder = NetworkBuilder()
        for row in rows:
            row = row.strip()
            if row and not row.startswith("#"):
                builder.add(row)
        return builder

    # ------------------------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------------------------

    def _invalidate(self) -> None:
        self._power_demands = None
        self._period_data = None

    def _insert_anonymous_nodes(self, segment: str) -> list[str]:
        lines = segment.split(ANONYMOUS_NODE_SEPARATOR)
        items = [lines[0]]
        for line in lines[1:]:
            items.append(f"_anon_{self._anonymous_node_counter}")
            self._anonymous_node_counter += 1
            items.append(line)
        return items

    def _add_line(self, from_description: str, line_description: str, to_description: str) -> Optional[Line]:
        from_bus = self.add_bus(from_description)
        to_bus = self.add_bus(to_description)
        name, properties = _parse(line_description)

        # Connection lines are added with their transformer
        if from_bus.is_transformer or to_bus.is_transformer:
            if properties:
                raise NetworkStructureError("Cannot give properties to a transformer connection line")
            return None

        if "transformer" in properties:
            self._add_transformer(name, properties, terminals=[from_bus.name, to_bus.name])
            return None

        impedance = self.default_impedance
        is_open: Optional[bool] = None
        is_breaker = False
        i_max = DEFAULT_I_MAX
        v_max = math.inf
        switching_cost = 0.0

        for key, value in properties.items():
            if key == "r":
                impedance = complex(_parse_float(value), 0)
            elif key == "z":
                impedance = _parse_complex(value)
            elif key == "open":
                is_open = True
            elif key == "closed":
                is_open = False
            elif key == "breaker":
                is_breaker = True
            elif key == "iMax":
                i_max = _parse_float(value)
            elif key == "vMax":
                v_max = _parse_float(value)
            elif key == "switchingCost":
                switching_cost = _parse_float(value)
            else:
                raise NetworkStructureError(f"Unknown line property {key}")

        switchable = is_open is not None
        line = self.network.add_line(
            from_bus.name,
            to_bus.name,
            impedance,
            i_max,
            v_max,
            switchable=switchable,
            switching_cost=switching_cost,
            is_breaker=is_breaker,
            name=name or None,
        )
        if switchable:
            self._line_is_open[line] = is_open
        return line

    def _add_transformer(
        self,
        name: str,
        properties: Properties,
        terminals: Optional[list[str]] = None,
    ) -> Transformer:
        upstream: Optional[list[str]] = None
        line_names: Optional[list[str]] = None
        voltages: list[float] = []
        operation = TransformerOperation.FIXED_RATIO
        power_factor = 1.0

        for key, value in properties.items():
            if key == "transformer":
                continue
            if key == "ends":
                if terminals is not None:
                    raise NetworkStructureError(f"Transformer {name}: the ends are given by the line")
                terminals = _parse_list(value)
            elif key == "upstream":
                upstream = _parse_list(value)
            elif key == "lines":
                line_names = _parse_list(value)
            elif key == "voltages":
                voltages = [_parse_float(voltage) for voltage in _parse_list(value)]
            elif key == "operation":
                if value == "fixed":
                    operation = TransformerOperation.FIXED_RATIO
                elif value == "auto":
                    operation = TransformerOperation.AUTOMATIC
                else:
                    raise NetworkStructureError(f"Unknown transformer operation {value}")
            elif key == "factor":
                power_factor = _parse_float(value)
            else:
                raise NetworkStructureError(f"Unknown transformer property {key}")

        if terminals is None:
            raise NetworkStructureError(f"Transformer {name}: the ends are not given")
        if len(voltages) != len(terminals):
            raise NetworkStructureError(f"Transformer {name}: give one voltage per end")

        for terminal in terminals:
            if not self.network.has_bus(terminal):
                self.add_bus(terminal)
        transformer = self.network.add_transformer(
            list(zip(terminals, voltages)), None, name or None, line_names=line_names
        )
        for input_index, input_name in enumerate(terminals):
            if upstream is not None and input_name not in upstream:
                continue
            for output_index, output_name in enumerate(terminals):
                if output_index != input_index:
                    transformer.add_mode(
                        input_name,
                        output_name,
                        operation,
                        voltages[input_index] / voltages[output_index],
                        power_factor,
                    )
        return transformer


def _parse(description: str) -> tuple[str, Properties]:
    """Split 'name[key=value; flag]' into the name and the properties"""
    description = description.strip()
    if "[" not in description:
        return description, {}
    name, property_string = description.split("[", 1)
    if not property_string.endswith("]"):
        raise NetworkStructureError("Format: name[property1=...; property2; ...]")
    properties: Properties = {}
    for item in property_string[:-1].split(";"):
        if not item.strip():
            continue
        if "=" in item:
            key, value = item.split("=", 1)
            properties[key.strip()] = value.strip()
        else:
            properties[item.strip()] = None
    return name.strip(), properties


def _name_of(item: str) -> str:
    return item.split("[", 1)[0].strip()


def _parse_float(value: Optional[str]) -> float:
    if value is None:
        raise NetworkStructureError("Missing numeric value")
    return float(value)


def _parse_complex(value: Optional[str]) -> complex:
    """Parse '(re,im)' or a real number"""
    if value is None:
        raise NetworkStructureError("Missing complex value")
    value = value.strip()
    if value.startswith("(") and value.endswith(")"):
        real, imag = value[1:-1].split(",")
        return complex(float(real), float(imag))
    return complex(float(value), 0)


def _parse_list(value: Optional[str]) -> list[str]:
    """Parse '(a,b,c)'"""
    value = (value or "").strip()
    if not (value.startswith("(") and value.endswith(")")):
        raise NetworkStructureError(f"Incorrectly formatted list '{value}'")
    return [item.strip() for item in value[1:-1].split(",")]


def _format(value: complex | float) -> str:
    if isinstance(value, complex):
        if value.imag == 0:
            return repr(value.real)
        return f"({value.real!r},{value.imag!r})"
    return repr(float(value))


def _sanitize(name: str) -> str:
    return name.replace(" ", "")


def _describe_transformer(transformer: Transformer) -> str:
    """Describe a transformer whose modes all share one operation and power factor"""
    terminals = transformer.terminals
    voltages = [transformer.expected_voltage(terminal) for terminal in terminals]
    line_names = [transformer.connection_line(terminal).name for terminal in terminals]
    modes = transformer.modes
    properties = [
        "transformer",
        f"ends=({','.join(terminal.name for terminal in terminals)})",
        f"voltages=({','.join(_format(voltage) for voltage in voltages)})",
        f"lines=({','.join(line_names)})",
    ]
    if modes:
        inputs = [terminal.name for terminal in terminals if any(mode.input_bus is terminal for mode in modes)]
        properties.append(f"upstream=({','.join(inputs)})")
        properties.append("operation=" + ("auto" if modes[0].operation == TransformerOperation.AUTOMATIC else "fixed"))
        properties.append(f"factor={_format(modes[0].power_factor)}")
    return f"{transformer.name}[{'; '.join(properties)}]"
