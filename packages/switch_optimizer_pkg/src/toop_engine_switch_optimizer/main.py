# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

"""Launcher for the switch configuration optimizer.

example args:

--network_file grids/feeder.txt # A network in the text format of the network builder \
--periods 24 # Optimize 24 consecutive periods with the demands of the file \
--optimizer.algorithm descent \
--optimizer.time_limit_seconds 60 \
--optimizer.flow.max_iterations 200 \
--output_file results/feeder.json \
--flows_dir results/flows # Write the bus and line tables of each period as csv files \
"""

import json
import os
import sys
from datetime import timedelta
from typing import Optional

import logbook
import tyro
from fsspec import AbstractFileSystem
from fsspec.implementations.local import LocalFileSystem
from pydantic import BaseModel, Field, PositiveFloat, PositiveInt

from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.encoding.period import Period
from toop_engine_switch_optimizer.encoding.problem import SwitchingProblem
from toop_engine_switch_optimizer.encoding.solution import SwitchingSolution
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import OptimizerParameters
from toop_engine_switch_optimizer.power_flow.flow_provider import FlowProvider
from toop_engine_switch_optimizer.solvers.config_optimizer import ConfigOptimizer

logger = logbook.Logger(__name__)


class CLIArgs(BaseModel):
    """The arguments for a CLI invocation"""

    network_file: str
    """The network, its switch states and the consumer demands, in the text format of the network builder"""

    optimizer: OptimizerParameters = Field(default_factory=OptimizerParameters)
    """The configuration of the optimizer"""

    periods: PositiveInt = 1
    """The number of consecutive periods to optimize, all with the demands of the network file"""

    period_minutes: PositiveFloat = 60.0
    """The length of each period in minutes"""

    output_file: str = "switch_settings.json"
    """The json file to write the switch settings and the objective values to"""

    flows_dir: Optional[str] = None
    """If given, the bus and line tables of each period are written to this directory as csv files"""


def load_problem(args: CLIArgs, file_system: AbstractFileSystem) -> SwitchingProblem:
    """Read the network file and create the problem, with the switch states of the file as start configuration"""
    with file_system.open(args.network_file, "r") as f:
        builder = NetworkBuilder.read(f.read())
    builder.network.name = os.path.splitext(os.path.basename(args.network_file))[0]

    first = builder.period_data.period
    builder.use_period(Period(first.start_time, first.start_time + timedelta(minutes=args.period_minutes), 0))
    return SwitchingProblem(
        builder.repeated_period_data(args.periods),
        builder.network.name,
        start_configuration=builder.configuration,
    )


def write_flows(
    solution: SwitchingSolution, flow_provider: FlowProvider, folder: str, file_system: AbstractFileSystem
) -> None:
    """Write the bus and line tables of each period that has a flow"""
    file_system.makedirs(folder, exist_ok=True)
    for period_solution in solution.single_period_solutions:
        flow = period_solution.flow(flow_provider)
        if flow is None:
            logger.warning(f"No flow in {period_solution.period}, skipping its tables")
            continue
        with file_system.open(os.path.join(folder, f"buses_{period_solution.period.id}.csv"), "w") as f:
            flow.bus_table().to_csv(f)
        with file_system.open(os.path.join(folder, f"lines_{period_solution.period.id}.csv"), "w") as f:
            flow.line_table().to_csv(f)


def main(args: CLIArgs, file_system: AbstractFileSystem) -> dict:
    """Run the optimization for CLI execution.

    Parameters
    ----------
    args : CLIArgs
        The arguments for the optimization
    file_system : AbstractFileSystem
        The file system the network file is read from and the results are written to

    Returns
    -------
    dict
        The summary that was written to the output file
    """
    logger.info(f"Starting with config {args}")
    problem = load_problem(args, file_system)
    logger.info(problem.network.describe())

    flow_provider = FlowProvider(args.optimizer.flow)
    optimizer = ConfigOptimizer(args.optimizer, flow_provider)
    result = optimizer.optimize(problem)

    summary = result.to_dict()
    summary["args"] = args.model_dump(mode="json")
    output_folder = os.path.dirname(args.output_file)
    if output_folder:
        file_system.makedirs(output_folder, exist_ok=True)
    with file_system.open(args.output_file, "w") as f:
        json.dump(summary, f, indent=2)

    if args.flows_dir is not None:
        write_flows(result.solution, flow_provider, args.flows_dir, file_system)

    for reason in result.unsatisfied_constraints:
        logger.warning(reason)
    return summary


if __name__ == "__main__":
    logbook.StreamHandler(sys.stdout, level=logbook.INFO).push_application()
    args = tyro.cli(CLIArgs)
    file_system = LocalFileSystem()
    main(args, file_system)
