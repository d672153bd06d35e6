# Copyright 2026 50Hertz Transmission GmbH and Elia Transmission Belgium SA/NV
#
# This Source Code Form is subject to the terms of the Mozilla Public License, v. 2.0.
# If a copy of the MPL was not distributed with this file,
# you can obtain one at https://mozilla.org/MPL/2.0/.
# Mozilla Public License, version 2.0

import json
from pathlib import Path

import pandas as pd
from fsspec.implementations.local import LocalFileSystem
from toop_engine_switch_optimizer.builders.network_builder import NetworkBuilder
from toop_engine_switch_optimizer.interfaces.messages.optimizer_params import AlgorithmType, OptimizerParameters
from toop_engine_switch_optimizer.main import CLIArgs, load_problem, main


def _write_network(builder: NetworkBuilder, path: Path) -> None:
    path.write_text(NetworkBuilder.write(builder.network, builder.configuration, builder.demands))


def test_load_problem(feeder_builder: NetworkBuilder, tmp_path: Path) -> None:
    network_file = tmp_path / "feeder.txt"
    _write_network(feeder_builder, network_file)
    args = CLIArgs(network_file=str(network_file), periods=3, period_minutes=15)

    problem = load_problem(args, LocalFileSystem())

    assert problem.name == "feeder"
    assert problem.period_count == 3
    assert all(period.length_seconds == 900 for period in problem.periods)
    assert problem.start_configuration.is_open(problem.network.get_line("s1"))


def test_main(feeder_builder: NetworkBuilder, tmp_path: Path) -> None:
    network_file = tmp_path / "feeder.txt"
    _write_network(feeder_builder, network_file)
    output_file = tmp_path / "results" / "feeder.json"
    flows_dir = tmp_path / "flows"
    args = CLIArgs(
        network_file=str(network_file),
        optimizer=OptimizerParameters(algorithm=AlgorithmType.DESCENT),
        periods=2,
        output_file=str(output_file),
        flows_dir=str(flows_dir),
    )

    summary = main(args, LocalFileSystem())

    assert output_file.exists()
    with open(output_file) as f:
        written = json.load(f)
    assert written["is_feasible"]
    assert written["switches"] == summary["switches"]
    assert set(written["switches"]) == {"0", "1"}
    assert written["args"]["network_file"] == str(network_file)

    assert sorted(path.name for path in flows_dir.iterdir()) == [
        "buses_0.csv",
        "buses_1.csv",
        "lines_0.csv",
        "lines_1.csv",
    ]
    lines = pd.read_csv(flows_dir / "lines_0.csv", index_col=0)
    assert set(lines.index) == {line.name for line in feeder_builder.network.lines}
