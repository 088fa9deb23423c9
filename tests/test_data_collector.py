import csv

import pytest

from mpc_control.component_modes import ComponentMode
from mpc_control.config import ControllerConfig
from mpc_control.controller import MPCController, Telemetry
from mpc_control.data_collector import (
    CONTROL_COLUMNS,
    TELEMETRY_COLUMNS,
    DataCollector,
    state_columns,
)
from mpc_control.solvers import SlsqpSolver

from test_controller import FIRST_FRAME, FailingSolver


def _read(path):
    with open(path, newline="") as f:
        return list(csv.reader(f))


def test_state_columns_follow_degree() -> None:
    assert state_columns(3)[-4:] == ["c0", "c1", "c2", "c3"]
    assert state_columns(1)[-2:] == ["c0", "c1"]


def test_timestamped_run_directory(tmp_path) -> None:
    collector = DataCollector(output_dir=str(tmp_path))
    assert collector.run_dir.parent == tmp_path / "results"
    assert collector.run_dir.name.startswith("run_")
    assert collector.run_dir.is_dir()


def test_output_path_must_be_directory(tmp_path) -> None:
    target = tmp_path / "file.txt"
    target.write_text("x")
    with pytest.raises(ValueError):
        DataCollector(output_dir=str(target))


def test_controller_cycles_are_logged(tmp_path) -> None:
    config = ControllerConfig(max_solve_time=10.0, max_iterations=500)
    with DataCollector(run_dir=str(tmp_path / "run")) as collector:
        controller = MPCController(config, SlsqpSolver(), ComponentMode(), collector)
        controller.process(Telemetry.from_dict(FIRST_FRAME))
        controller.process(Telemetry.from_dict(FIRST_FRAME))

    telemetry = _read(collector.telemetry_output_path)
    state = _read(collector.state_output_path)
    control = _read(collector.control_output_path)

    assert telemetry[0] == TELEMETRY_COLUMNS
    assert state[0] == state_columns()
    assert control[0] == CONTROL_COLUMNS
    assert len(telemetry) == len(state) == len(control) == 3
    assert telemetry[1][TELEMETRY_COLUMNS.index("n_waypoints")] == "6"
    row = dict(zip(CONTROL_COLUMNS, control[1]))
    assert row["fallback"] == "False"
    assert -1.0 <= float(row["steering"]) <= 1.0


def test_fallback_cycles_are_logged(tmp_path) -> None:
    config = ControllerConfig()
    with DataCollector(run_dir=str(tmp_path / "run")) as collector:
        controller = MPCController(config, FailingSolver(), ComponentMode(), collector)
        reply = controller.process(Telemetry.from_dict(FIRST_FRAME))

    row = dict(zip(CONTROL_COLUMNS, _read(collector.control_output_path)[1]))
    assert row["fallback"] == "True"
    assert row["status"] == "failed"
    assert float(row["throttle"]) == pytest.approx(reply.throttle)
