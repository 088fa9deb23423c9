"""Data collection and CSV logging for MPC control cycles.

This module provides CSV data logging for:
- Telemetry (measured pose, speed, actuation feedback, waypoint count)
- State (latency-compensated pose and speed, tracking errors, curve coefficients)
- Control (commands, solver status, cost, solve time, fallback flag)
"""

import csv
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO

from .config import POLY_ORDER, RESULTS_DIR, TERM_BLUE, TERM_RESET

TELEMETRY_COLUMNS = [
    "timestamp",
    "x",
    "y",
    "psi",
    "speed",
    "steering_feedback",
    "throttle_feedback",
    "n_waypoints",
]

CONTROL_COLUMNS = [
    "timestamp",
    "steering",
    "throttle",
    "steering_rad",
    "acceleration",
    "converged",
    "status",
    "iterations",
    "cost",
    "solve_time",
    "fallback",
]


def state_columns(poly_order: int = POLY_ORDER) -> list:
    """Column names of state.csv for a curve of the given degree."""
    return ["timestamp", "x", "y", "psi", "speed", "cte", "epsi"] + [
        f"c{i}" for i in range(poly_order + 1)
    ]


class DataCollector:
    """Manages CSV file creation and logging for controller runs.

    This class handles all data logging responsibilities:
    - Creates timestamped output directories
    - Initializes CSV files with headers
    - Writes telemetry, state, and control rows every cycle
    - Ensures proper cleanup on shutdown

    Attributes:
        run_dir: Directory path for this run's output files.
        telemetry_csv_file: File handle for telemetry CSV.
        state_csv_file: File handle for compensated state CSV.
        control_csv_file: File handle for control CSV.
    """

    def __init__(
        self, output_dir: str = ".", run_dir: Optional[str] = None, poly_order: int = POLY_ORDER
    ) -> None:
        """Initialize the data collector.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates timestamped
                directory under output_dir/results.
            poly_order: Degree of the reference curve (sets the coefficient columns).

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.poly_order = poly_order

        self.telemetry_csv_file: Optional[TextIO] = None
        self.telemetry_csv_writer: Any = None
        self.state_csv_file: Optional[TextIO] = None
        self.state_csv_writer: Any = None
        self.control_csv_file: Optional[TextIO] = None
        self.control_csv_writer: Any = None

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        else:
            # Create timestamped directory: results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / RESULTS_DIR / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.telemetry_output_path: Path = self.run_dir / "telemetry.csv"
        self.state_output_path: Path = self.run_dir / "state.csv"
        self.control_output_path: Path = self.run_dir / "control.csv"

    def _open(self, path: Path, columns: Sequence[str]) -> Any:
        handle = open(path, "w", newline="")
        writer = csv.writer(handle)
        writer.writerow(columns)
        handle.flush()
        return handle, writer

    def setup(self) -> None:
        """Initialize CSV files with headers.

        Creates and opens all CSV files with appropriate column headers.
        Must be called before writing data.
        """
        self.telemetry_csv_file, self.telemetry_csv_writer = self._open(
            self.telemetry_output_path, TELEMETRY_COLUMNS
        )
        self.state_csv_file, self.state_csv_writer = self._open(
            self.state_output_path, state_columns(self.poly_order)
        )
        self.control_csv_file, self.control_csv_writer = self._open(
            self.control_output_path, CONTROL_COLUMNS
        )

        print(
            f"{TERM_BLUE}✓ Initialized data collection to {RESULTS_DIR}/{self.run_dir.name}/{TERM_RESET}"
        )

    def log_telemetry(self, timestamp: float, telemetry: Any) -> None:
        """Log one inbound telemetry record to CSV.

        Args:
            timestamp: Wall-clock time of the cycle (seconds).
            telemetry: Telemetry record as received.
        """
        self.telemetry_csv_writer.writerow(
            [
                timestamp,
                telemetry.x,
                telemetry.y,
                telemetry.psi,
                telemetry.speed,
                telemetry.steering_angle,
                telemetry.throttle,
                len(telemetry.ptsx),
            ]
        )
        if self.telemetry_csv_file:
            self.telemetry_csv_file.flush()

    def log_state(
        self,
        timestamp: float,
        pose: Any,
        speed: float,
        cte: float,
        epsi: float,
        coefficients: Sequence[float],
    ) -> None:
        """Log the state the optimizer started from.

        Args:
            timestamp: Wall-clock time of the cycle (seconds).
            pose: Latency-compensated global pose.
            speed: Latency-compensated speed.
            cte: Cross-track error.
            epsi: Heading error (radians).
            coefficients: Reference curve coefficients.
        """
        self.state_csv_writer.writerow(
            [timestamp, pose.x, pose.y, pose.heading, speed, cte, epsi, *coefficients]
        )
        if self.state_csv_file:
            self.state_csv_file.flush()

    def log_control(self, timestamp: float, reply: Optional[Any], result: Optional[Any]) -> None:
        """Log the outcome of a cycle.

        Args:
            timestamp: Wall-clock time of the cycle (seconds).
            reply: ControlReply sent, or None if no actuation was emitted.
            result: SolveResult of a converged solve, or None after a failure.
        """
        if result is not None:
            status = result.status
            solver_columns = [
                result.steering,
                result.acceleration,
                status.converged,
                status.code,
                status.iterations,
                status.cost,
                status.solve_time,
            ]
        else:
            solver_columns = ["", "", False, "failed", "", "", ""]

        self.control_csv_writer.writerow(
            [
                timestamp,
                reply.steering_angle if reply is not None else "",
                reply.throttle if reply is not None else "",
                *solver_columns,
                reply.fallback if reply is not None else True,
            ]
        )
        if self.control_csv_file:
            self.control_csv_file.flush()

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        for handle in (self.telemetry_csv_file, self.state_csv_file, self.control_csv_file):
            if handle:
                handle.close()

        print(f"{TERM_BLUE}✓ Saved run data to {RESULTS_DIR}/{self.run_dir.name}/{TERM_RESET}")

    def __enter__(self) -> "DataCollector":
        """Context manager entry point.

        Returns:
            Self reference for use in with statement.
        """
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit point - ensures cleanup is called.

        Args:
            exc_type: Exception type if an exception occurred.
            exc_val: Exception value if an exception occurred.
            exc_tb: Exception traceback if an exception occurred.
        """
        self.cleanup()
