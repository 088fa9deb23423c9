"""Diagnostic plots for MPC controller runs.

This module loads the telemetry, state and control logs of a run directory
and generates plots of the driven trajectory, the tracking errors, the
commanded actuation and the solver performance.
"""

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import numpy as np

from .plot_styles import (
    PLOT_BLUE,
    PLOT_CMAP,
    PLOT_ORANGE,
    PLOT_TAUPE,
    PLOT_YELLOW_ORANGE,
    add_legend,
    load_csv_to_dict,
    save_figure,
    style_axis,
)

RUN_FILES = {
    "telemetry": "telemetry.csv",
    "state": "state.csv",
    "control": "control.csv",
}


def load_run_data(run_dir: Path) -> Dict[str, Dict[str, np.ndarray]]:
    """Load all CSV logs from a run directory.

    Args:
        run_dir: Path to the run directory containing CSV files

    Returns:
        Dictionary containing data dicts for 'telemetry', 'state', 'control'

    Raises:
        FileNotFoundError: If the directory holds none of the run logs.
    """
    data = {}
    for name, filename in RUN_FILES.items():
        path = run_dir / filename
        if path.exists():
            data[name] = load_csv_to_dict(path)
        else:
            logging.warning(f"{path} not found. {name.capitalize()} plots will be missing.")

    if not data:
        raise FileNotFoundError(f"No run logs found in {run_dir}")
    return data


def _elapsed(table: Dict[str, np.ndarray]) -> np.ndarray:
    t = table["timestamp"]
    return t - t[0] if t.size else t


def plot_trajectory(data: Dict[str, Dict[str, np.ndarray]], save_path: Optional[Path] = None) -> plt.Figure:
    """Plot the measured and latency-compensated positions in the global frame."""
    fig, ax = plt.subplots(figsize=(10, 8))

    if "telemetry" in data:
        tel = data["telemetry"]
        scatter = ax.scatter(
            tel["x"], tel["y"], c=np.arange(tel["x"].size), cmap=PLOT_CMAP, s=10, label="Measured"
        )
        fig.colorbar(scatter, ax=ax, label="Frame index (time →)")
    if "state" in data:
        state = data["state"]
        ax.plot(state["x"], state["y"], "-", color=PLOT_TAUPE, linewidth=1, alpha=0.7,
                label="Latency-compensated")

    style_axis(ax, title="Driven Trajectory", xlabel="X (m)", ylabel="Y (m)")
    add_legend(ax)
    ax.axis("equal")

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_tracking_errors(data: Dict[str, Dict[str, np.ndarray]], save_path: Optional[Path] = None) -> Optional[plt.Figure]:
    """Plot cross-track and heading error over time."""
    if "state" not in data:
        logging.warning("Missing state data. Cannot plot tracking errors.")
        return None

    state = data["state"]
    t = _elapsed(state)
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)

    ax1.plot(t, state["cte"], color=PLOT_ORANGE, linewidth=1.5, label="CTE")
    ax1.axhline(y=0, color="k", linestyle="--", alpha=0.3)
    rms = float(np.sqrt(np.nanmean(state["cte"] ** 2))) if t.size else float("nan")
    style_axis(ax1, title=f"Cross-Track Error (RMS {rms:.3f} m)", ylabel="CTE (m)")
    add_legend(ax1)

    ax2.plot(t, np.degrees(state["epsi"]), color=PLOT_BLUE, linewidth=1.5, label="Heading error")
    ax2.axhline(y=0, color="k", linestyle="--", alpha=0.3)
    style_axis(ax2, title="Heading Error", xlabel="Elapsed Time (s)", ylabel="epsi (degrees)")
    add_legend(ax2)

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_actuation(data: Dict[str, Dict[str, np.ndarray]], save_path: Optional[Path] = None) -> Optional[plt.Figure]:
    """Plot steering and throttle commands, marking fallback cycles."""
    if "control" not in data:
        logging.warning("Missing control data. Cannot plot actuation.")
        return None

    control = data["control"]
    t = _elapsed(control)
    fallback = control["fallback"] > 0.5
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)

    for ax, column, color, label in (
        (ax1, "steering", PLOT_ORANGE, "Steering"),
        (ax2, "throttle", PLOT_BLUE, "Throttle"),
    ):
        ax.plot(t, control[column], color=color, linewidth=1.5, label=label)
        if fallback.any():
            ax.scatter(t[fallback], control[column][fallback], color=PLOT_YELLOW_ORANGE,
                       marker="x", s=40, zorder=3, label="Fallback")
        for limit in (-1.0, 1.0):
            ax.axhline(y=limit, color=PLOT_TAUPE, linestyle=":", alpha=0.6)
        ax.set_ylim(-1.1, 1.1)
        add_legend(ax)

    style_axis(ax1, title="Actuation Commands", ylabel="Steering (normalized)")
    style_axis(ax2, xlabel="Elapsed Time (s)", ylabel="Throttle (normalized)")

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_solver_performance(data: Dict[str, Dict[str, np.ndarray]], save_path: Optional[Path] = None) -> Optional[plt.Figure]:
    """Plot solve time and iteration count per cycle."""
    if "control" not in data:
        logging.warning("Missing control data. Cannot plot solver performance.")
        return None

    control = data["control"]
    t = _elapsed(control)
    solve_ms = control["solve_time"] * 1000.0
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)

    ax1.plot(t, solve_ms, color=PLOT_ORANGE, linewidth=1.5, label="Solve time")
    if np.isfinite(solve_ms).any():
        mean_ms = float(np.nanmean(solve_ms))
        ax1.axhline(y=mean_ms, color=PLOT_BLUE, linestyle="--", linewidth=2,
                    label=f"Mean: {mean_ms:.1f} ms")
    style_axis(ax1, title="Solver Performance", ylabel="Solve time (ms)")
    add_legend(ax1)

    ax2.plot(t, control["iterations"], color=PLOT_BLUE, linewidth=1.5, label="Iterations")
    style_axis(ax2, xlabel="Elapsed Time (s)", ylabel="Iterations")
    add_legend(ax2)

    if save_path:
        save_figure(fig, save_path)
    return fig


PLOTS = (
    ("01_trajectory.png", plot_trajectory),
    ("02_tracking_errors.png", plot_tracking_errors),
    ("03_actuation.png", plot_actuation),
    ("04_solver_performance.png", plot_solver_performance),
)


def generate_diagnostic_report(run_dir: Path, output_dir: Optional[Path] = None, show: bool = False) -> list:
    """Generate the complete diagnostic report.

    Args:
        run_dir: Path to the run directory containing CSV files
        output_dir: Directory to save plots (default: run_dir). Pass None
            together with show=True to display without saving.
        show: Display the figures interactively.

    Returns:
        Paths of the saved plots.
    """
    data = load_run_data(Path(run_dir))
    if output_dir is None and not show:
        output_dir = run_dir

    saved = []
    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

    for filename, plot in PLOTS:
        save_path = output_dir / filename if output_dir is not None else None
        fig = plot(data, save_path)
        if fig is None:
            continue
        if save_path is not None:
            saved.append(save_path)
        if not show:
            plt.close(fig)

    if show:
        plt.show()
    return saved


def main():
    """Command-line interface for diagnostic plots."""
    parser = argparse.ArgumentParser(
        description="Generate diagnostic plots for an MPC controller run"
    )
    parser.add_argument(
        "run_dir",
        type=str,
        help="Path to run directory containing CSV files (e.g., results/run_20251115_134727)"
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory for plots (default: same as run_dir)"
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Display plots interactively after saving"
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    run_dir = Path(args.run_dir)
    if not run_dir.exists():
        logging.error(f"Error: Run directory not found: {run_dir}")
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else run_dir
    for path in generate_diagnostic_report(run_dir, output_dir, show=args.show):
        logging.info(f"  {path.name}")
    return 0


if __name__ == "__main__":
    exit(main())
