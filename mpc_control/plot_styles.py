"""Shared plotting utilities and styles for controller run visualizations.

This module provides:
- Color scheme and colormap
- CSV data loading
- Common plot styling functions

All visualization modules should import from this module to ensure consistency.
"""

import csv
import logging
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.colors import LinearSegmentedColormap

from .config import (
    PLOT_BLUE,
    PLOT_CREAM,
    PLOT_DARK_BLUE,
    PLOT_ORANGE,
    PLOT_TAUPE,
    PLOT_YELLOW_ORANGE,
)

__all__ = [
    "PLOT_ORANGE",
    "PLOT_BLUE",
    "PLOT_CREAM",
    "PLOT_TAUPE",
    "PLOT_YELLOW_ORANGE",
    "PLOT_DARK_BLUE",
    "PLOT_CMAP",
    "load_csv_to_dict",
    "style_axis",
    "add_legend",
    "save_figure",
]

# Orange -> blue, used to color samples by time
PLOT_CMAP = LinearSegmentedColormap.from_list("mpc", [PLOT_ORANGE, PLOT_BLUE])


# ============================================================================
# CSV Data Loading
# ============================================================================


def load_csv_to_dict(csv_path: Path) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Numeric values become floats, "True"/"False" become 1.0/0.0, anything
    else (including empty cells) becomes NaN.

    Args:
        csv_path: Path to CSV file.

    Returns:
        Dictionary mapping column names to numpy arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.

    Example:
        >>> data = load_csv_to_dict(Path("control.csv"))
        >>> data["steering"].shape
        (500,)
    """
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        data: Dict[str, List[float]] = {name: [] for name in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                if value in ("True", "False"):
                    data[key].append(1.0 if value == "True" else 0.0)
                    continue
                try:
                    data[key].append(float(value))
                except (ValueError, TypeError):
                    data[key].append(np.nan)

    return {key: np.array(values) for key, values in data.items()}


# ============================================================================
# Plot Styling Functions
# ============================================================================


def style_axis(
    ax: Axes,
    title: str = "",
    xlabel: str = "",
    ylabel: str = "",
    grid: bool = True,
    dark_mode: bool = False,
) -> None:
    """Apply consistent styling to a matplotlib axis.

    Args:
        ax: Matplotlib axis to style.
        title: Plot title (optional).
        xlabel: X-axis label (optional).
        ylabel: Y-axis label (optional).
        grid: Whether to show grid lines (default: True).
        dark_mode: Whether to use dark mode styling (default: False).
    """
    text_kwargs = {"color": PLOT_CREAM} if dark_mode else {}
    if title:
        ax.set_title(title, fontweight="bold", **text_kwargs)
    if xlabel:
        ax.set_xlabel(xlabel, **text_kwargs)
    if ylabel:
        ax.set_ylabel(ylabel, **text_kwargs)

    if grid:
        ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5)

    if dark_mode:
        ax.set_facecolor(PLOT_DARK_BLUE)
        ax.tick_params(colors=PLOT_CREAM)
        for spine in ax.spines.values():
            spine.set_edgecolor(PLOT_TAUPE)


def add_legend(ax: Axes, loc: str = "best", **kwargs) -> None:
    """Add a legend with the shared frame styling.

    Args:
        ax: Matplotlib axis to add legend to.
        loc: Legend location (default: "best").
        **kwargs: Additional keyword arguments passed to ax.legend().
    """
    legend_kwargs = {"loc": loc, "framealpha": 0.9, "edgecolor": PLOT_TAUPE}
    legend_kwargs.update(kwargs)
    ax.legend(**legend_kwargs)


def save_figure(fig: plt.Figure, filepath: Path, dpi: int = 150) -> None:
    """Save figure with consistent settings.

    Args:
        fig: Matplotlib figure to save.
        filepath: Path where to save the figure.
        dpi: Resolution in dots per inch (default: 150).
    """
    fig.savefig(filepath, dpi=dpi, bbox_inches="tight")
    logging.debug(f"Saved figure to {filepath}")
