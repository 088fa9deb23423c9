"""Rigid transforms between the global frame and the vehicle frame.

The vehicle frame has its origin at the vehicle position and its x-axis along
the vehicle heading. Waypoints are re-expressed exactly (no resampling).
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .errors import NonFiniteValueError

FloatArray = npt.NDArray[np.float64]


@dataclass(frozen=True)
class Pose:
    """Vehicle position (m) and heading (rad)."""

    x: float
    y: float
    heading: float

    def is_finite(self) -> bool:
        return bool(np.isfinite([self.x, self.y, self.heading]).all())


EGO_POSE = Pose(0.0, 0.0, 0.0)
"""Vehicle pose in its own frame, by construction."""


def ensure_finite(name: str, *values: npt.ArrayLike) -> None:
    """Raise NonFiniteValueError if any value is NaN or infinite.

    Args:
        name: Label for the error message.
        *values: Scalars or arrays to check.

    Raises:
        NonFiniteValueError: If a non-finite value is found.
    """
    for value in values:
        if not np.all(np.isfinite(np.asarray(value, dtype=float))):
            raise NonFiniteValueError(f"Non-finite value in {name}: {value}")


def _as_arrays(xs: Sequence[float], ys: Sequence[float]) -> Tuple[FloatArray, FloatArray]:
    x_arr = np.asarray(xs, dtype=float)
    y_arr = np.asarray(ys, dtype=float)
    if x_arr.shape != y_arr.shape or x_arr.ndim != 1:
        raise ValueError(
            f"Waypoint arrays must be 1-D and of equal length, got {x_arr.shape} and {y_arr.shape}"
        )
    return x_arr, y_arr


def to_vehicle_frame(
    xs: Sequence[float], ys: Sequence[float], pose: Pose
) -> Tuple[FloatArray, FloatArray]:
    """Express global-frame points in the vehicle frame.

    Translates by (-px, -py) then rotates by -psi:
        x_local =  (X - px) * cos(psi) + (Y - py) * sin(psi)
        y_local = -(X - px) * sin(psi) + (Y - py) * cos(psi)

    Args:
        xs: Global x-coordinates.
        ys: Global y-coordinates.
        pose: Vehicle pose in the global frame.

    Returns:
        Tuple of (x_local, y_local) arrays.

    Raises:
        ValueError: If the arrays differ in shape.
        NonFiniteValueError: If the pose or any point is not finite.
    """
    x_arr, y_arr = _as_arrays(xs, ys)
    ensure_finite("vehicle pose", pose.x, pose.y, pose.heading)
    ensure_finite("waypoints", x_arr, y_arr)

    cos_psi = np.cos(pose.heading)
    sin_psi = np.sin(pose.heading)
    dx = x_arr - pose.x
    dy = y_arr - pose.y

    return dx * cos_psi + dy * sin_psi, -dx * sin_psi + dy * cos_psi


def to_global_frame(
    xs: Sequence[float], ys: Sequence[float], pose: Pose
) -> Tuple[FloatArray, FloatArray]:
    """Inverse of to_vehicle_frame: rotate by +psi then translate by (px, py)."""
    x_arr, y_arr = _as_arrays(xs, ys)
    ensure_finite("vehicle pose", pose.x, pose.y, pose.heading)
    ensure_finite("local points", x_arr, y_arr)

    cos_psi = np.cos(pose.heading)
    sin_psi = np.sin(pose.heading)

    return (
        x_arr * cos_psi - y_arr * sin_psi + pose.x,
        x_arr * sin_psi + y_arr * cos_psi + pose.y,
    )
