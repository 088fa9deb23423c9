"""
Kinematic bicycle model of the vehicle.

This module provides the discrete-time vehicle dynamics shared by the latency
compensator and the trajectory optimizer, so the state the optimizer starts
from is projected with exactly the model it plans with.

The step function takes a math-ops namespace so the same equations evaluate
numerically (numpy, scalars or whole horizons at once) or build symbolic
expressions (CasADi) for the NLP solver.
"""

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .config import ControllerConfig
from .path import polyeval, polyslope
from .transform import Pose, ensure_finite

NUMPY_OPS = SimpleNamespace(sin=np.sin, cos=np.cos, atan=np.arctan)
"""Elementwise math used when evaluating the model numerically."""

STATE_FIELDS = ("x", "y", "heading", "speed", "cte", "epsi")


@dataclass(frozen=True)
class KinematicState:
    """Optimizer state vector: pose, speed, and errors against the reference."""

    x: float
    y: float
    heading: float
    speed: float
    cte: float
    epsi: float

    def __post_init__(self) -> None:
        ensure_finite("kinematic state", self.as_array())

    @classmethod
    def from_array(cls, values: npt.ArrayLike) -> "KinematicState":
        arr = np.asarray(values, dtype=float).ravel()
        if arr.size != len(STATE_FIELDS):
            raise ValueError(f"Expected {len(STATE_FIELDS)} state values, got {arr.size}")
        return cls(*(float(v) for v in arr))

    def as_array(self) -> npt.NDArray[np.float64]:
        return np.array([self.x, self.y, self.heading, self.speed, self.cte, self.epsi])


def step(
    state: Sequence[Any],
    steering: Any,
    accel: Any,
    coeffs: Sequence[Any],
    dt: float,
    lf: float,
    ops: Any = NUMPY_OPS,
) -> Tuple[Any, ...]:
    """Advance the model one step of length dt.

        x'    = x + v * cos(psi) * dt
        y'    = y + v * sin(psi) * dt
        psi'  = psi - v / Lf * delta * dt
        v'    = v + a * dt
        cte'  = (f(x) - y) + v * sin(epsi) * dt
        epsi' = (psi - atan(f'(x))) - v / Lf * delta * dt

    Positive steering turns clockwise (heading decreases).

    Args:
        state: (x, y, psi, v, cte, epsi); each entry may be a scalar, an array
            of horizon steps, or a symbolic expression.
        steering: Steering angle delta (radians).
        accel: Acceleration a (normalized throttle).
        coeffs: Reference curve coefficients.
        dt: Step duration (seconds).
        lf: Front axle to center of gravity distance (meters).
        ops: Namespace providing sin, cos and atan.

    Returns:
        Next state tuple in the same order.
    """
    x, y, psi, v, cte, epsi = state
    yaw_step = v / lf * steering * dt
    return (
        x + v * ops.cos(psi) * dt,
        y + v * ops.sin(psi) * dt,
        psi - yaw_step,
        v + accel * dt,
        (polyeval(coeffs, x) - y) + v * ops.sin(epsi) * dt,
        (psi - ops.atan(polyslope(coeffs, x))) - yaw_step,
    )


def compensate_latency(
    pose: Pose,
    speed: float,
    steering_feedback: float,
    throttle_feedback: float,
    config: ControllerConfig,
    latency: Optional[float] = None,
) -> Tuple[Pose, float]:
    """Project the measured pose forward by the actuation latency.

    The fed-back actuation is held constant over the interval. Speed is
    updated first and the new speed drives the heading and position updates:

        v'   = v + throttle * L
        psi' = psi - v' * steering * max_angle / Lf * L
        x'   = x + v' * cos(psi') * L
        y'   = y + v' * sin(psi') * L

    With L = 0 the input is returned unchanged.

    Args:
        pose: Measured global pose.
        speed: Measured speed.
        steering_feedback: Last applied steering, normalized to [-1, 1].
        throttle_feedback: Last applied throttle.
        config: Controller configuration (Lf, steering bound, default latency).
        latency: Override for config.latency (seconds).

    Returns:
        Tuple of (projected pose, projected speed).

    Raises:
        NonFiniteValueError: If the projection is not finite.
    """
    if latency is None:
        latency = config.latency
    if latency == 0.0:
        return pose, speed

    v = speed + throttle_feedback * latency
    psi = pose.heading - v * steering_feedback * config.max_steering_rad / config.lf * latency
    x = pose.x + v * np.cos(psi) * latency
    y = pose.y + v * np.sin(psi) * latency

    ensure_finite("latency projection", x, y, psi, v)
    return Pose(float(x), float(y), float(psi)), float(v)
