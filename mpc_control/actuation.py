"""Conversion of planned actuation to the simulator's command range."""

from dataclasses import dataclass

import numpy as np

from .config import THROTTLE_MAX, THROTTLE_MIN, ControllerConfig
from .transform import ensure_finite


@dataclass(frozen=True)
class ActuationCommand:
    """Normalized command sent to the vehicle.

    Attributes:
        steering: Steering in [-1, 1]; 1.0 means full lock in the positive
            (clockwise) direction.
        throttle: Throttle in [-1, 1]; negative values brake.
    """

    steering: float
    throttle: float


def scale_actuation(steering_rad: float, accel: float, config: ControllerConfig) -> ActuationCommand:
    """Normalize a planned steering angle and acceleration.

    Steering is divided by the steering bound in radians. Both values are
    clipped to [-1, 1] so solver overshoot never reaches the actuators.

    Raises:
        NonFiniteValueError: If either input is not finite.
    """
    ensure_finite("actuation", steering_rad, accel)
    steering = np.clip(steering_rad / config.max_steering_rad, -1.0, 1.0)
    throttle = np.clip(accel, THROTTLE_MIN, THROTTLE_MAX)
    return ActuationCommand(float(steering), float(throttle))
