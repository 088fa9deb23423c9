import math

import numpy as np
import pytest

from mpc_control.config import ControllerConfig
from mpc_control.errors import NonFiniteValueError
from mpc_control.model import KinematicState, compensate_latency, step
from mpc_control.transform import Pose

CONFIG = ControllerConfig()


def test_step_straight_line() -> None:
    x, y, psi, v, cte, epsi = step((0.0, 0.0, 0.0, 10.0, 0.0, 0.0), 0.0, 0.0, (0.0, 0.0), 0.1, 2.67)
    assert (x, y, psi, v) == pytest.approx((1.0, 0.0, 0.0, 10.0))
    assert cte == pytest.approx(0.0)
    assert epsi == pytest.approx(0.0)


def test_positive_steering_turns_clockwise() -> None:
    _, _, psi, _, _, _ = step((0.0, 0.0, 0.0, 10.0, 0.0, 0.0), 0.2, 0.0, (0.0,), 0.1, 2.67)
    assert psi < 0.0


def test_step_cte_uses_curve_offset() -> None:
    # On a line y = 1 the vehicle at the origin is 1 m to the right of the path
    _, _, _, _, cte, epsi = step((0.0, 0.0, 0.0, 10.0, 0.0, 0.0), 0.0, 0.0, (1.0, 0.0), 0.1, 2.67)
    assert cte == pytest.approx(1.0)
    assert epsi == pytest.approx(0.0)


def test_step_is_vectorized() -> None:
    states = [np.zeros(3), np.zeros(3), np.zeros(3), np.array([1.0, 2.0, 3.0]), np.zeros(3), np.zeros(3)]
    x, _, _, v, _, _ = step(states, np.zeros(3), np.ones(3), (0.0,), 0.5, 2.67)
    np.testing.assert_allclose(x, [0.5, 1.0, 1.5])
    np.testing.assert_allclose(v, [1.5, 2.5, 3.5])


def test_latency_zero_is_identity() -> None:
    pose = Pose(-40.62, 108.73, 3.733651)
    projected, speed = compensate_latency(pose, 12.0, 0.3, 0.5, CONFIG, latency=0.0)
    assert projected == pose
    assert speed == 12.0


def test_latency_updates_speed_before_position() -> None:
    pose = Pose(0.0, 0.0, 0.0)
    projected, speed = compensate_latency(pose, 10.0, 0.0, 1.0, CONFIG, latency=0.1)
    assert speed == pytest.approx(10.1)
    assert projected.x == pytest.approx(1.01)
    assert projected.y == pytest.approx(0.0)
    assert projected.heading == pytest.approx(0.0)


def test_latency_heading_uses_normalized_steering() -> None:
    pose = Pose(0.0, 0.0, 0.0)
    projected, _ = compensate_latency(pose, 10.0, 1.0, 0.0, CONFIG, latency=0.1)
    expected = -10.0 * math.radians(30.0) / 2.67 * 0.1
    assert projected.heading == pytest.approx(expected)
    assert projected.y == pytest.approx(10.0 * math.sin(expected) * 0.1)


def test_latency_defaults_to_config() -> None:
    pose = Pose(0.0, 0.0, 0.0)
    projected, _ = compensate_latency(pose, 10.0, 0.0, 0.0, ControllerConfig(latency=0.2))
    assert projected.x == pytest.approx(2.0)


def test_kinematic_state_rejects_nan() -> None:
    with pytest.raises(NonFiniteValueError):
        KinematicState(0.0, 0.0, 0.0, float("nan"), 0.0, 0.0)


def test_kinematic_state_array_round_trip() -> None:
    state = KinematicState(1.0, 2.0, 0.1, 5.0, -0.3, 0.02)
    assert KinematicState.from_array(state.as_array()) == state
