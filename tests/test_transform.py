import math

import numpy as np
import pytest

from mpc_control.errors import NonFiniteValueError
from mpc_control.transform import EGO_POSE, Pose, to_global_frame, to_vehicle_frame


def test_point_ahead_maps_to_positive_x() -> None:
    pose = Pose(10.0, 5.0, math.pi / 2)
    xs, ys = to_vehicle_frame([10.0], [8.0], pose)
    assert xs[0] == pytest.approx(3.0)
    assert ys[0] == pytest.approx(0.0, abs=1e-12)


def test_point_to_the_left_maps_to_positive_y() -> None:
    pose = Pose(0.0, 0.0, 0.0)
    xs, ys = to_vehicle_frame([0.0], [2.0], pose)
    assert xs[0] == pytest.approx(0.0)
    assert ys[0] == pytest.approx(2.0)


def test_vehicle_position_maps_to_origin() -> None:
    pose = Pose(-40.62, 108.73, 3.733651)
    xs, ys = to_vehicle_frame([pose.x], [pose.y], pose)
    assert xs[0] == pytest.approx(0.0, abs=1e-12)
    assert ys[0] == pytest.approx(0.0, abs=1e-12)


@pytest.mark.parametrize("heading", [0.0, 0.7, -2.5, 3.733651, 10.0])
def test_round_trip_recovers_points(heading: float) -> None:
    pose = Pose(-40.62, 108.73, heading)
    xs = np.array([-32.16173, -43.49173, -61.09, -78.29172])
    ys = np.array([113.361, 105.941, 92.88499, 78.73102])
    local_x, local_y = to_vehicle_frame(xs, ys, pose)
    back_x, back_y = to_global_frame(local_x, local_y, pose)
    np.testing.assert_allclose(back_x, xs, atol=1e-9)
    np.testing.assert_allclose(back_y, ys, atol=1e-9)


def test_ego_pose_is_identity() -> None:
    xs, ys = to_vehicle_frame([1.0, 2.0], [3.0, 4.0], EGO_POSE)
    np.testing.assert_allclose(xs, [1.0, 2.0])
    np.testing.assert_allclose(ys, [3.0, 4.0])


def test_mismatched_lengths_rejected() -> None:
    with pytest.raises(ValueError):
        to_vehicle_frame([1.0, 2.0], [1.0], Pose(0.0, 0.0, 0.0))


def test_non_finite_pose_rejected() -> None:
    with pytest.raises(NonFiniteValueError):
        to_vehicle_frame([1.0], [1.0], Pose(float("nan"), 0.0, 0.0))


def test_non_finite_waypoint_rejected() -> None:
    with pytest.raises(NonFiniteValueError):
        to_vehicle_frame([1.0, float("inf")], [1.0, 2.0], Pose(0.0, 0.0, 0.0))
