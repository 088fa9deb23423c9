import math

import pytest

from mpc_control.actuation import scale_actuation
from mpc_control.config import ControllerConfig
from mpc_control.errors import NonFiniteValueError

CONFIG = ControllerConfig()


def test_full_lock_maps_to_one() -> None:
    command = scale_actuation(math.radians(30.0), 0.4, CONFIG)
    assert command.steering == pytest.approx(1.0)
    assert command.throttle == pytest.approx(0.4)


def test_steering_is_normalized_by_bound() -> None:
    command = scale_actuation(-math.radians(15.0), 0.0, CONFIG)
    assert command.steering == pytest.approx(-0.5)


@pytest.mark.parametrize("steering, accel", [(1.0, 2.0), (-1.0, -3.0), (0.5236, 1.0000001)])
def test_outputs_stay_in_unit_range(steering: float, accel: float) -> None:
    command = scale_actuation(steering, accel, CONFIG)
    assert -1.0 <= command.steering <= 1.0
    assert -1.0 <= command.throttle <= 1.0


def test_non_finite_input_rejected() -> None:
    with pytest.raises(NonFiniteValueError):
        scale_actuation(float("nan"), 0.0, CONFIG)
