import json

import pytest

from mpc_control.component_modes import ComponentMode
from mpc_control.config import ControllerConfig
from mpc_control.controller import (
    MANUAL_REPLY,
    ControlReply,
    MPCController,
    Telemetry,
    format_reply,
    has_data,
)
from mpc_control.errors import InsufficientPointsError, MalformedTelemetryError, NonFiniteValueError
from mpc_control.solvers import NLPSolver, SlsqpSolver, SolveStatus

FIRST_FRAME = {
    "ptsx": [-32.16173, -43.49173, -61.09, -78.29172, -93.05002, -107.7717],
    "ptsy": [113.361, 105.941, 92.88499, 78.73102, 65.34102, 50.57938],
    "x": -40.62,
    "y": 108.73,
    "psi": 3.733651,
    "speed": 0.0,
    "steering_angle": 0.0,
    "throttle": 0.0,
}


class FailingSolver(NLPSolver):
    name = "failing"

    def solve(self, problem, z0):
        return z0, SolveStatus(False, "Infeasible_Problem_Detected", "infeasible", 12, 0.02, 5.0, 1.0)


def _frame(data) -> str:
    return "42" + json.dumps(["telemetry", data])


def _controller(solver=None, **overrides) -> MPCController:
    config = ControllerConfig(max_solve_time=10.0, max_iterations=500, **overrides)
    return MPCController(config, solver or SlsqpSolver(), ComponentMode(use_data_logging=False))


def _telemetry(**overrides) -> Telemetry:
    data = dict(FIRST_FRAME)
    data.update(overrides)
    return Telemetry.from_dict(data)


def test_has_data_extracts_payload() -> None:
    message = '42["telemetry",{"x":1}]'
    assert has_data(message) == '["telemetry",{"x":1}]'


def test_has_data_empty_in_manual_mode() -> None:
    assert has_data('42["telemetry",null]') == ""


def test_format_reply() -> None:
    assert format_reply("steer", {"a": 1}) == '42["steer", {"a": 1}]'


def test_telemetry_missing_field_rejected() -> None:
    data = dict(FIRST_FRAME)
    del data["psi"]
    with pytest.raises(MalformedTelemetryError):
        Telemetry.from_dict(data)


def test_telemetry_wrong_type_rejected() -> None:
    with pytest.raises(MalformedTelemetryError):
        _telemetry(speed="fast")


def test_telemetry_length_mismatch_rejected() -> None:
    with pytest.raises(MalformedTelemetryError):
        _telemetry(ptsy=FIRST_FRAME["ptsy"][:-1])


def test_telemetry_nan_rejected() -> None:
    with pytest.raises(NonFiniteValueError):
        _telemetry(x=float("nan"))


def test_reply_wire_fields() -> None:
    reply = ControlReply(0.1, 0.2, [1.0], [2.0], [3.0], [4.0], fallback=True)
    assert set(reply.to_dict()) == {"steering_angle", "throttle", "mpc_x", "mpc_y", "next_x", "next_y"}


def test_first_frame_produces_bounded_command() -> None:
    controller = _controller()
    reply = controller.process(_telemetry())
    assert not reply.fallback
    assert -1.0 <= reply.steering_angle <= 1.0
    assert -1.0 <= reply.throttle <= 1.0
    # Starting from standstill below the reference speed
    assert reply.throttle > 0.0
    assert len(reply.mpc_x) == len(reply.mpc_y) == controller.config.horizon - 1
    assert len(reply.next_x) == len(FIRST_FRAME["ptsx"])


def test_next_points_are_waypoints_in_vehicle_frame() -> None:
    controller = _controller(latency=0.0)
    reply = controller.process(_telemetry())
    # The simulator sends waypoints ahead of the vehicle
    assert all(x > -15.0 for x in reply.next_x)
    assert reply.next_x[-1] > reply.next_x[0]


def test_fitted_reference_display() -> None:
    controller = _controller(display_fitted_reference=True)
    reply = controller.process(_telemetry())
    raw = _controller().process(_telemetry())
    assert reply.next_x == pytest.approx(raw.next_x)
    assert reply.next_y == pytest.approx(raw.next_y, abs=1.0)


def test_too_few_waypoints_raise() -> None:
    with pytest.raises(InsufficientPointsError):
        _controller().process(_telemetry(ptsx=[1.0, 2.0, 3.0], ptsy=[1.0, 2.0, 3.0]))


def test_brake_fallback_on_solver_failure() -> None:
    controller = _controller(FailingSolver())
    reply = controller.process(_telemetry(steering_angle=0.25, throttle=0.7))
    assert reply.fallback
    assert reply.steering_angle == pytest.approx(0.25)
    assert reply.throttle == pytest.approx(controller.config.fallback_brake)
    assert reply.mpc_x == [] and reply.mpc_y == []
    assert controller.fallbacks == 1


def test_hold_fallback_repeats_feedback() -> None:
    controller = _controller(FailingSolver(), fallback_policy="hold")
    reply = controller.process(_telemetry(steering_angle=-0.4, throttle=0.3))
    assert reply.fallback
    assert (reply.steering_angle, reply.throttle) == pytest.approx((-0.4, 0.3))


def test_drop_fallback_sends_manual() -> None:
    controller = _controller(FailingSolver(), fallback_policy="drop")
    assert controller.process(_telemetry()) is None
    assert controller.handle_message(_frame(FIRST_FRAME)) == MANUAL_REPLY


def test_handle_message_replies_with_steer() -> None:
    controller = _controller()
    reply = controller.handle_message(_frame(FIRST_FRAME))
    assert reply.startswith('42["steer"')
    event, data = json.loads(reply[2:])
    assert event == "steer"
    assert set(data) == {"steering_angle", "throttle", "mpc_x", "mpc_y", "next_x", "next_y"}
    assert controller.frames_processed == 1


def test_handle_message_manual_mode() -> None:
    assert _controller().handle_message('42["telemetry",null]') == MANUAL_REPLY


def test_handle_message_ignores_other_traffic() -> None:
    controller = _controller()
    assert controller.handle_message("2") is None
    assert controller.handle_message('0{"sid":"abc"}') is None
    assert controller.handle_message('42["other",{"a":1}]') is None


def test_handle_message_drops_bad_frames() -> None:
    controller = _controller()
    short = dict(FIRST_FRAME, ptsx=[1.0, 2.0], ptsy=[1.0, 2.0])
    assert controller.handle_message(_frame(short)) == MANUAL_REPLY
    assert controller.handle_message(_frame({"x": 1.0})) == MANUAL_REPLY
    assert controller.handle_message('42["telemetry",{"x":1.0,}]') == MANUAL_REPLY
    assert controller.frames_dropped == 3


def test_handle_message_accepts_bytes() -> None:
    reply = _controller().handle_message(_frame(FIRST_FRAME).encode("utf-8"))
    assert reply.startswith('42["steer"')


def test_telemetry_string_waypoints_rejected() -> None:
    with pytest.raises(MalformedTelemetryError):
        _telemetry(ptsx="123456", ptsy="654321")


@pytest.mark.parametrize("field, value", [("speed", "12"), ("x", True), ("ptsy", [1.0, "2", 3.0, 4.0, 5.0, 6.0])])
def test_telemetry_non_numeric_values_rejected(field: str, value) -> None:
    with pytest.raises(MalformedTelemetryError):
        _telemetry(**{field: value})


def test_handle_message_drops_string_waypoints() -> None:
    controller = _controller()
    frame = dict(FIRST_FRAME, ptsx="1234", ptsy="5678")
    assert controller.handle_message(_frame(frame)) == MANUAL_REPLY
    assert controller.frames_dropped == 1
