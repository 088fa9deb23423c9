"""
MPC control loop driver.

This module turns one telemetry frame into one actuation reply:

    telemetry -> latency compensation -> vehicle-frame transform
              -> reference curve fit -> reference errors
              -> horizon optimization -> actuation scaling -> reply

It also owns the simulator framing: text frames prefixed with "42" carrying a
JSON array [event, data]. Telemetry frames are answered with a "steer" event;
manual-mode frames and frames that cannot be processed are answered with a
"manual" event.

The controller keeps no control state between frames. Every cycle builds its
state, curve and plan from the current frame only.
"""

import json
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from .actuation import ActuationCommand, scale_actuation
from .component_modes import ComponentMode
from .config import TERM_ORANGE, TERM_RESET, ControllerConfig
from .data_collector import DataCollector
from .errors import ControlError, MalformedTelemetryError, SolverFailureError
from .model import KinematicState, compensate_latency
from .optimizer import SolveResult, solve_horizon
from .path import fit_reference_curve, reference_errors
from .solvers import NLPSolver, get_solver
from .transform import Pose, ensure_finite, to_vehicle_frame

FRAME_PREFIX = "42"
"""Prefix of every simulator message frame."""

MANUAL_REPLY = '42["manual",{}]'
"""Reply sent when no actuation is produced for a frame."""

TELEMETRY_FIELDS = ("ptsx", "ptsy", "x", "y", "psi", "speed", "steering_angle", "throttle")


def _number(name: str, value: Any) -> float:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedTelemetryError(f"{name} must be a number, got {type(value).__name__}")
    return float(value)


def has_data(message: str) -> str:
    """Extract the JSON payload of a frame.

    Args:
        message: Raw frame text.

    Returns:
        The substring from the first '[' to the last '}]', or "" if the frame
        carries no data (manual mode sends "null").
    """
    if "null" in message:
        return ""
    start = message.find("[")
    end = message.rfind("}]")
    if start != -1 and end != -1:
        return message[start:end + 2]
    return ""


def format_reply(event: str, data: Dict[str, Any]) -> str:
    """Encode an outbound frame: 42["event",{...}]."""
    return FRAME_PREFIX + json.dumps([event, data])


@dataclass(frozen=True)
class Telemetry:
    """One inbound telemetry record.

    Attributes:
        ptsx: Upcoming waypoint x-coordinates (global frame).
        ptsy: Upcoming waypoint y-coordinates (global frame).
        x: Vehicle x position.
        y: Vehicle y position.
        psi: Vehicle heading (radians).
        speed: Vehicle speed.
        steering_angle: Last applied steering, normalized to [-1, 1].
        throttle: Last applied throttle.
    """

    ptsx: Tuple[float, ...]
    ptsy: Tuple[float, ...]
    x: float
    y: float
    psi: float
    speed: float
    steering_angle: float
    throttle: float

    @classmethod
    def from_dict(cls, data: Any) -> "Telemetry":
        """Parse and validate a telemetry mapping.

        Raises:
            MalformedTelemetryError: If a field is missing or has the wrong type,
                or the waypoint lists differ in length.
            NonFiniteValueError: If any value is NaN or infinite.
        """
        if not isinstance(data, dict):
            raise MalformedTelemetryError(f"Telemetry must be an object, got {type(data).__name__}")
        missing = [name for name in TELEMETRY_FIELDS if name not in data]
        if missing:
            raise MalformedTelemetryError(f"Telemetry missing fields: {missing}")
        for name in ("ptsx", "ptsy"):
            if not isinstance(data[name], (list, tuple)):
                raise MalformedTelemetryError(
                    f"{name} must be a list, got {type(data[name]).__name__}"
                )

        ptsx = tuple(_number("ptsx", v) for v in data["ptsx"])
        ptsy = tuple(_number("ptsy", v) for v in data["ptsy"])
        scalars = [_number(name, data[name]) for name in TELEMETRY_FIELDS[2:]]

        if len(ptsx) != len(ptsy):
            raise MalformedTelemetryError(
                f"ptsx and ptsy differ in length ({len(ptsx)} vs {len(ptsy)})"
            )
        ensure_finite("telemetry", ptsx, ptsy, scalars)
        return cls(ptsx, ptsy, *scalars)

    @property
    def pose(self) -> Pose:
        return Pose(self.x, self.y, self.psi)


@dataclass(frozen=True)
class ControlReply:
    """Outbound reply for one frame.

    Attributes:
        steering_angle: Normalized steering command.
        throttle: Normalized throttle command.
        mpc_x: Predicted path x-coordinates (vehicle frame).
        mpc_y: Predicted path y-coordinates (vehicle frame).
        next_x: Reference x-coordinates (vehicle frame).
        next_y: Reference y-coordinates (vehicle frame).
        fallback: True when the command comes from the failure policy rather
            than a converged solve. Not sent on the wire.
    """

    steering_angle: float
    throttle: float
    mpc_x: List[float] = field(default_factory=list)
    mpc_y: List[float] = field(default_factory=list)
    next_x: List[float] = field(default_factory=list)
    next_y: List[float] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        del data["fallback"]
        return data


class MPCController:
    """Per-frame MPC pipeline with failure policy and framing.

    Attributes:
        config: Immutable controller tunables.
        solver: NLP backend.
        component_mode: Pipeline stage toggles.
        data_collector: Optional CSV logger.
        frames_processed: Frames that produced an actuation reply.
        frames_dropped: Frames answered with the manual reply.
        fallbacks: Replies produced by the failure policy.
    """

    def __init__(
        self,
        config: Optional[ControllerConfig] = None,
        solver: Optional[NLPSolver] = None,
        component_mode: Optional[ComponentMode] = None,
        data_collector: Optional[DataCollector] = None,
    ) -> None:
        self.config = config if config is not None else ControllerConfig()
        self.solver = solver if solver is not None else get_solver()
        self.component_mode = component_mode if component_mode is not None else ComponentMode()
        self.data_collector = data_collector

        self.frames_processed = 0
        self.frames_dropped = 0
        self.fallbacks = 0

    def process(self, telemetry: Telemetry) -> Optional[ControlReply]:
        """Run one control cycle.

        Args:
            telemetry: Validated telemetry record.

        Returns:
            ControlReply, or None if the solver failed under the "drop" policy.

        Raises:
            InsufficientPointsError: Too few waypoints for the curve fit.
            DegenerateWaypointsError: Waypoints cannot determine the curve.
            NonFiniteValueError: A NaN or Inf appeared in the pipeline.
        """
        config = self.config
        timestamp = time.time()

        pose, speed = telemetry.pose, telemetry.speed
        if self.component_mode.use_latency_compensation:
            pose, speed = compensate_latency(
                pose, speed, telemetry.steering_angle, telemetry.throttle, config
            )

        xs, ys = to_vehicle_frame(telemetry.ptsx, telemetry.ptsy, pose)
        curve = fit_reference_curve(xs, ys)
        cte, epsi = reference_errors(curve)
        state = KinematicState(0.0, 0.0, 0.0, speed, cte, epsi)

        next_x = xs.tolist()
        next_y = np.asarray(curve(xs)).tolist() if config.display_fitted_reference else ys.tolist()

        result: Optional[SolveResult] = None
        try:
            previous = (telemetry.steering_angle * config.max_steering_rad, telemetry.throttle)
            result = solve_horizon(state, curve, config, self.solver, previous_actuation=previous)
        except SolverFailureError as e:
            reply = self._fallback(telemetry, e, next_x, next_y)
        else:
            command = scale_actuation(result.steering, result.acceleration, config)
            mpc_x, mpc_y = result.trajectory.predicted_path()
            reply = ControlReply(command.steering, command.throttle, mpc_x, mpc_y, next_x, next_y)
            logging.debug(
                f"steer={command.steering:+.4f} throttle={command.throttle:+.4f} "
                f"cte={cte:+.3f} epsi={epsi:+.4f} "
                f"solve={result.status.solve_time * 1000:.1f}ms ({result.status.iterations} it)"
            )

        if self.data_collector is not None:
            self.data_collector.log_telemetry(timestamp, telemetry)
            self.data_collector.log_state(timestamp, pose, speed, cte, epsi, curve.coefficients)
            self.data_collector.log_control(timestamp, reply, result)

        return reply

    def _fallback(
        self,
        telemetry: Telemetry,
        error: SolverFailureError,
        next_x: List[float],
        next_y: List[float],
    ) -> Optional[ControlReply]:
        """Apply the configured failure policy to a failed solve."""
        self.fallbacks += 1
        policy = self.config.fallback_policy
        logging.warning(f"{TERM_ORANGE}{error}; applying '{policy}' policy{TERM_RESET}")

        if policy == "drop":
            return None
        steering = float(np.clip(telemetry.steering_angle, -1.0, 1.0))
        if policy == "hold":
            throttle = float(np.clip(telemetry.throttle, -1.0, 1.0))
        else:
            throttle = self.config.fallback_brake
        command = ActuationCommand(steering, throttle)
        return ControlReply(
            command.steering, command.throttle, [], [], next_x, next_y, fallback=True
        )

    def handle_message(self, message: Union[str, bytes]) -> Optional[str]:
        """Process one raw simulator frame.

        Args:
            message: Frame text (or UTF-8 bytes).

        Returns:
            Reply frame text, or None if the frame needs no reply (not a "42"
            frame, or an event other than telemetry).
        """
        if isinstance(message, bytes):
            message = message.decode("utf-8")
        if len(message) <= len(FRAME_PREFIX) or not message.startswith(FRAME_PREFIX):
            return None

        payload = has_data(message)
        if not payload:
            return MANUAL_REPLY

        try:
            frame = json.loads(payload)
        except json.JSONDecodeError as e:
            self.frames_dropped += 1
            logging.warning(f"Dropped frame: invalid JSON ({e})")
            return MANUAL_REPLY

        if not isinstance(frame, list) or len(frame) < 2:
            self.frames_dropped += 1
            logging.warning(f"Dropped frame: expected [event, data], got {payload[:80]}")
            return MANUAL_REPLY
        event, data = frame[0], frame[1]
        if event != "telemetry":
            logging.debug(f"Ignoring event {event!r}")
            return None

        try:
            reply = self.process(Telemetry.from_dict(data))
        except ControlError as e:
            self.frames_dropped += 1
            logging.warning(f"Dropped frame: {e}")
            return MANUAL_REPLY

        if reply is None:
            self.frames_dropped += 1
            return MANUAL_REPLY
        self.frames_processed += 1
        return format_reply("steer", reply.to_dict())

    def summary(self) -> str:
        total = self.frames_processed + self.frames_dropped
        rate = 100.0 * self.fallbacks / total if total else math.nan
        return (
            f"{self.frames_processed} frames controlled, {self.frames_dropped} dropped, "
            f"{self.fallbacks} fallbacks ({rate:.1f}%)"
        )
