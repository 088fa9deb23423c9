"""
Offline closed-loop simulation.

This module drives the controller without the simulator or a network: a
kinematic vehicle follows a sinusoidal track, emits telemetry frames in the
simulator's format, and applies the returned commands after an actuation
latency.

Usage:
    python -m mpc_control.simulation --steps 300 --solver slsqp
"""

import argparse
import collections
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from .actuation import ActuationCommand
from .component_modes import parse_component_flags
from .config import (
    ACTUATION_LATENCY,
    SOLVER_BACKEND,
    STEP_DURATION,
    TERM_BLUE,
    TERM_RESET,
    ControllerConfig,
)
from .controller import MPCController, Telemetry
from .data_collector import DataCollector
from .errors import ControlError
from .model import step
from .server import setup_logging
from .solvers import SOLVERS, get_solver
from .transform import Pose


@dataclass(frozen=True)
class Track:
    """Sinusoidal reference track y = amplitude * sin(2 pi x / wavelength).

    Attributes:
        amplitude: Lateral amplitude (m).
        wavelength: Distance between crests along x (m).
        spacing: Distance between waypoints along x (m).
    """

    amplitude: float = 5.0
    wavelength: float = 120.0
    spacing: float = 6.0

    def __post_init__(self) -> None:
        if self.wavelength <= 0.0 or self.spacing <= 0.0:
            raise ValueError("wavelength and spacing must be positive")

    def __call__(self, x: Any) -> Any:
        return self.amplitude * np.sin(2.0 * np.pi * np.asarray(x) / self.wavelength)

    def heading(self, x: float) -> float:
        """Tangent direction of the track at x."""
        k = 2.0 * np.pi / self.wavelength
        return float(np.arctan(self.amplitude * k * np.cos(k * x)))

    def lateral_error(self, x: float, y: float) -> float:
        """Signed vertical offset of (x, y) from the track."""
        return float(y - self(x))

    def waypoints_ahead(self, x: float, count: int) -> Dict[str, List[float]]:
        """The next count waypoints, starting at the last one behind x."""
        start = math.floor(x / self.spacing) * self.spacing
        xs = start + self.spacing * np.arange(count)
        return {"ptsx": xs.tolist(), "ptsy": self(xs).tolist()}


class VehicleSimulator:
    """Kinematic bicycle vehicle with delayed actuation.

    Commands take effect latency seconds after they are applied; until then
    the vehicle keeps executing the earlier commands.

    Attributes:
        track: Reference track.
        config: Controller configuration (Lf, steering bound).
        dt: Simulation step (seconds).
        lookahead: Number of waypoints per telemetry frame.
        pose: Current global pose.
        speed: Current speed.
        active: Command currently acting on the vehicle.
    """

    def __init__(
        self,
        track: Optional[Track] = None,
        config: Optional[ControllerConfig] = None,
        dt: float = STEP_DURATION,
        latency: float = ACTUATION_LATENCY,
        initial_speed: float = 10.0,
        lookahead: int = 6,
    ) -> None:
        """Initialize the simulator on the track origin, aligned with the track.

        Raises:
            ValueError: If dt is not positive or latency is negative.
        """
        if dt <= 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        if latency < 0.0:
            raise ValueError(f"latency must be non-negative, got {latency}")

        self.track = track if track is not None else Track()
        self.config = config if config is not None else ControllerConfig()
        self.dt = dt
        self.lookahead = lookahead

        self.pose = Pose(0.0, float(self.track(0.0)), self.track.heading(0.0))
        self.speed = initial_speed
        self.active = ActuationCommand(0.0, 0.0)

        delay_steps = int(round(latency / dt))
        self._pending = collections.deque([self.active] * delay_steps)

    def telemetry(self) -> Dict[str, Any]:
        """Current telemetry frame in the simulator's field layout.

        The actuation feedback is the command that acts over the next step,
        which is what a reply to this frame follows.
        """
        feedback = self._pending[0] if self._pending else self.active
        frame = self.track.waypoints_ahead(self.pose.x, self.lookahead)
        frame.update(
            x=self.pose.x,
            y=self.pose.y,
            psi=self.pose.heading,
            speed=self.speed,
            steering_angle=feedback.steering,
            throttle=feedback.throttle,
        )
        return frame

    def apply(self, command: ActuationCommand) -> None:
        """Queue a command; it acts once the latency has elapsed."""
        self._pending.append(command)

    def advance(self) -> None:
        """Integrate the vehicle over one step."""
        if self._pending:
            self.active = self._pending.popleft()

        steering_rad = self.active.steering * self.config.max_steering_rad
        x, y, psi, v, _, _ = step(
            (self.pose.x, self.pose.y, self.pose.heading, self.speed, 0.0, 0.0),
            steering_rad,
            self.active.throttle,
            (0.0,),
            self.dt,
            self.config.lf,
        )
        self.pose = Pose(float(x), float(y), float(psi))
        self.speed = float(v)


def run_closed_loop(
    controller: MPCController, simulator: VehicleSimulator, steps: int
) -> List[Dict[str, Any]]:
    """Drive the simulator with the controller.

    Each step sends the current telemetry frame through the controller, queues
    the reply (if any) and advances the vehicle.

    Returns:
        One record per step: position, speed, lateral error against the track,
        commands and whether the reply came from the fallback policy.
    """
    records = []
    for i in range(steps):
        frame = simulator.telemetry()
        try:
            reply = controller.process(Telemetry.from_dict(frame))
        except ControlError as e:
            logging.warning(f"Step {i}: dropped frame: {e}")
            reply = None

        if reply is not None:
            simulator.apply(ActuationCommand(reply.steering_angle, reply.throttle))

        records.append(
            {
                "step": i,
                "x": simulator.pose.x,
                "y": simulator.pose.y,
                "psi": simulator.pose.heading,
                "speed": simulator.speed,
                "lateral_error": simulator.track.lateral_error(simulator.pose.x, simulator.pose.y),
                "steering": reply.steering_angle if reply is not None else float("nan"),
                "throttle": reply.throttle if reply is not None else float("nan"),
                "fallback": reply is None or reply.fallback,
            }
        )
        simulator.advance()
    return records


def main() -> int:
    """Run an offline closed-loop simulation from the command line."""
    component_mode, remaining_args = parse_component_flags()

    parser = argparse.ArgumentParser(description="Closed-loop MPC simulation on a sinusoidal track")
    parser.add_argument("--steps", type=int, default=300, help="Number of control steps (default: 300)")
    parser.add_argument("--solver", choices=sorted(SOLVERS), default=SOLVER_BACKEND,
                        help=f"NLP backend (default: {SOLVER_BACKEND})")
    parser.add_argument("--ref-speed", type=float, default=20.0, help="Target speed (default: 20)")
    parser.add_argument("--initial-speed", type=float, default=10.0, help="Starting speed (default: 10)")
    parser.add_argument("--amplitude", type=float, default=5.0, help="Track amplitude in m (default: 5)")
    parser.add_argument("--wavelength", type=float, default=120.0, help="Track wavelength in m (default: 120)")
    parser.add_argument("--output-dir", type=str, default=".", help="Base directory for run logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps")
    args = parser.parse_args(remaining_args)
    setup_logging(args.verbose)

    config = ControllerConfig(ref_speed=args.ref_speed)
    track = Track(amplitude=args.amplitude, wavelength=args.wavelength)
    simulator = VehicleSimulator(track, config, initial_speed=args.initial_speed)
    logging.info(f"{TERM_BLUE}Component Configuration: {component_mode}{TERM_RESET}")

    collector = (
        DataCollector(output_dir=args.output_dir)
        if component_mode.use_data_logging
        else None
    )
    controller = MPCController(config, get_solver(args.solver), component_mode, collector)

    if collector is not None:
        with collector:
            records = run_closed_loop(controller, simulator, args.steps)
    else:
        records = run_closed_loop(controller, simulator, args.steps)

    errors = np.array([r["lateral_error"] for r in records])
    fallbacks = sum(r["fallback"] for r in records)
    logging.info(
        f"{TERM_BLUE}→ RMS lateral error: {np.sqrt(np.mean(errors ** 2)):.3f} m  "
        f"Max: {np.max(np.abs(errors)):.3f} m  Fallbacks: {fallbacks}/{len(records)}{TERM_RESET}"
    )
    return 0


if __name__ == "__main__":
    exit(main())
