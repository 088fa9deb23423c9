"""
Main entry point when running the mpc_control module with python -m.
"""

import argparse
import asyncio
import logging
import sys

from .component_modes import parse_component_flags
from .config import (
    ACTUATION_LATENCY,
    FALLBACK_POLICIES,
    FALLBACK_POLICY,
    HORIZON_STEPS,
    REFERENCE_SPEED,
    SOLVER_BACKEND,
    SOLVER_MAX_CPU_TIME,
    STEP_DURATION,
    WS_HOST,
    WS_PORT,
    ControllerConfig,
)
from .server import main, setup_logging
from .solvers import SOLVERS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="MPC vehicle controller serving the driving simulator over WebSocket"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    parser.add_argument("--host", default=WS_HOST, help=f"Listen address (default: {WS_HOST})")
    parser.add_argument("--port", type=int, default=WS_PORT, help=f"Listen port (default: {WS_PORT})")
    parser.add_argument("--solver", choices=sorted(SOLVERS), default=SOLVER_BACKEND,
                        help=f"NLP backend (default: {SOLVER_BACKEND})")
    parser.add_argument("--horizon", type=int, default=HORIZON_STEPS,
                        help=f"Horizon steps N (default: {HORIZON_STEPS})")
    parser.add_argument("--dt", type=float, default=STEP_DURATION,
                        help=f"Horizon step duration in s (default: {STEP_DURATION})")
    parser.add_argument("--ref-speed", type=float, default=REFERENCE_SPEED,
                        help=f"Target speed (default: {REFERENCE_SPEED})")
    parser.add_argument("--latency", type=float, default=ACTUATION_LATENCY,
                        help=f"Compensated actuation latency in s (default: {ACTUATION_LATENCY})")
    parser.add_argument("--max-solve-time", type=float, default=SOLVER_MAX_CPU_TIME,
                        help=f"Solver time limit in s (default: {SOLVER_MAX_CPU_TIME})")
    parser.add_argument("--fallback", choices=FALLBACK_POLICIES, default=FALLBACK_POLICY,
                        help=f"Action when the solver fails (default: {FALLBACK_POLICY})")
    parser.add_argument("--show-fit", action="store_true",
                        help="Send the fitted reference curve as next_y instead of the waypoints")
    parser.add_argument("--output-dir", default=".", help="Base directory for run logs (default: .)")
    return parser


if __name__ == "__main__":
    component_mode, remaining_args = parse_component_flags()
    args = build_parser().parse_args(remaining_args)

    setup_logging(args.verbose)

    try:
        config = ControllerConfig(
            horizon=args.horizon,
            dt=args.dt,
            ref_speed=args.ref_speed,
            latency=args.latency,
            max_solve_time=args.max_solve_time,
            fallback_policy=args.fallback,
            display_fitted_reference=args.show_fit,
        )
    except ValueError as e:
        logging.error(f"Invalid configuration: {e}")
        sys.exit(2)

    try:
        asyncio.run(
            main(
                config,
                component_mode=component_mode,
                host=args.host,
                port=args.port,
                solver_name=args.solver,
                output_dir=args.output_dir,
            )
        )
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(0)
