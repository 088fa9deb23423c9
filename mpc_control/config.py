"""Configuration parameters for the MPC vehicle controller.

This module centralizes all configuration parameters including:
- Physical vehicle parameters
- Prediction horizon and cost weights
- Solver limits and failure policy
- Latency compensation
- WebSocket server parameters

Module-level constants are the process-wide defaults. ``ControllerConfig`` is
built from them once at startup (optionally overridden from the command line)
and is immutable afterwards.
"""

import math
from dataclasses import dataclass, field

# ============================================================================
# Physical Vehicle Parameters
# ============================================================================

LF = 2.67
"""Distance from the front axle to the center of gravity (meters).

Origin: measured by driving the simulated vehicle in a circle at constant
steering angle and speed on flat terrain, then tuning LF until the radius
predicted by the kinematic model matched the observed radius.
Calibrated per vehicle model; keep adjustable without code changes.
"""

MAX_STEERING_DEG = 30.0
"""Maximum steering angle (degrees). Symmetric: [-MAX, +MAX].

The actuator interface expects steering normalized by this value, so a
command of 1.0 means full lock.
"""

THROTTLE_MIN = -1.0
"""Minimum normalized throttle (full brake)."""

THROTTLE_MAX = 1.0
"""Maximum normalized throttle (full throttle)."""


# ============================================================================
# Prediction Horizon
# ============================================================================

HORIZON_STEPS = 10
"""Number of timesteps N in the prediction horizon.

Tuning rationale:
- N * DT = 1.0 s covers the few upcoming waypoints supplied per frame
- Larger N grows the problem (6N + 2(N-1) unknowns) and the solve time
- Smaller N makes the controller short-sighted in curves
"""

STEP_DURATION = 0.1
"""Duration of one horizon step dt (seconds).

Matches the actuation latency so one step of the plan corresponds to one
command period.
"""

REFERENCE_SPEED = 40.0
"""Target speed tracked by the speed term of the cost (telemetry units)."""

POLY_ORDER = 3
"""Degree of the reference polynomial fitted through the local waypoints."""


# ============================================================================
# Cost Weights
# ============================================================================

W_CTE = 2000.0
"""Weight on squared cross-track error."""

W_EPSI = 2000.0
"""Weight on squared heading error."""

W_SPEED = 1.0
"""Weight on squared deviation from REFERENCE_SPEED."""

W_STEER = 5.0
"""Weight on squared steering magnitude."""

W_ACCEL = 5.0
"""Weight on squared acceleration magnitude."""

W_DSTEER = 200.0
"""Weight on squared steering change between consecutive steps.

Tuning rationale:
- Dominant smoothing term; low values make the steering chatter between
  cycles
- Also applies to the step from the fed-back steering to the first planned
  steering, which links consecutive solves
"""

W_DACCEL = 10.0
"""Weight on squared acceleration change between consecutive steps."""


# ============================================================================
# Latency
# ============================================================================

ACTUATION_LATENCY = 0.1
"""Latency between issuing a command and its physical effect (seconds).

The measured state is projected forward by this interval before solving so
the plan starts where the vehicle will be when the command lands.
"""

ACTUATION_DELAY = 0.1
"""Artificial delay inserted before each reply is sent (seconds).

Emulates real actuator latency during testing. Does not block reception of
the next frame.
"""


# ============================================================================
# Solver
# ============================================================================

SOLVER_BACKEND = "ipopt"
"""Default NLP backend: "ipopt" (CasADi + IPOPT) or "slsqp" (SciPy)."""

SOLVER_MAX_CPU_TIME = 0.5
"""Maximum solver CPU time per cycle (seconds).

Must fit inside the frame period, otherwise the command is stale by the time
it is applied.
"""

SOLVER_MAX_ITER = 200
"""Maximum solver iterations per cycle."""

SOLVER_TOLERANCE = 1e-6
"""Convergence tolerance passed to the backend."""


# ============================================================================
# Failure Policy
# ============================================================================

FALLBACK_POLICY = "brake"
"""Action taken when the solver does not converge.

- "brake": hold the fed-back steering, apply FALLBACK_BRAKE_THROTTLE
- "hold":  re-emit the fed-back steering and throttle
- "drop":  emit no actuation for this frame
"""

FALLBACK_BRAKE_THROTTLE = -0.5
"""Throttle applied by the "brake" fallback policy (normalized)."""

FALLBACK_POLICIES = ("brake", "hold", "drop")

DISPLAY_FITTED_REFERENCE = False
"""If True, next_y carries the fitted curve instead of the raw waypoints."""


# ============================================================================
# Terminal Colors
# ============================================================================

TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for warnings and highlights (RGB: 247, 72, 35)."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for status messages (RGB: 35, 116, 247)."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""


# ============================================================================
# Plot Colors
# ============================================================================

PLOT_ORANGE = "#f74823"
"""Primary plot color: measured and commanded signals."""

PLOT_BLUE = "#2374f7"
"""Secondary plot color: predicted and reference signals."""

PLOT_CREAM = "#fffdee"
"""Light background and text color for dark figures."""

PLOT_TAUPE = "#686a5f"
"""Neutral color for spines, legend frames and limits."""

PLOT_YELLOW_ORANGE = "#ffa726"
"""Highlight color for fallback markers."""

PLOT_DARK_BLUE = "#0d1b2a"
"""Dark background color."""


# ============================================================================
# WebSocket Configuration
# ============================================================================

WS_HOST = "0.0.0.0"
"""Interface the controller listens on."""

WS_PORT = 4567
"""Port the simulator connects to."""


# ============================================================================
# Run Logging
# ============================================================================

RESULTS_DIR = "results"
"""Directory (relative to the output dir) where run folders are created."""


@dataclass(frozen=True)
class CostWeights:
    """Weights of the horizon cost terms."""

    cte: float = W_CTE
    epsi: float = W_EPSI
    speed: float = W_SPEED
    steer: float = W_STEER
    accel: float = W_ACCEL
    dsteer: float = W_DSTEER
    daccel: float = W_DACCEL


@dataclass(frozen=True)
class ControllerConfig:
    """Immutable tunables shared by every control cycle.

    Attributes:
        horizon: Number of horizon steps N.
        dt: Step duration (seconds).
        lf: Front axle to center of gravity distance (meters).
        max_steering_deg: Steering bound (degrees).
        ref_speed: Target speed for the speed cost term.
        latency: Actuation latency compensated before solving (seconds).
        weights: Cost weights.
        max_solve_time: Solver CPU time limit (seconds).
        max_iterations: Solver iteration limit.
        tolerance: Solver convergence tolerance.
        fallback_policy: One of FALLBACK_POLICIES.
        fallback_brake: Throttle used by the "brake" policy.
        display_fitted_reference: Send the fitted curve as next_y.
    """

    horizon: int = HORIZON_STEPS
    dt: float = STEP_DURATION
    lf: float = LF
    max_steering_deg: float = MAX_STEERING_DEG
    ref_speed: float = REFERENCE_SPEED
    latency: float = ACTUATION_LATENCY
    weights: CostWeights = field(default_factory=CostWeights)
    max_solve_time: float = SOLVER_MAX_CPU_TIME
    max_iterations: int = SOLVER_MAX_ITER
    tolerance: float = SOLVER_TOLERANCE
    fallback_policy: str = FALLBACK_POLICY
    fallback_brake: float = FALLBACK_BRAKE_THROTTLE
    display_fitted_reference: bool = DISPLAY_FITTED_REFERENCE

    def __post_init__(self) -> None:
        """Validate the configuration.

        Raises:
            ValueError: If any parameter is out of its valid range.
        """
        if self.horizon < 2:
            raise ValueError(f"horizon must be at least 2, got {self.horizon}")
        if not self.dt > 0.0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if not self.lf > 0.0:
            raise ValueError(f"lf must be positive, got {self.lf}")
        if not 0.0 < self.max_steering_deg < 90.0:
            raise ValueError(f"max_steering_deg must be in (0, 90), got {self.max_steering_deg}")
        if self.latency < 0.0:
            raise ValueError(f"latency must be non-negative, got {self.latency}")
        if self.fallback_policy not in FALLBACK_POLICIES:
            raise ValueError(
                f"fallback_policy must be one of {FALLBACK_POLICIES}, got {self.fallback_policy!r}"
            )
        if not THROTTLE_MIN <= self.fallback_brake <= THROTTLE_MAX:
            raise ValueError(f"fallback_brake must be in [-1, 1], got {self.fallback_brake}")
        for name, value in vars(self.weights).items():
            if value < 0.0:
                raise ValueError(f"cost weight {name} must be non-negative, got {value}")

    @property
    def max_steering_rad(self) -> float:
        """Steering bound in radians."""
        return math.radians(self.max_steering_deg)

    @property
    def n_vars(self) -> int:
        """Number of decision variables: 6 states over N steps + 2 actuators over N-1."""
        return 6 * self.horizon + 2 * (self.horizon - 1)
