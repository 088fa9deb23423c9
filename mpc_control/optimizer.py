"""Receding-horizon trajectory optimizer (MPC core).

This module formulates the finite-horizon nonlinear program solved every
control cycle and extracts the first-step actuation from its solution.

Decision vector layout (N = horizon steps):

    [ x(N) | y(N) | heading(N) | speed(N) | cte(N) | epsi(N) | steering(N-1) | accel(N-1) ]

Equality constraints g(z) = 0 (6N rows, one block per state variable):
    row k*N      pins state k at t=0 to the initial state
    row k*N + t  is the model residual state_k[t] - step(state[t-1])_k, t >= 1

Cost:
    sum_t  w_cte*cte_t^2 + w_epsi*epsi_t^2 + w_speed*(v_t - v_ref)^2
  + sum_t  w_steer*delta_t^2 + w_accel*a_t^2
  + sum_t  w_dsteer*(delta_t - delta_{t-1})^2 + w_daccel*(a_t - a_{t-1})^2

When the actuation currently acting on the vehicle is known, delta_{-1} and
a_{-1} are that actuation, so the rate terms also cover the step from the
applied command to the first planned one.

Bounds: |delta| <= max steering angle, a in [-1, 1], states free.

The objective and constraints are written once against a math-ops namespace:
the numpy namespace gives numeric values for SLSQP, the CasADi namespace gives
symbolic expressions for IPOPT. Gradient and Jacobian are analytic.
"""

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .config import THROTTLE_MAX, THROTTLE_MIN, ControllerConfig
from .errors import SolverFailureError
from .model import NUMPY_OPS, KinematicState, step
from .path import ReferenceCurve, polycurvature, polyslope
from .solvers import NLPSolver, SolveStatus, get_solver
from .transform import ensure_finite

FloatArray = npt.NDArray[np.float64]

NUMPY_NLP_OPS = SimpleNamespace(
    sin=NUMPY_OPS.sin,
    cos=NUMPY_OPS.cos,
    atan=NUMPY_OPS.atan,
    sumsqr=lambda a: float(np.sum(np.square(a))),
    concat=lambda *parts: np.concatenate([np.atleast_1d(p) for p in parts]),
)
"""Numeric math namespace for objective and constraint evaluation."""


@dataclass(frozen=True, eq=False)
class HorizonTrajectory:
    """Predicted states over the horizon and the actuation that produces them.

    State arrays have N entries; steering and acceleration have N-1 (no
    actuation follows the last state).
    """

    x: FloatArray
    y: FloatArray
    heading: FloatArray
    speed: FloatArray
    cte: FloatArray
    epsi: FloatArray
    steering: FloatArray
    acceleration: FloatArray

    def __len__(self) -> int:
        return len(self.x)

    def predicted_path(self) -> Tuple[List[float], List[float]]:
        """Predicted positions x_1..x_{N-1}, y_1..y_{N-1} for display."""
        return self.x[1:].tolist(), self.y[1:].tolist()

    def state_at(self, t: int) -> KinematicState:
        return KinematicState(
            float(self.x[t]),
            float(self.y[t]),
            float(self.heading[t]),
            float(self.speed[t]),
            float(self.cte[t]),
            float(self.epsi[t]),
        )


@dataclass(frozen=True, eq=False)
class SolveResult:
    """First-step actuation of a converged solve, with the full plan.

    Attributes:
        steering: Steering angle to apply now (radians).
        acceleration: Acceleration to apply now (normalized throttle).
        trajectory: Full predicted horizon.
        status: Solver verdict and diagnostics.
    """

    steering: float
    acceleration: float
    trajectory: HorizonTrajectory
    status: SolveStatus


class HorizonProblem:
    """The NLP for one control cycle.

    Holds the initial state, reference curve and tunables; exposes everything
    an NLP backend needs: objective, gradient, constraints, Jacobian, bounds
    and an initial guess.
    """

    def __init__(
        self,
        initial_state: KinematicState,
        curve: ReferenceCurve,
        config: ControllerConfig,
        previous_actuation: Optional[Tuple[float, float]] = None,
    ) -> None:
        """Build the problem.

        Args:
            initial_state: State at t=0 in the vehicle frame.
            curve: Reference curve in the vehicle frame.
            config: Controller tunables.
            previous_actuation: (steering rad, acceleration) acting before the
                first planned step, or None to leave the first step unpenalized.
        """
        self.config = config
        self.initial = initial_state.as_array()
        self.coeffs = curve.as_array()
        if previous_actuation is None:
            self.previous = np.zeros(2)
            self.continuity = 0.0
        else:
            self.previous = np.asarray(previous_actuation, dtype=float).reshape(2)
            ensure_finite("previous actuation", self.previous)
            self.continuity = 1.0
        self.n_steps = config.horizon
        self.n_vars = config.n_vars
        self.n_constraints = 6 * config.horizon

        n = self.n_steps
        self.state_starts = tuple(k * n for k in range(6))
        self.steering_start = 6 * n
        self.accel_start = 7 * n - 1

    def split(self, z: Any) -> Tuple[List[Any], Any, Any]:
        """Slice a decision vector (numeric or symbolic) into its blocks.

        Returns:
            Tuple of (six state blocks, steering block, accel block).
        """
        n = self.n_steps
        states = [z[start:start + n] for start in self.state_starts]
        steering = z[self.steering_start:self.steering_start + n - 1]
        accel = z[self.accel_start:self.accel_start + n - 1]
        return states, steering, accel

    def pack(self, states: FloatArray, steering: FloatArray, accel: FloatArray) -> FloatArray:
        """Inverse of split for numeric arrays; states has shape (6, N)."""
        return np.concatenate([np.asarray(states, dtype=float).ravel(), steering, accel])

    def objective(
        self,
        z: Any,
        ops: Any = NUMPY_NLP_OPS,
        previous: Optional[Sequence[Any]] = None,
        continuity: Any = None,
    ) -> Any:
        """Cost of a plan.

        Args:
            z: Decision vector.
            ops: Math namespace.
            previous: Actuation before the first step; defaults to this
                problem's (symbolic backends pass parameters here).
            continuity: 1 to penalize the step from previous, 0 to ignore it.
        """
        if previous is None:
            previous = self.previous
        if continuity is None:
            continuity = self.continuity
        w = self.config.weights
        m = self.n_steps - 1
        (_, _, _, v, cte, epsi), delta, a = self.split(z)
        return (
            w.cte * ops.sumsqr(cte)
            + w.epsi * ops.sumsqr(epsi)
            + w.speed * ops.sumsqr(v - self.config.ref_speed)
            + w.steer * ops.sumsqr(delta)
            + w.accel * ops.sumsqr(a)
            + w.dsteer * ops.sumsqr(delta[1:m] - delta[0:m - 1])
            + w.daccel * ops.sumsqr(a[1:m] - a[0:m - 1])
            + continuity * w.dsteer * (delta[0] - previous[0]) ** 2
            + continuity * w.daccel * (a[0] - previous[1]) ** 2
        )

    def gradient(self, z: FloatArray) -> FloatArray:
        """Analytic gradient of the objective."""
        w = self.config.weights
        n = self.n_steps
        (_, _, _, v, cte, epsi), delta, a = self.split(z)
        grad = np.zeros(self.n_vars)

        grad[3 * n:4 * n] = 2.0 * w.speed * (v - self.config.ref_speed)
        grad[4 * n:5 * n] = 2.0 * w.cte * cte
        grad[5 * n:6 * n] = 2.0 * w.epsi * epsi

        g_delta = 2.0 * w.steer * delta
        d_delta = 2.0 * w.dsteer * np.diff(delta)
        g_delta[1:] += d_delta
        g_delta[:-1] -= d_delta
        g_delta[0] += 2.0 * self.continuity * w.dsteer * (delta[0] - self.previous[0])
        grad[self.steering_start:self.steering_start + n - 1] = g_delta

        g_accel = 2.0 * w.accel * a
        d_accel = 2.0 * w.daccel * np.diff(a)
        g_accel[1:] += d_accel
        g_accel[:-1] -= d_accel
        g_accel[0] += 2.0 * self.continuity * w.daccel * (a[0] - self.previous[1])
        grad[self.accel_start:self.accel_start + n - 1] = g_accel

        return grad

    def constraints(
        self,
        z: Any,
        initial: Optional[Sequence[Any]] = None,
        coeffs: Optional[Sequence[Any]] = None,
        ops: Any = NUMPY_NLP_OPS,
    ) -> Any:
        """Equality constraint residuals g(z); zero at a feasible plan.

        Args:
            z: Decision vector.
            initial: Initial state; defaults to this problem's (symbolic
                backends pass parameters here).
            coeffs: Curve coefficients; defaults to this problem's.
            ops: Math namespace.
        """
        if initial is None:
            initial = self.initial
        if coeffs is None:
            coeffs = self.coeffs
        n = self.n_steps
        states, delta, a = self.split(z)
        previous = [s[0:n - 1] for s in states]
        predicted = step(previous, delta, a, coeffs, self.config.dt, self.config.lf, ops)

        rows = []
        for k in range(6):
            rows.append(states[k][0] - initial[k])
            rows.append(states[k][1:n] - predicted[k])
        return ops.concat(*rows)

    def jacobian(self, z: FloatArray) -> FloatArray:
        """Analytic Jacobian of constraints(), shape (6N, n_vars)."""
        n = self.n_steps
        dt = self.config.dt
        lf = self.config.lf
        (x, y, psi, v, cte, epsi), delta, a = self.split(z)
        X, Y, PSI, V, CTE, EPSI = self.state_starts
        D = self.steering_start
        A = self.accel_start

        jac = np.zeros((self.n_constraints, self.n_vars))
        for start in self.state_starts:
            jac[start, start] = 1.0

        t = np.arange(1, n)
        p = t - 1
        xp, psip, vp, epsip = x[:-1], psi[:-1], v[:-1], epsi[:-1]
        slope = polyslope(self.coeffs, xp)
        for start in self.state_starts:
            jac[start + t, start + t] = 1.0

        rows = X + t
        jac[rows, X + p] = -1.0
        jac[rows, PSI + p] = vp * np.sin(psip) * dt
        jac[rows, V + p] = -np.cos(psip) * dt

        rows = Y + t
        jac[rows, Y + p] = -1.0
        jac[rows, PSI + p] = -vp * np.cos(psip) * dt
        jac[rows, V + p] = -np.sin(psip) * dt

        rows = PSI + t
        jac[rows, PSI + p] = -1.0
        jac[rows, V + p] = delta * dt / lf
        jac[rows, D + p] = vp * dt / lf

        rows = V + t
        jac[rows, V + p] = -1.0
        jac[rows, A + p] = -dt

        rows = CTE + t
        jac[rows, X + p] = -slope
        jac[rows, Y + p] = 1.0
        jac[rows, V + p] = -np.sin(epsip) * dt
        jac[rows, EPSI + p] = -vp * np.cos(epsip) * dt

        rows = EPSI + t
        jac[rows, PSI + p] = -1.0
        jac[rows, X + p] = polycurvature(self.coeffs, xp) / (1.0 + slope**2)
        jac[rows, V + p] = delta * dt / lf
        jac[rows, D + p] = vp * dt / lf

        return jac

    def bounds(self) -> Tuple[FloatArray, FloatArray]:
        """Lower and upper variable bounds (infinite for states)."""
        n = self.n_steps
        lower = np.full(self.n_vars, -np.inf)
        upper = np.full(self.n_vars, np.inf)
        max_rad = self.config.max_steering_rad
        lower[self.steering_start:self.steering_start + n - 1] = -max_rad
        upper[self.steering_start:self.steering_start + n - 1] = max_rad
        lower[self.accel_start:self.accel_start + n - 1] = THROTTLE_MIN
        upper[self.accel_start:self.accel_start + n - 1] = THROTTLE_MAX
        return lower, upper

    def initial_guess(self) -> FloatArray:
        """Feasible starting point: the model rolled out with zero actuation."""
        zeros = np.zeros(self.n_steps - 1)
        return self.rollout(zeros, zeros)

    def rollout(self, steering: npt.ArrayLike, accel: npt.ArrayLike) -> FloatArray:
        """Integrate the model from the initial state under the given actuation.

        Args:
            steering: N-1 steering angles (or a scalar held constant).
            accel: N-1 accelerations (or a scalar held constant).

        Returns:
            Decision vector that satisfies every equality constraint.
        """
        n = self.n_steps
        steering = np.broadcast_to(np.asarray(steering, dtype=float), (n - 1,)).copy()
        accel = np.broadcast_to(np.asarray(accel, dtype=float), (n - 1,)).copy()

        states = np.empty((6, n))
        states[:, 0] = self.initial
        for t in range(1, n):
            states[:, t] = step(
                states[:, t - 1],
                steering[t - 1],
                accel[t - 1],
                self.coeffs,
                self.config.dt,
                self.config.lf,
            )
        return self.pack(states, steering, accel)

    def unpack(self, z: FloatArray) -> HorizonTrajectory:
        states, steering, accel = self.split(np.asarray(z, dtype=float))
        return HorizonTrajectory(*(np.array(s) for s in states), np.array(steering), np.array(accel))


def solve_horizon(
    state: KinematicState,
    curve: ReferenceCurve,
    config: ControllerConfig,
    solver: Optional[NLPSolver] = None,
    warm_start: Optional[npt.ArrayLike] = None,
    previous_actuation: Optional[Tuple[float, float]] = None,
) -> SolveResult:
    """Solve one receding-horizon problem and return the first-step actuation.

    Args:
        state: Latency-compensated initial state in the vehicle frame.
        curve: Reference curve in the vehicle frame.
        config: Controller tunables.
        solver: NLP backend; defaults to the configured backend.
        warm_start: Optional decision vector to start from; defaults to the
            zero-actuation rollout.
        previous_actuation: (steering rad, acceleration) acting on the vehicle
            before the first planned step; its change to the first step is
            penalized like the rate terms within the plan.

    Returns:
        SolveResult of a converged solve.

    Raises:
        SolverFailureError: If the backend reports failure.
        NonFiniteValueError: If the solution contains NaN or Inf.
        ValueError: If warm_start has the wrong size.
    """
    problem = HorizonProblem(state, curve, config, previous_actuation)
    if solver is None:
        solver = get_solver()

    if warm_start is None:
        z0 = problem.initial_guess()
    else:
        z0 = np.asarray(warm_start, dtype=float).ravel()
        if z0.size != problem.n_vars:
            raise ValueError(f"warm_start must have {problem.n_vars} entries, got {z0.size}")

    z, status = solver.solve(problem, z0)
    trajectory = problem.unpack(z)
    if not status.converged:
        raise SolverFailureError(status, trajectory)

    ensure_finite("optimizer solution", z)
    return SolveResult(
        steering=float(trajectory.steering[0]),
        acceleration=float(trajectory.acceleration[0]),
        trajectory=trajectory,
        status=status,
    )
