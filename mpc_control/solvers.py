"""NLP solver backends for the horizon problem.

A backend receives a problem object exposing the formulation (objective,
gradient, constraints, Jacobian, bounds, layout) and a starting point, and
returns the candidate solution together with a SolveStatus. The dynamics and
cost never depend on which backend runs them.

Backends:
- IpoptSolver: CasADi nlpsol with IPOPT (interior point). The objective and
  constraints are traced symbolically once per configuration and compiled;
  initial state, previous actuation and curve coefficients enter as NLP
  parameters.
- SlsqpSolver: scipy.optimize.minimize with SLSQP (sequential quadratic
  programming), fed the analytic gradient and constraint Jacobian.
"""

import abc
import logging
import time
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Dict, Optional, Tuple

import casadi as ca
import numpy as np
import numpy.typing as npt
from scipy.optimize import Bounds, minimize

from .config import SOLVER_BACKEND

FloatArray = npt.NDArray[np.float64]

CASADI_OPS = SimpleNamespace(
    sin=ca.sin,
    cos=ca.cos,
    atan=ca.atan,
    sumsqr=ca.sumsqr,
    concat=ca.vertcat,
)
"""Symbolic math namespace used to trace the problem for IPOPT."""

FEASIBILITY_TOLERANCE = 1e-4
"""Largest equality-constraint residual accepted as a valid plan."""


@dataclass(frozen=True)
class SolveStatus:
    """Verdict of one NLP solve.

    Attributes:
        converged: True only if the plan can be applied.
        code: Backend status code (IPOPT return status or SciPy exit mode).
        message: Human-readable status.
        iterations: Iterations used (-1 if unknown).
        solve_time: Wall time spent in the backend (seconds).
        cost: Objective value at the returned point.
        max_violation: Largest absolute equality-constraint residual.
    """

    converged: bool
    code: str
    message: str
    iterations: int
    solve_time: float
    cost: float
    max_violation: float


class NLPSolver(abc.ABC):
    """Interface every NLP backend implements."""

    name = "abstract"

    @abc.abstractmethod
    def solve(self, problem: Any, z0: FloatArray) -> Tuple[FloatArray, SolveStatus]:
        """Solve the problem starting from z0.

        Args:
            problem: HorizonProblem to solve.
            z0: Starting decision vector.

        Returns:
            Tuple of (decision vector, status). The vector is returned even
            when the solve fails; callers must check status.converged.
        """

    def _max_violation(self, problem: Any, z: FloatArray) -> float:
        residual = np.asarray(problem.constraints(z), dtype=float)
        if not np.all(np.isfinite(residual)):
            return float("inf")
        return float(np.max(np.abs(residual)))


class IpoptSolver(NLPSolver):
    """Interior-point backend: CasADi + IPOPT with exact derivatives."""

    name = "ipopt"

    SUCCESS_STATUSES = ("Solve_Succeeded", "Solved_To_Acceptable_Level")

    def __init__(self, print_level: int = 0, extra_options: Optional[Dict[str, Any]] = None):
        """Initialize the backend.

        Args:
            print_level: IPOPT console verbosity (0 = silent).
            extra_options: Additional nlpsol options, merged last.
        """
        self.print_level = print_level
        self.extra_options = dict(extra_options or {})
        self._compiled: Dict[Any, Any] = {}

    def _options(self, config: Any) -> Dict[str, Any]:
        options = {
            "ipopt.print_level": self.print_level,
            "ipopt.sb": "yes",
            "print_time": 0,
            "error_on_fail": False,
            "ipopt.max_iter": config.max_iterations,
            "ipopt.tol": config.tolerance,
            "ipopt.max_cpu_time": config.max_solve_time,
        }
        options.update(self.extra_options)
        return options

    def _compile(self, problem: Any) -> Any:
        key = (problem.config, problem.coeffs.size)
        if key not in self._compiled:
            z = ca.SX.sym("z", problem.n_vars)
            # p = [initial state | previous actuation | continuity | coefficients]
            n_state = problem.initial.size
            n_fixed = n_state + 3
            p = ca.SX.sym("p", n_fixed + problem.coeffs.size)
            initial = [p[i] for i in range(n_state)]
            previous = [p[n_state], p[n_state + 1]]
            coeffs = [p[n_fixed + i] for i in range(problem.coeffs.size)]

            nlp = {
                "x": z,
                "p": p,
                "f": problem.objective(
                    z, ops=CASADI_OPS, previous=previous, continuity=p[n_state + 2]
                ),
                "g": problem.constraints(z, initial=initial, coeffs=coeffs, ops=CASADI_OPS),
            }
            self._compiled[key] = ca.nlpsol("mpc", "ipopt", nlp, self._options(problem.config))
            logging.debug(f"Compiled IPOPT problem with {problem.n_vars} variables")
        return self._compiled[key]

    def solve(self, problem: Any, z0: FloatArray) -> Tuple[FloatArray, SolveStatus]:
        nlp_solver = self._compile(problem)
        lower, upper = problem.bounds()
        params = np.concatenate(
            [problem.initial, problem.previous, [problem.continuity], problem.coeffs]
        )

        start = time.perf_counter()
        try:
            result = nlp_solver(
                x0=z0, p=params, lbx=lower, ubx=upper, lbg=0.0, ubg=0.0
            )
        except RuntimeError as e:
            elapsed = time.perf_counter() - start
            logging.debug(f"IPOPT raised: {e}")
            return z0, SolveStatus(
                False, "RuntimeError", str(e), -1, elapsed, float("nan"), float("inf")
            )
        elapsed = time.perf_counter() - start

        stats = nlp_solver.stats()
        z = np.array(result["x"], dtype=float).ravel()
        code = str(stats.get("return_status", "unknown"))
        violation = self._max_violation(problem, z)
        converged = (
            code in self.SUCCESS_STATUSES
            and np.all(np.isfinite(z))
            and violation <= FEASIBILITY_TOLERANCE
        )
        status = SolveStatus(
            converged=bool(converged),
            code=code,
            message=code.replace("_", " "),
            iterations=int(stats.get("iter_count", -1)),
            solve_time=elapsed,
            cost=float(result["f"]),
            max_violation=violation,
        )
        return z, status


class SlsqpSolver(NLPSolver):
    """SQP backend: SciPy SLSQP with analytic derivatives.

    The objective is divided by its value at the starting point so the
    convergence tolerance is relative regardless of the cost weights.
    """

    name = "slsqp"

    def solve(self, problem: Any, z0: FloatArray) -> Tuple[FloatArray, SolveStatus]:
        config = problem.config
        lower, upper = problem.bounds()
        z_start = np.clip(z0, lower, upper)
        scale = 1.0 / max(1.0, abs(problem.objective(z_start)))

        start = time.perf_counter()
        result = minimize(
            lambda z: scale * problem.objective(z),
            z_start,
            jac=lambda z: scale * problem.gradient(z),
            method="SLSQP",
            bounds=Bounds(lower, upper),
            constraints=[{"type": "eq", "fun": problem.constraints, "jac": problem.jacobian}],
            options={"maxiter": config.max_iterations, "ftol": config.tolerance},
        )
        elapsed = time.perf_counter() - start

        z = np.asarray(result.x, dtype=float)
        violation = self._max_violation(problem, z)
        converged = (
            bool(result.success)
            and np.all(np.isfinite(z))
            and violation <= FEASIBILITY_TOLERANCE
        )
        if elapsed > config.max_solve_time:
            logging.warning(
                f"SLSQP took {elapsed * 1000:.0f} ms, over the {config.max_solve_time * 1000:.0f} ms budget"
            )

        status = SolveStatus(
            converged=bool(converged),
            code=str(result.status),
            message=str(result.message),
            iterations=int(getattr(result, "nit", -1)),
            solve_time=elapsed,
            cost=float(problem.objective(z)),
            max_violation=violation,
        )
        return z, status


SOLVERS = {
    IpoptSolver.name: IpoptSolver,
    SlsqpSolver.name: SlsqpSolver,
}


def get_solver(name: str = SOLVER_BACKEND) -> NLPSolver:
    """Create an NLP backend by name.

    Args:
        name: One of SOLVERS ("ipopt", "slsqp").

    Raises:
        ValueError: If the name is unknown.
    """
    try:
        return SOLVERS[name]()
    except KeyError:
        raise ValueError(f"Unknown solver {name!r}; choose from {sorted(SOLVERS)}") from None
