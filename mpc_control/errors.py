"""Exceptions raised by the control pipeline.

Every exception derives from ``ControlError`` so the control loop can drop a
frame with a single handler, and from the closest builtin so callers that only
know the standard hierarchy still catch them.
"""

from typing import Any, Optional


class ControlError(Exception):
    """Base class for errors that invalidate one control cycle."""


class InsufficientPointsError(ControlError, ValueError):
    """Too few waypoints to fit the reference polynomial."""

    def __init__(self, n_points: int, order: int) -> None:
        super().__init__(
            f"Need at least {order + 1} waypoints to fit a degree-{order} curve, got {n_points}"
        )
        self.n_points = n_points
        self.order = order


class DegenerateWaypointsError(ControlError, ValueError):
    """Waypoint x-values cannot determine the reference polynomial."""


class MalformedTelemetryError(ControlError, ValueError):
    """Telemetry record is missing fields or carries invalid values."""


class NonFiniteValueError(ControlError, ArithmeticError):
    """A NaN or infinite value was produced inside the pipeline."""


class SolverFailureError(ControlError, RuntimeError):
    """The NLP solver did not converge to a valid plan.

    Attributes:
        status: SolveStatus reported by the backend.
        trajectory: Last (unconverged) HorizonTrajectory, for diagnostics only.
    """

    def __init__(self, status: Any, trajectory: Optional[Any] = None) -> None:
        super().__init__(f"Solver failed: {status.message} (code {status.code})")
        self.status = status
        self.trajectory = trajectory
