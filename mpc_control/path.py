"""Local reference path for the MPC controller.

This module fits the polynomial reference curve y = f(x) through the
waypoints expressed in the vehicle frame, and measures how far the vehicle is
from that curve (cross-track error and heading error).

Polynomial evaluation is written with plain arithmetic on a coefficient
sequence so the same functions build symbolic expressions when handed CasADi
symbols.
"""

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .config import POLY_ORDER
from .errors import DegenerateWaypointsError, InsufficientPointsError
from .transform import ensure_finite


def polyeval(coeffs: Sequence[Any], x: Any) -> Any:
    """Evaluate c0 + c1*x + c2*x^2 + ... using Horner's scheme.

    Args:
        coeffs: Coefficients in increasing degree order.
        x: Scalar, numpy array, or symbolic expression.

    Returns:
        Polynomial value with the type of x.
    """
    result = 0.0
    for c in reversed(list(coeffs)):
        result = result * x + c
    return result


def _derivative(coeffs: Sequence[Any]) -> list:
    return [i * c for i, c in enumerate(coeffs)][1:]


def polyslope(coeffs: Sequence[Any], x: Any) -> Any:
    """First derivative f'(x)."""
    return polyeval(_derivative(coeffs), x)


def polycurvature(coeffs: Sequence[Any], x: Any) -> Any:
    """Second derivative f''(x)."""
    return polyeval(_derivative(_derivative(coeffs)), x)


@dataclass(frozen=True)
class ReferenceCurve:
    """Polynomial reference path y = f(x) in the vehicle frame.

    Attributes:
        coefficients: (c0, c1, ..., cn) in increasing degree order.
    """

    coefficients: Tuple[float, ...]

    def __post_init__(self) -> None:
        ensure_finite("reference curve coefficients", self.coefficients)

    @classmethod
    def from_array(cls, coeffs: npt.ArrayLike) -> "ReferenceCurve":
        return cls(tuple(float(c) for c in np.asarray(coeffs, dtype=float).ravel()))

    def __len__(self) -> int:
        return len(self.coefficients)

    def __call__(self, x: Any) -> Any:
        return polyeval(self.coefficients, x)

    def slope(self, x: Any) -> Any:
        return polyslope(self.coefficients, x)

    def curvature_term(self, x: Any) -> Any:
        return polycurvature(self.coefficients, x)

    def as_array(self) -> npt.NDArray[np.float64]:
        return np.array(self.coefficients, dtype=float)


def fit_reference_curve(
    xs: Sequence[float], ys: Sequence[float], order: int = POLY_ORDER
) -> ReferenceCurve:
    """Least-squares fit of a polynomial of fixed degree through waypoints.

    Builds the Vandermonde design matrix A (columns 1, x, x^2, ...) and solves
    A c = y through a QR factorisation of A.

    Args:
        xs: Waypoint x-coordinates (vehicle frame). Need not be monotonic.
        ys: Waypoint y-coordinates (vehicle frame).
        order: Polynomial degree.

    Returns:
        ReferenceCurve with order + 1 coefficients.

    Raises:
        ValueError: If xs and ys differ in length.
        InsufficientPointsError: If fewer than order + 1 points are given.
        DegenerateWaypointsError: If the x-values cannot determine the curve
            (zero spread or too few distinct values).
        NonFiniteValueError: If any input or coefficient is not finite.
    """
    x_arr = np.asarray(xs, dtype=float).ravel()
    y_arr = np.asarray(ys, dtype=float).ravel()
    if x_arr.size != y_arr.size:
        raise ValueError(f"xs and ys must have equal length, got {x_arr.size} and {y_arr.size}")
    if x_arr.size < order + 1:
        raise InsufficientPointsError(x_arr.size, order)
    ensure_finite("waypoints", x_arr, y_arr)

    if np.ptp(x_arr) == 0.0:
        raise DegenerateWaypointsError(f"All waypoint x-values are equal ({x_arr[0]})")

    design = np.vander(x_arr, order + 1, increasing=True)
    q, r = np.linalg.qr(design)

    # Rank check on the triangular factor: repeated x-values leave it singular
    diag = np.abs(np.diag(r))
    if diag.min() <= np.finfo(float).eps * diag.max() * max(design.shape):
        raise DegenerateWaypointsError(
            f"Waypoints have fewer than {order + 1} distinct x-values: {np.unique(x_arr)}"
        )

    coeffs = np.linalg.solve(r, q.T @ y_arr)
    return ReferenceCurve.from_array(coeffs)


def reference_errors(
    curve: ReferenceCurve, x: float = 0.0, y: float = 0.0, heading: float = 0.0
) -> Tuple[float, float]:
    """Cross-track and heading error of a vehicle-frame pose against the curve.

    cte  = f(x) - y
    epsi = heading - atan(f'(x))

    At the ego origin this reduces to cte = c0 and epsi = -atan(c1).

    Args:
        curve: Fitted reference curve.
        x: Vehicle x in the vehicle frame (0 after transform).
        y: Vehicle y in the vehicle frame (0 after transform).
        heading: Vehicle heading in the vehicle frame (0 after transform).

    Returns:
        Tuple of (cte, epsi).
    """
    cte = float(curve(x)) - y
    epsi = heading - float(np.arctan(curve.slope(x)))
    ensure_finite("reference errors", cte, epsi)
    return cte, epsi
