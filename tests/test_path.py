import math

import numpy as np
import pytest

from mpc_control.errors import (
    DegenerateWaypointsError,
    InsufficientPointsError,
    NonFiniteValueError,
)
from mpc_control.path import (
    ReferenceCurve,
    fit_reference_curve,
    polyeval,
    polyslope,
    reference_errors,
)


def test_polyeval_matches_numpy() -> None:
    coeffs = [1.5, -2.0, 0.25, 0.01]
    x = np.linspace(-5.0, 5.0, 11)
    np.testing.assert_allclose(polyeval(coeffs, x), np.polynomial.polynomial.polyval(x, coeffs))


def test_polyslope_is_derivative() -> None:
    coeffs = [1.0, 2.0, 3.0, 4.0]
    assert polyslope(coeffs, 2.0) == pytest.approx(2.0 + 2 * 3.0 * 2.0 + 3 * 4.0 * 4.0)


def test_fit_interpolates_four_points_exactly() -> None:
    xs = [0.0, 5.0, 11.0, 20.0]
    ys = [1.0, -2.0, 4.0, 0.5]
    curve = fit_reference_curve(xs, ys)
    assert len(curve) == 4
    np.testing.assert_allclose(curve(np.array(xs)), ys, atol=1e-9)


def test_fit_recovers_cubic() -> None:
    true_coeffs = [0.5, -0.2, 0.03, -0.001]
    xs = np.linspace(0.0, 30.0, 6)
    ys = polyeval(true_coeffs, xs)
    curve = fit_reference_curve(xs, ys)
    np.testing.assert_allclose(curve.as_array(), true_coeffs, atol=1e-7)


def test_fit_accepts_non_monotonic_x() -> None:
    xs = [10.0, 0.0, 30.0, 20.0, 5.0]
    ys = [x * 0.5 + 1.0 for x in xs]
    curve = fit_reference_curve(xs, ys)
    np.testing.assert_allclose(curve.as_array(), [1.0, 0.5, 0.0, 0.0], atol=1e-7)


def test_three_points_rejected_at_degree_three() -> None:
    with pytest.raises(InsufficientPointsError):
        fit_reference_curve([0.0, 1.0, 2.0], [0.0, 1.0, 2.0])


def test_insufficient_points_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        fit_reference_curve([0.0], [0.0], order=1)


def test_identical_x_rejected() -> None:
    with pytest.raises(DegenerateWaypointsError):
        fit_reference_curve([3.0, 3.0, 3.0, 3.0], [0.0, 1.0, 2.0, 3.0])


def test_too_few_distinct_x_rejected() -> None:
    with pytest.raises(DegenerateWaypointsError):
        fit_reference_curve([0.0, 0.0, 1.0, 1.0], [0.0, 1.0, 2.0, 3.0])


def test_non_finite_waypoints_rejected() -> None:
    with pytest.raises(NonFiniteValueError):
        fit_reference_curve([0.0, 1.0, 2.0, float("nan")], [0.0, 1.0, 2.0, 3.0])


def test_mismatched_lengths_rejected() -> None:
    with pytest.raises(ValueError):
        fit_reference_curve([0.0, 1.0, 2.0, 3.0], [0.0, 1.0, 2.0])


def test_reference_errors_at_origin() -> None:
    curve = ReferenceCurve((0.8, 0.3, 0.01, 0.0))
    cte, epsi = reference_errors(curve)
    assert cte == pytest.approx(0.8)
    assert epsi == pytest.approx(-math.atan(0.3))


def test_reference_errors_away_from_origin() -> None:
    curve = ReferenceCurve((0.0, 1.0, 0.0, 0.0))
    cte, epsi = reference_errors(curve, x=2.0, y=1.0, heading=0.5)
    assert cte == pytest.approx(1.0)
    assert epsi == pytest.approx(0.5 - math.pi / 4)


def test_curve_rejects_non_finite_coefficients() -> None:
    with pytest.raises(NonFiniteValueError):
        ReferenceCurve((0.0, float("inf"), 0.0, 0.0))
