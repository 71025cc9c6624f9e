"""Tests for GF(251) arithmetic and interpolation."""

import pytest

from biomark import finite_field
from biomark.finite_field import P, add, evaluate, inverse, lagrange_interpolate, mul, sub


def test_operations_wrap_around_the_prime():
    assert P == 251
    assert add(250, 1) == 0
    assert sub(0, 1) == 250
    assert mul(250, 250) == 1
    assert mul(16, 16) == 5


def test_every_non_zero_element_has_an_inverse():
    for value in range(1, P):
        assert mul(value, inverse(value)) == 1


def test_inverse_known_value():
    assert inverse(2) == 126


def test_inverse_of_zero_raises():
    with pytest.raises(ZeroDivisionError):
        inverse(0)
    with pytest.raises(ZeroDivisionError):
        inverse(251)


def test_evaluate_uses_lowest_degree_first():
    assert evaluate([1, 2, 3], 2) == 17
    assert evaluate([], 5) == 0
    assert evaluate([7], 100) == 7


def test_interpolation_recovers_coefficients():
    coefficients = [12, 0, 250, 99]
    points = [(x, evaluate(coefficients, x)) for x in (3, 17, 120, 249)]
    assert lagrange_interpolate(points) == coefficients


def test_interpolation_of_low_degree_polynomial_has_zero_high_terms():
    coefficients = [5, 3]
    points = [(x, evaluate(coefficients, x)) for x in (1, 2, 3, 4, 5)]
    assert lagrange_interpolate(points) == [5, 3, 0, 0, 0]


def test_interpolation_with_duplicate_x_raises():
    with pytest.raises(ZeroDivisionError):
        lagrange_interpolate([(4, 1), (4, 2)])


def test_interpolation_requires_points():
    with pytest.raises(ValueError):
        finite_field.lagrange_interpolate([])
