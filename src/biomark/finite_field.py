"""
Arithmetic over the prime field GF(251).

All operations take and return plain integers reduced into ``[0, 250]``.
Polynomials are sequences of coefficients, lowest degree first.
"""

from typing import List, Sequence, Tuple

from .constants import FIELD_PRIME

P = FIELD_PRIME


def add(a: int, b: int) -> int:
    return (a + b) % P


def sub(a: int, b: int) -> int:
    return (a - b) % P


def mul(a: int, b: int) -> int:
    return (a * b) % P


def inverse(a: int) -> int:
    """
    Multiplicative inverse via the extended Euclidean algorithm.

    Raises
    ------
    ZeroDivisionError
        If ``a`` is congruent to zero.

    Examples
    --------
    >>> inverse(2)
    126
    >>> mul(2, inverse(2))
    1
    """
    a %= P
    if a == 0:
        raise ZeroDivisionError("0 has no inverse in GF(251)")

    old_r, r = a, P
    old_s, s = 1, 0
    while r != 0:
        quotient = old_r // r
        old_r, r = r, old_r - quotient * r
        old_s, s = s, old_s - quotient * s

    return old_s % P


def evaluate(coefficients: Sequence[int], x: int) -> int:
    """Evaluate a polynomial at ``x`` with Horner's rule."""
    result = 0
    for coefficient in reversed(coefficients):
        result = add(mul(result, x), coefficient)
    return result


def _multiply_polynomials(left: Sequence[int], right: Sequence[int]) -> List[int]:
    product = [0] * (len(left) + len(right) - 1)
    for i, a in enumerate(left):
        for j, b in enumerate(right):
            product[i + j] = add(product[i + j], mul(a, b))
    return product


def lagrange_interpolate(points: Sequence[Tuple[int, int]]) -> List[int]:
    """
    Coefficients of the unique polynomial of degree < n through n points.

    Parameters
    ----------
    points : Sequence[Tuple[int, int]]
        ``(x, y)`` pairs with pairwise distinct x.

    Returns
    -------
    List[int]
        ``len(points)`` coefficients, lowest degree first.

    Raises
    ------
    ZeroDivisionError
        If two points share an x coordinate.
    ValueError
        If ``points`` is empty.
    """
    if not points:
        raise ValueError("At least one point is required for interpolation")

    coefficients = [0] * len(points)
    for i, (xi, yi) in enumerate(points):
        basis = [1]
        denominator = 1
        for j, (xj, _) in enumerate(points):
            if i == j:
                continue
            basis = _multiply_polynomials(basis, [(-xj) % P, 1])
            denominator = mul(denominator, sub(xi, xj))

        scale = mul(yi, inverse(denominator))
        for k, term in enumerate(basis):
            coefficients[k] = add(coefficients[k], mul(term, scale))

    return coefficients
