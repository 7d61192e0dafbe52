"""Floating-point comparisons with a fixed absolute tolerance.

Every "is this value effectively zero / equal" decision made by the polygon
and board modules goes through here, so values derived along slightly
different arithmetic paths (cached centroids, offset vertices, ...) still
compare consistently.
"""

from __future__ import annotations

EPSILON = 1e-7


def is_equal(a: float, b: float) -> bool:
    return abs(a - b) < EPSILON


def is_zero(a: float) -> bool:
    return is_equal(a, 0.0)


def is_greater_than(a: float, b: float) -> bool:
    """Strictly greater, and not merely by rounding noise."""
    return a > b and not is_equal(a, b)


def is_less_than(a: float, b: float) -> bool:
    return is_greater_than(b, a)


def is_less_or_equal(a: float, b: float) -> bool:
    return not is_greater_than(a, b)


def is_greater_or_equal(a: float, b: float) -> bool:
    return not is_less_than(a, b)
