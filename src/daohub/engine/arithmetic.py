"""Checked unsigned arithmetic for weights, tallies and balances.

Values are whole-unit integers bounded by an unsigned 128-bit ceiling.
Nothing wraps: exceeding the ceiling raises ArithmeticOverflow, going
below zero raises it too. Division floors.
"""

from __future__ import annotations

from daohub.errors import ArithmeticOverflow

UINT128_MAX = (1 << 128) - 1


def check_uint(value: int) -> int:
    """Assert ``value`` is an integer in [0, UINT128_MAX]."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Expected int, got {type(value).__name__}")
    if value < 0 or value > UINT128_MAX:
        raise ArithmeticOverflow(f"Value out of uint128 range: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    result = check_uint(a) + check_uint(b)
    if result > UINT128_MAX:
        raise ArithmeticOverflow(f"Addition overflow: {a} + {b}")
    return result


def checked_sub(a: int, b: int) -> int:
    if check_uint(b) > check_uint(a):
        raise ArithmeticOverflow(f"Subtraction underflow: {a} - {b}")
    return a - b


def checked_mul(a: int, b: int) -> int:
    result = check_uint(a) * check_uint(b)
    if result > UINT128_MAX:
        raise ArithmeticOverflow(f"Multiplication overflow: {a} * {b}")
    return result


def floor_div(a: int, b: int) -> int:
    if check_uint(b) == 0:
        raise ZeroDivisionError("Division by zero")
    return check_uint(a) // b


def basis_point_share(total: int, bp: int, scale: int) -> int:
    """floor(total * bp / scale), with the product checked for overflow."""
    return floor_div(checked_mul(total, bp), scale)
