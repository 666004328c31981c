"""
ray_math.py - Integer Fixed-Point Arithmetic for Rates and Ratios

All rates and ratios in lendpool are integers scaled by RAY (10**27 = 1.0).
Amounts are plain integers in the asset's smallest unit. Every function here
multiplies before dividing so no precision is lost to an intermediate floor.

Rounding conventions:
    mul_div      - floor (toward zero for non-negative inputs)
    mul_div_up   - ceiling

Decimal is used only at the edges (to_ray / ray_to_decimal) to turn human
fractions such as Decimal("0.04") into exact ray integers and back.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Union


RAY = 10 ** 27

# Basis points: 10_000 = 100%
PERCENTAGE_FACTOR = 10 ** 4


def _require_int(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be int, got {type(value).__name__}")


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute floor(a * b / denominator) without intermediate rounding.

    Raises:
        ZeroDivisionError: If denominator is zero
        ValueError: If any operand is negative
    """
    _require_int("a", a)
    _require_int("b", b)
    _require_int("denominator", denominator)
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    if a < 0 or b < 0 or denominator < 0:
        raise ValueError(f"mul_div operands must be non-negative: {a}, {b}, {denominator}")
    return a * b // denominator


def mul_div_up(a: int, b: int, denominator: int) -> int:
    """Compute ceil(a * b / denominator) for non-negative operands."""
    _require_int("a", a)
    _require_int("b", b)
    _require_int("denominator", denominator)
    if denominator == 0:
        raise ZeroDivisionError("mul_div_up denominator is zero")
    if a < 0 or b < 0 or denominator < 0:
        raise ValueError(f"mul_div_up operands must be non-negative: {a}, {b}, {denominator}")
    return -(-(a * b) // denominator)


def to_ray(value: Union[Decimal, str, int]) -> int:
    """
    Convert a human fraction to a ray integer, truncating below 1e-27.

    Floats are refused: Decimal("0.04") is exact, 0.04 is not.

    Example:
        to_ray(Decimal("0.8"))  # 800_000_000_000_000_000_000_000_000
    """
    if isinstance(value, float):
        raise TypeError("to_ray does not accept float; pass a Decimal or str")
    if isinstance(value, int) and not isinstance(value, bool):
        return value * RAY
    dec = value if isinstance(value, Decimal) else Decimal(value)
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = (dec * RAY).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def ray_to_decimal(value: int) -> Decimal:
    """Render a ray integer as an exact Decimal fraction."""
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(value) / Decimal(RAY)
