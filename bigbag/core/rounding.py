"""
bigbag Numeric Utilities

Half-up rounding used for every published quantity and the number
format of formula strings.
"""

from __future__ import annotations
import math


def round_half_up(value: float, digits: int = 2) -> float:
    """
    Round half away from zero on the positive side (0.125 -> 0.13).

    Python's round() uses banker's rounding; published quantities use
    half-up so that 2.005-style values match hand calculation.
    """
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round2(value: float) -> float:
    """Round to 2 decimals, half-up."""
    return round_half_up(value, 2)


def round3(value: float) -> float:
    """Round to 3 decimals, half-up."""
    return round_half_up(value, 3)


def fmt_number(value: float) -> str:
    """Format a number for formula strings: integers without trailing .0."""
    if float(value).is_integer():
        return str(int(value))
    return f"{round2(value):g}"

