"""Scaled-integer arithmetic with explicit rounding and no wrapping.

All ratios, rates and indices are unsigned integers scaled by ``WAD``
(1e18); risk parameters are basis points scaled by ``BPS``.

Rounding convention used by the rest of the ledger:
    amounts owed to the protocol (debt, fees)  -> Rounding.CEIL
    amounts owed to a user (balances, payouts) -> Rounding.FLOOR
"""
from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from enum import Enum
from typing import Union

from .errors import ArithmeticOverflow, ArithmeticUnderflow

WAD = 10**18
BPS = 10_000
SECONDS_PER_YEAR = 365 * 24 * 60 * 60
MAX_UINT256 = 2**256 - 1

Numeric = Union[str, int, Decimal]


class Rounding(Enum):
    FLOOR = "floor"
    CEIL = "ceil"


def _check_operands(*values: int) -> None:
    for value in values:
        if value < 0:
            raise ArithmeticUnderflow(f"negative operand {value}")
        if value > MAX_UINT256:
            raise ArithmeticOverflow(f"operand {value} exceeds uint256")


def _check_result(value: int) -> int:
    if value > MAX_UINT256:
        raise ArithmeticOverflow(f"result {value} exceeds uint256")
    return value


def checked_add(a: int, b: int) -> int:
    _check_operands(a, b)
    return _check_result(a + b)


def checked_sub(a: int, b: int) -> int:
    _check_operands(a, b)
    if b > a:
        raise ArithmeticUnderflow(f"{a} - {b} is negative")
    return a - b


def checked_mul(a: int, b: int) -> int:
    _check_operands(a, b)
    return _check_result(a * b)


def mul_div(a: int, b: int, c: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """Compute ``a * b / c`` at full precision with the given rounding.

    The intermediate product may exceed uint256; only the result is bounded.
    """
    _check_operands(a, b, c)
    if c == 0:
        raise ArithmeticOverflow("division by zero")
    quotient, remainder = divmod(a * b, c)
    if remainder and rounding is Rounding.CEIL:
        quotient += 1
    return _check_result(quotient)


def wad_mul(a: int, b: int, rounding: Rounding = Rounding.FLOOR) -> int:
    return mul_div(a, b, WAD, rounding)


def wad_div(a: int, b: int, rounding: Rounding = Rounding.FLOOR) -> int:
    return mul_div(a, WAD, b, rounding)


def bps_mul(a: int, bps: int, rounding: Rounding = Rounding.FLOOR) -> int:
    return mul_div(a, bps, BPS, rounding)


# ---------------------------------------------------------------------------
# Conversion helpers (config files, replay scripts, display)
# ---------------------------------------------------------------------------


def _to_decimal(value: Numeric) -> Decimal:
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal number: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    if result < 0:
        raise ValueError(f"Negative value not allowed: {value!r}")
    return result


def to_units(value: Numeric, decimals: int) -> int:
    """Convert a human amount ("12.5") to integer units at ``decimals`` (floor)."""
    scaled = _to_decimal(value).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def to_wad(value: Numeric) -> int:
    """Convert a human number ("0.95") to a WAD-scaled integer (floor)."""
    return to_units(value, 18)


def format_units(value: int, decimals: int, places: int = 4) -> str:
    """Render integer units as a fixed-point string, truncated to ``places``."""
    whole, frac = divmod(value, 10**decimals)
    if places <= 0:
        return f"{whole:,}"
    frac_str = str(frac).rjust(decimals, "0")[:places].ljust(places, "0")
    return f"{whole:,}.{frac_str}"


def format_wad(value: int, places: int = 4) -> str:
    return format_units(value, 18, places)


def format_bps(value: int) -> str:
    """Render basis points as a percentage, e.g. 9500 -> '95.00%'."""
    if value >= MAX_UINT256:
        return "∞"
    return f"{value // 100}.{value % 100:02d}%"
