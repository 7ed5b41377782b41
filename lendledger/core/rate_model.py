"""Linear utilization-based interest rate model.

Rates are annualized and WAD-scaled (0.12 * WAD == 12% APR).
"""
from __future__ import annotations

from ..config import AssetConfig
from ..fixed_point import (
    BPS,
    SECONDS_PER_YEAR,
    WAD,
    Rounding,
    bps_mul,
    mul_div,
    wad_mul,
)


def utilization(total_borrowed: int, total_supplied: int) -> int:
    """Borrowed share of supplied funds (WAD), 0 with no supply, capped at 1."""
    if total_supplied == 0:
        return 0
    return min(WAD, mul_div(total_borrowed, WAD, total_supplied))


def borrow_rate(config: AssetConfig, util: int, max_borrow_rate_bps: int) -> int:
    """Annual borrow rate: base + multiplier * utilization, capped."""
    rate = mul_div(config.base_rate_bps * WAD + config.rate_multiplier_bps * util, 1, BPS)
    return min(rate, mul_div(max_borrow_rate_bps, WAD, BPS))


def supply_rate(borrow: int, util: int, reserve_factor_bps: int) -> int:
    """Annual supply rate: borrow rate * utilization * (1 - reserve factor)."""
    return bps_mul(wad_mul(borrow, util), BPS - reserve_factor_bps)


def interest_factor(
    annual_rate: int, elapsed: int, rounding: Rounding = Rounding.FLOOR
) -> int:
    """Simple interest accrued over ``elapsed`` seconds (WAD)."""
    return mul_div(annual_rate, elapsed, SECONDS_PER_YEAR, rounding)


def rate_curve(
    config: AssetConfig, max_borrow_rate_bps: int, points: int = 11
) -> list[tuple[int, int, int]]:
    """(utilization, borrow rate, supply rate) at evenly spaced utilizations."""
    if points < 2:
        raise ValueError("rate curve needs at least two points")
    curve = []
    for i in range(points):
        util = mul_div(i, WAD, points - 1)
        borrow = borrow_rate(config, util, max_borrow_rate_bps)
        curve.append((util, borrow, supply_rate(borrow, util, config.reserve_factor_bps)))
    return curve
