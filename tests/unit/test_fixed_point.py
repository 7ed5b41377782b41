"""Unit tests for scaled-integer math and conversions."""
from __future__ import annotations

import pytest

from lendledger.errors import ArithmeticOverflow, ArithmeticUnderflow
from lendledger.fixed_point import (
    MAX_UINT256,
    WAD,
    Rounding,
    bps_mul,
    checked_add,
    checked_mul,
    checked_sub,
    format_bps,
    format_units,
    format_wad,
    mul_div,
    to_units,
    to_wad,
    wad_div,
    wad_mul,
)


class TestCheckedArithmetic:
    def test_add(self) -> None:
        assert checked_add(2, 3) == 5

    def test_add_overflow(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_add(MAX_UINT256, 1)

    def test_sub_underflow(self) -> None:
        with pytest.raises(ArithmeticUnderflow):
            checked_sub(1, 2)

    def test_sub_to_zero(self) -> None:
        assert checked_sub(7, 7) == 0

    def test_mul_overflow(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            checked_mul(2**200, 2**100)

    def test_negative_operand_rejected(self) -> None:
        with pytest.raises(ArithmeticUnderflow):
            checked_add(-1, 5)


class TestMulDiv:
    def test_floor(self) -> None:
        assert mul_div(10, 1, 3) == 3

    def test_ceil(self) -> None:
        assert mul_div(10, 1, 3, Rounding.CEIL) == 4

    def test_exact_division_ignores_rounding(self) -> None:
        assert mul_div(9, 1, 3, Rounding.CEIL) == 3

    def test_large_intermediate_allowed(self) -> None:
        # a * b exceeds uint256 but the quotient does not
        assert mul_div(MAX_UINT256, WAD, WAD) == MAX_UINT256

    def test_result_overflow(self) -> None:
        with pytest.raises(ArithmeticOverflow):
            mul_div(MAX_UINT256, 2, 1)

    def test_division_by_zero(self) -> None:
        with pytest.raises(ArithmeticOverflow, match="division by zero"):
            mul_div(1, 1, 0)

    def test_ceil_never_below_floor(self) -> None:
        for a, b, c in [(1, 1, 7), (123456789, 987654321, 1000003), (0, 5, 3)]:
            floor = mul_div(a, b, c)
            ceil = mul_div(a, b, c, Rounding.CEIL)
            assert floor <= ceil <= floor + 1


class TestWadHelpers:
    def test_wad_mul(self) -> None:
        assert wad_mul(2 * WAD, WAD // 2) == WAD

    def test_wad_div(self) -> None:
        assert wad_div(WAD, 4 * WAD) == WAD // 4

    def test_bps_mul(self) -> None:
        assert bps_mul(1000, 9) == 0
        assert bps_mul(1000, 9, Rounding.CEIL) == 1
        assert bps_mul(10_000, 5000) == 5000


class TestConversions:
    def test_to_units(self) -> None:
        assert to_units("12.5", 6) == 12_500_000

    def test_to_units_truncates(self) -> None:
        assert to_units("0.0000019", 6) == 1

    def test_to_wad_from_int(self) -> None:
        assert to_wad(3) == 3 * WAD

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError, match="Negative"):
            to_units("-1", 6)

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValueError):
            to_wad("abc")

    def test_infinity_rejected(self) -> None:
        with pytest.raises(ValueError, match="finite"):
            to_wad("Infinity")


class TestFormatting:
    def test_format_units(self) -> None:
        assert format_units(1_234_567_890, 6) == "1,234.5678"

    def test_format_wad_places(self) -> None:
        assert format_wad(WAD + WAD // 2, 2) == "1.50"

    def test_format_units_no_places(self) -> None:
        assert format_units(5 * 10**6 + 1, 6, places=0) == "5"

    def test_format_bps(self) -> None:
        assert format_bps(9500) == "95.00%"
        assert format_bps(10233) == "102.33%"

    def test_format_bps_infinite(self) -> None:
        assert format_bps(MAX_UINT256) == "∞"
