"""Unit tests for OperationResult and the error taxonomy."""
from __future__ import annotations

import pytest

from lendledger.errors import InsufficientLiquidity, LendingError, PriceStale
from lendledger.result import OperationResult


class TestOperationResult:
    def test_success(self) -> None:
        result = OperationResult.success(5)
        assert result.ok
        assert result.code == "OK"
        assert result.unwrap() == 5

    def test_failure(self) -> None:
        result: OperationResult[int] = OperationResult.failure(PriceStale("old"))
        assert not result.ok
        assert result.code == "PRICE_STALE"
        assert result.value is None
        with pytest.raises(PriceStale):
            result.unwrap()

    def test_frozen(self) -> None:
        result = OperationResult.success(1)
        with pytest.raises(AttributeError):
            result.value = 2  # type: ignore[misc]


class TestLendingError:
    def test_str_includes_code(self) -> None:
        assert str(InsufficientLiquidity("pool empty")) == "INSUFFICIENT_LIQUIDITY: pool empty"

    def test_default_message(self) -> None:
        assert InsufficientLiquidity().message == "INSUFFICIENT_LIQUIDITY"

    def test_subclass(self) -> None:
        assert issubclass(PriceStale, LendingError)
