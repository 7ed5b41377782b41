"""Ledger error taxonomy. Every expected failure is a LendingError."""
from __future__ import annotations


class LendingError(Exception):
    """Base class for failures that abort a ledger operation."""

    code = "LENDING_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class InvalidAsset(LendingError):
    code = "INVALID_ASSET"


class OperationDisabled(LendingError):
    code = "OPERATION_DISABLED"


class InvalidAmount(LendingError):
    code = "INVALID_AMOUNT"


class InsufficientBalance(LendingError):
    code = "INSUFFICIENT_BALANCE"


class InsufficientLiquidity(LendingError):
    code = "INSUFFICIENT_LIQUIDITY"


class InsufficientCollateral(LendingError):
    code = "INSUFFICIENT_COLLATERAL"


class UserIsHealthy(LendingError):
    code = "USER_IS_HEALTHY"


class PriceStale(LendingError):
    code = "PRICE_STALE"


class ArithmeticOverflow(LendingError):
    code = "ARITHMETIC_OVERFLOW"


class ArithmeticUnderflow(LendingError):
    code = "ARITHMETIC_UNDERFLOW"


class FlashLoanNotRepaid(LendingError):
    code = "FLASH_LOAN_NOT_REPAID"


class ReentrantCall(LendingError):
    code = "REENTRANT_CALL"


class CustodyError(LendingError):
    """The custody collaborator refused a transfer."""

    code = "CUSTODY_FAILURE"
