"""Lending operations over a single serialized ledger state.

Every public method runs inside one gateway (``_execute``) that

* rejects a nested call from the thread already inside an operation,
* serializes callers from other threads on one lock,
* journals the ledger records and custody balances it changes,
  restoring them if the operation fails for any reason,
* turns LendingError into a failed OperationResult.

Inside an operation the order is always: accrue, mutate positions,
validate the post-state, then move real funds through custody.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from ..clock import system_clock
from ..config import AppConfig, AssetConfig, LedgerConfig, validate_ledger
from ..errors import (
    FlashLoanNotRepaid,
    InsufficientBalance,
    InsufficientLiquidity,
    InvalidAmount,
    LendingError,
    OperationDisabled,
    ReentrantCall,
    UserIsHealthy,
)
from ..fixed_point import BPS, Rounding, bps_mul, checked_add, checked_mul, checked_sub, mul_div
from ..interfaces.custody import TokenCustody
from ..interfaces.flash_loan import FlashLoanReceiver
from ..interfaces.price_oracle import PriceOracle
from ..models import (
    AccountSnapshot,
    AssetState,
    FlashLoanResult,
    LedgerState,
    LiquidationResult,
    MarketView,
)
from ..result import OperationResult
from .health import HEALTHY_BPS, HealthEngine
from .positions import PositionLedger
from .registry import AssetRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], int]


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")
    return amount


class LendingCore:
    """Deposit, withdraw, borrow, repay, liquidate and flash-loan."""

    def __init__(
        self,
        oracle: PriceOracle,
        custody: TokenCustody,
        ledger_config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = ledger_config or LedgerConfig()
        validate_ledger(self._config)
        self._oracle = oracle
        self._custody = custody
        self._clock = clock or system_clock

        self._state = LedgerState()
        self.registry = AssetRegistry(self._state, self._config)
        self.positions = PositionLedger(self._state)
        self.health = HealthEngine(
            self.registry, self.positions, oracle, self._config.max_price_age
        )

        self._lock = threading.Lock()
        self._owner: int | None = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        oracle: PriceOracle,
        custody: TokenCustody,
        clock: Clock | None = None,
    ) -> "LendingCore":
        core = cls(oracle, custody, config.ledger, clock)
        for asset in config.assets:
            core.add_asset(asset).unwrap()
        return core

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def state(self) -> LedgerState:
        return self._state

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    @contextmanager
    def _atomic(self, mutating: bool = True) -> Iterator[int]:
        if self._owner == threading.get_ident():
            raise ReentrantCall("a ledger operation is already open on this thread")
        with self._lock:
            self._owner = threading.get_ident()
            state_snapshot = self._state.snapshot()
            # queries only accrue, they never move funds
            custody_snapshot = self._custody.snapshot() if mutating else None
            try:
                yield self._clock()
            except BaseException:
                self._state.restore(state_snapshot)
                if custody_snapshot is not None:
                    self._custody.restore(custody_snapshot)
                raise
            finally:
                self._state.commit()
                self._owner = None

    def _execute(
        self,
        operation: str,
        fn: Callable[[int], T],
        mutating: bool = True,
        **context: Any,
    ) -> OperationResult[T]:
        details = " ".join(f"{k}={v}" for k, v in context.items())
        try:
            with self._atomic(mutating) as now:
                value = fn(now)
        except LendingError as e:
            logger.warning("%s rejected (%s): %s", operation, details, e)
            return OperationResult.failure(e)

        if mutating:
            logger.info("%s committed (%s)", operation, details)
        else:
            logger.debug("%s read (%s)", operation, details)
        return OperationResult.success(value)

    def _accrue_account(self, user: str, now: int, *extra_assets: str) -> None:
        asset_ids = self.positions.assets_for(user)
        for asset_id in extra_assets:
            if asset_id not in asset_ids:
                asset_ids.append(asset_id)
        for asset_id in asset_ids:
            self.registry.accrue(asset_id, now)

    def _require_liquidity(self, asset_id: str, amount: int) -> None:
        available = self._custody.available_liquidity(asset_id)
        if amount > available:
            raise InsufficientLiquidity(
                f"pool holds {available} {asset_id}, {amount} requested"
            )

    def _require_lendable(self, asset: AssetState, amount: int) -> None:
        # reserves and flash-loan fees sit in the pool but belong to no supplier
        unborrowed = max(
            self.registry.total_supplied(asset) - self.registry.total_borrowed(asset), 0
        )
        lendable = min(self._custody.available_liquidity(asset.asset_id), unborrowed)
        if amount > lendable:
            raise InsufficientLiquidity(
                f"{lendable} {asset.asset_id} can be lent, {amount} requested"
            )

    def _require_depositable(self, asset_id: str) -> AssetState:
        asset = self.registry.require_active(asset_id)
        if not asset.config.is_collateral_enabled:
            raise OperationDisabled(f"deposits of {asset_id} are disabled")
        return asset

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def deposit(self, user: str, asset_id: str, amount: int) -> OperationResult[int]:
        def run(now: int) -> int:
            _require_amount(amount)
            asset = self._require_depositable(asset_id)
            self.registry.accrue(asset_id, now)
            self.positions.add_supply(user, asset, amount, now)
            self._custody.debit(user, asset_id, amount)
            return amount

        return self._execute("deposit", run, user=user, asset=asset_id, amount=amount)

    def withdraw(self, user: str, asset_id: str, amount: int) -> OperationResult[int]:
        def run(now: int) -> int:
            _require_amount(amount)
            asset = self.registry.get(asset_id)
            self._accrue_account(user, now, asset_id)
            self.positions.remove_supply(user, asset, amount, now)
            self._require_liquidity(asset_id, amount)
            self.health.require_healthy(user, now)
            self._custody.credit(user, asset_id, amount)
            return amount

        return self._execute("withdraw", run, user=user, asset=asset_id, amount=amount)

    def borrow(self, user: str, asset_id: str, amount: int) -> OperationResult[int]:
        def run(now: int) -> int:
            _require_amount(amount)
            asset = self.registry.require_active(asset_id)
            if not asset.config.is_borrow_enabled:
                raise OperationDisabled(f"borrowing {asset_id} is disabled")
            self._accrue_account(user, now, asset_id)
            self._require_lendable(asset, amount)
            self.positions.add_debt(user, asset, amount, now)
            self.health.require_healthy(user, now)
            self._custody.credit(user, asset_id, amount)
            return amount

        return self._execute("borrow", run, user=user, asset=asset_id, amount=amount)

    def repay(
        self, user: str, asset_id: str, amount: int, payer: str | None = None
    ) -> OperationResult[int]:
        """Repay up to ``amount`` of the user's debt; overpayment is capped.

        ``payer`` funds the repayment and defaults to the user.
        """

        def run(now: int) -> int:
            _require_amount(amount)
            asset = self.registry.get(asset_id)
            self.registry.accrue(asset_id, now)
            owed = self.positions.current_borrowed(user, asset)
            if owed == 0:
                raise InsufficientBalance(f"{user} has no {asset_id} debt")
            paid = min(amount, owed)
            self.positions.remove_debt(user, asset, paid, now)
            self._custody.debit(payer or user, asset_id, paid)
            return paid

        return self._execute(
            "repay", run, user=user, asset=asset_id, amount=amount, payer=payer or user
        )

    # ------------------------------------------------------------------
    # Liquidation
    # ------------------------------------------------------------------

    @staticmethod
    def _collateral_for_debt(
        debt_amount: int,
        debt: AssetState,
        collateral: AssetState,
        debt_price: int,
        collateral_price: int,
    ) -> int:
        """Collateral units worth ``debt_amount`` plus the liquidation bonus."""
        numerator = checked_mul(
            checked_mul(debt_amount, debt_price), 10**collateral.config.decimals
        )
        denominator = checked_mul(
            checked_mul(10**debt.config.decimals, collateral_price), BPS
        )
        return mul_div(
            numerator, BPS + collateral.config.liquidation_bonus_bps, denominator
        )

    @staticmethod
    def _debt_for_collateral(
        collateral_amount: int,
        debt: AssetState,
        collateral: AssetState,
        debt_price: int,
        collateral_price: int,
    ) -> int:
        """Inverse of _collateral_for_debt, rounded up."""
        numerator = checked_mul(
            checked_mul(checked_mul(collateral_amount, collateral_price), 10**debt.config.decimals),
            BPS,
        )
        denominator = checked_mul(
            checked_mul(debt_price, 10**collateral.config.decimals),
            BPS + collateral.config.liquidation_bonus_bps,
        )
        return mul_div(numerator, 1, denominator, Rounding.CEIL)

    def liquidate(
        self,
        liquidator: str,
        borrower: str,
        debt_asset: str,
        collateral_asset: str,
        debt_to_cover: int,
        receive_as_supply: bool = False,
    ) -> OperationResult[LiquidationResult]:
        """Repay part of an unhealthy borrower's debt in exchange for collateral.

        At most ``close_factor_bps`` of the live debt is covered per call and
        never more collateral than the borrower holds is seized. With
        ``receive_as_supply`` the liquidator receives the collateral as a
        supplied position instead of underlying tokens.
        """

        def run(now: int) -> LiquidationResult:
            _require_amount(debt_to_cover)
            debt = self.registry.get(debt_asset)
            collateral = self.registry.get(collateral_asset)
            if receive_as_supply:
                self._require_depositable(collateral_asset)
            self._accrue_account(borrower, now, debt_asset, collateral_asset)

            health_before = self.health.health_factor_bps(borrower, now)
            if health_before >= HEALTHY_BPS:
                raise UserIsHealthy(f"{borrower} health factor is {health_before} bps")

            owed = self.positions.current_borrowed(borrower, debt)
            if owed == 0:
                raise InsufficientBalance(f"{borrower} has no {debt_asset} debt")
            available = self.positions.current_supplied(borrower, collateral)
            if available == 0:
                raise InsufficientBalance(f"{borrower} has no {collateral_asset} collateral")

            covered = min(debt_to_cover, bps_mul(owed, self._config.close_factor_bps))
            debt_price = self.health.price_of(debt_asset, now)
            collateral_price = self.health.price_of(collateral_asset, now)

            seized = self._collateral_for_debt(
                covered, debt, collateral, debt_price, collateral_price
            )
            if seized > available:
                seized = available
                covered = min(
                    covered,
                    self._debt_for_collateral(
                        available, debt, collateral, debt_price, collateral_price
                    ),
                )
            if covered == 0 or seized == 0:
                raise InvalidAmount("liquidation amount rounds to zero")

            self.positions.remove_debt(borrower, debt, covered, now)
            self.positions.remove_supply(borrower, collateral, seized, now)
            if receive_as_supply:
                self.positions.add_supply(liquidator, collateral, seized, now)
            health_after = self.health.health_factor_bps(borrower, now)

            self._custody.debit(liquidator, debt_asset, covered)
            if not receive_as_supply:
                self._custody.credit(liquidator, collateral_asset, seized)

            return LiquidationResult(
                borrower=borrower,
                liquidator=liquidator,
                debt_asset=debt_asset,
                collateral_asset=collateral_asset,
                debt_covered=covered,
                collateral_seized=seized,
                health_factor_before=health_before,
                health_factor_after=health_after,
            )

        return self._execute(
            "liquidate",
            run,
            liquidator=liquidator,
            borrower=borrower,
            debt_asset=debt_asset,
            collateral_asset=collateral_asset,
            amount=debt_to_cover,
        )

    # ------------------------------------------------------------------
    # Flash loan
    # ------------------------------------------------------------------

    def flash_loan(
        self,
        receiver: FlashLoanReceiver,
        asset_id: str,
        amount: int,
        payload: Any = None,
    ) -> OperationResult[FlashLoanResult]:
        """Lend ``amount`` for the duration of the receiver's callback.

        Funds go out before the callback; repayment of amount plus fee is
        checked after it returns. The ledger stays closed to other
        operations for the whole window.
        """

        def run(now: int) -> FlashLoanResult:
            _require_amount(amount)
            asset = self.registry.require_active(asset_id)
            if not asset.config.is_flash_loan_enabled:
                raise OperationDisabled(f"flash loans of {asset_id} are disabled")
            self.registry.accrue(asset_id, now)

            before = self._custody.available_liquidity(asset_id)
            if amount > before:
                raise InsufficientLiquidity(
                    f"pool holds {before} {asset_id}, {amount} requested"
                )
            fee = bps_mul(amount, self._config.flash_loan_fee_bps, Rounding.CEIL)

            self._custody.credit(receiver.account, asset_id, amount)
            try:
                success = receiver.on_flash_loan(asset_id, amount, fee, payload)
            except LendingError as e:
                raise FlashLoanNotRepaid(
                    f"{receiver.account} failed to repay {amount + fee} {asset_id}: {e}"
                ) from e
            after = self._custody.available_liquidity(asset_id)

            if not success or after < checked_add(before, fee):
                raise FlashLoanNotRepaid(
                    f"{receiver.account} returned {after - before + amount} of "
                    f"{amount + fee} {asset_id}"
                )
            asset.reserves = checked_add(asset.reserves, fee)
            return FlashLoanResult(asset_id=asset_id, amount=amount, fee=fee)

        return self._execute(
            "flash_loan", run, receiver=receiver.account, asset=asset_id, amount=amount
        )

    # ------------------------------------------------------------------
    # Queries (accrue first, so they go through the gateway as well)
    # ------------------------------------------------------------------

    def accrue(self, asset_id: str) -> OperationResult[MarketView]:
        def run(now: int) -> MarketView:
            self.registry.accrue(asset_id, now)
            return self.registry.market(asset_id)

        return self._execute("accrue", run, mutating=False, asset=asset_id)

    market = accrue

    def health_factor(self, user: str) -> OperationResult[int]:
        def run(now: int) -> int:
            self._accrue_account(user, now)
            return self.health.health_factor_bps(user, now)

        return self._execute("health_factor", run, mutating=False, user=user)

    def account_snapshot(self, user: str) -> OperationResult[AccountSnapshot]:
        def run(now: int) -> AccountSnapshot:
            self._accrue_account(user, now)
            return self.health.account_snapshot(user, now)

        return self._execute("account_snapshot", run, mutating=False, user=user)

    def supplied_balance(self, user: str, asset_id: str) -> OperationResult[int]:
        def run(now: int) -> int:
            asset = self.registry.accrue(asset_id, now)
            return self.positions.current_supplied(user, asset)

        return self._execute("supplied_balance", run, mutating=False, user=user, asset=asset_id)

    def borrowed_balance(self, user: str, asset_id: str) -> OperationResult[int]:
        def run(now: int) -> int:
            asset = self.registry.accrue(asset_id, now)
            return self.positions.current_borrowed(user, asset)

        return self._execute("borrowed_balance", run, mutating=False, user=user, asset=asset_id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def add_asset(self, config: AssetConfig) -> OperationResult[AssetConfig]:
        def run(now: int) -> AssetConfig:
            return self.registry.add_asset(config, now).config

        return self._execute("add_asset", run, asset=config.asset_id)

    def update_asset_flags(self, asset_id: str, **flags: bool) -> OperationResult[AssetConfig]:
        def run(now: int) -> AssetConfig:
            return self.registry.update_flags(asset_id, **flags)

        return self._execute("update_asset_flags", run, asset=asset_id, **flags)

    def set_rate_model(
        self,
        asset_id: str,
        base_rate_bps: int,
        rate_multiplier_bps: int,
        reserve_factor_bps: int | None = None,
    ) -> OperationResult[AssetConfig]:
        def run(now: int) -> AssetConfig:
            return self.registry.set_rate_model(
                asset_id, now, base_rate_bps, rate_multiplier_bps, reserve_factor_bps
            )

        return self._execute(
            "set_rate_model",
            run,
            asset=asset_id,
            base=base_rate_bps,
            multiplier=rate_multiplier_bps,
        )

    def set_risk_parameters(
        self, asset_id: str, liquidation_threshold_bps: int, liquidation_bonus_bps: int
    ) -> OperationResult[AssetConfig]:
        def run(now: int) -> AssetConfig:
            return self.registry.set_risk_parameters(
                asset_id, liquidation_threshold_bps, liquidation_bonus_bps
            )

        return self._execute("set_risk_parameters", run, asset=asset_id)

    def withdraw_reserves(self, asset_id: str, to: str, amount: int) -> OperationResult[int]:
        """Pay accumulated protocol reserves out to ``to``."""

        def run(now: int) -> int:
            _require_amount(amount)
            asset = self.registry.accrue(asset_id, now)
            if amount > asset.reserves:
                raise InsufficientBalance(
                    f"{asset_id} reserves are {asset.reserves}, requested {amount}"
                )
            self._require_liquidity(asset_id, amount)
            asset.reserves = checked_sub(asset.reserves, amount)
            self._custody.credit(to, asset_id, amount)
            return amount

        return self._execute("withdraw_reserves", run, asset=asset_id, to=to, amount=amount)
