"""Account valuation and health factor gating."""
from __future__ import annotations

import logging

from ..errors import InsufficientCollateral, PriceStale
from ..fixed_point import BPS, MAX_UINT256, Rounding, bps_mul, checked_add, mul_div
from ..interfaces.price_oracle import PriceOracle
from ..models import AccountSnapshot, AssetBalance, AssetState
from .positions import PositionLedger
from .registry import AssetRegistry

logger = logging.getLogger(__name__)

HEALTH_FACTOR_MAX = MAX_UINT256
HEALTHY_BPS = BPS


def asset_value(amount: int, price: int, decimals: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """Value of ``amount`` smallest units at a WAD price, in WAD value units."""
    return mul_div(amount, price, 10**decimals, rounding)


class HealthEngine:
    """Values accounts in a common unit using staleness-checked prices."""

    def __init__(
        self,
        registry: AssetRegistry,
        positions: PositionLedger,
        oracle: PriceOracle,
        max_price_age: int,
    ) -> None:
        self._registry = registry
        self._positions = positions
        self._oracle = oracle
        self._max_price_age = max_price_age

    def price_of(self, asset_id: str, now: int) -> int:
        """Oracle price for the asset, rejected if older than max_price_age."""
        quote = self._oracle.get_price(asset_id)
        age = now - quote.as_of
        if age > self._max_price_age:
            raise PriceStale(
                f"{asset_id} price is {age}s old (max {self._max_price_age}s)"
            )
        if quote.price <= 0:
            raise PriceStale(f"{asset_id} price {quote.price} is not usable")
        return quote.price

    def _balance(self, user: str, asset: AssetState, now: int) -> AssetBalance:
        supplied = self._positions.current_supplied(user, asset)
        borrowed = self._positions.current_borrowed(user, asset)
        price = self.price_of(asset.asset_id, now)
        decimals = asset.config.decimals
        collateral_value = asset_value(supplied, price, decimals)
        return AssetBalance(
            asset_id=asset.asset_id,
            supplied=supplied,
            borrowed=borrowed,
            price=price,
            collateral_value=collateral_value,
            weighted_collateral_value=bps_mul(
                collateral_value, asset.config.liquidation_threshold_bps
            ),
            debt_value=asset_value(borrowed, price, decimals, Rounding.CEIL),
        )

    def account_snapshot(self, user: str, now: int) -> AccountSnapshot:
        balances = tuple(
            self._balance(user, self._registry.get(asset_id), now)
            for asset_id in self._positions.assets_for(user)
        )
        total_collateral = 0
        weighted = 0
        debt = 0
        for balance in balances:
            total_collateral = checked_add(total_collateral, balance.collateral_value)
            weighted = checked_add(weighted, balance.weighted_collateral_value)
            debt = checked_add(debt, balance.debt_value)

        return AccountSnapshot(
            user=user,
            total_collateral_value=total_collateral,
            weighted_collateral_value=weighted,
            total_debt_value=debt,
            health_factor_bps=self._ratio(weighted, debt),
            balances=balances,
        )

    @staticmethod
    def _ratio(weighted: int, debt: int) -> int:
        if debt == 0:
            return HEALTH_FACTOR_MAX
        return mul_div(weighted, BPS, debt)

    def has_debt(self, user: str) -> bool:
        for asset_id in self._positions.assets_for(user):
            position = self._positions.get(user, asset_id)
            if position is not None and position.principal_borrowed:
                return True
        return False

    def health_factor_bps(self, user: str, now: int) -> int:
        # debt-free accounts are healthy whatever the prices say
        if not self.has_debt(user):
            return HEALTH_FACTOR_MAX
        return self.account_snapshot(user, now).health_factor_bps

    def require_healthy(self, user: str, now: int) -> int:
        health = self.health_factor_bps(user, now)
        if health < HEALTHY_BPS:
            raise InsufficientCollateral(
                f"{user} health factor would be {health} bps (< {HEALTHY_BPS})"
            )
        return health
