"""Asset registry — per-asset configuration and interest accrual."""
from __future__ import annotations

import dataclasses
import logging

from ..config import AssetConfig, LedgerConfig, validate_asset
from ..errors import InvalidAsset
from ..fixed_point import WAD, Rounding, bps_mul, checked_add, checked_sub, wad_mul
from ..models import AssetState, LedgerState, MarketView
from . import rate_model

logger = logging.getLogger(__name__)

_FLAG_FIELDS = (
    "is_active",
    "is_borrow_enabled",
    "is_collateral_enabled",
    "is_flash_loan_enabled",
)


class AssetRegistry:
    """Owns the AssetState records inside a LedgerState."""

    def __init__(self, state: LedgerState, ledger_config: LedgerConfig) -> None:
        self._state = state
        self._ledger_config = ledger_config

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, asset_id: str) -> AssetState:
        asset = self._state.assets.get(asset_id)
        if asset is None:
            raise InvalidAsset(f"unknown asset '{asset_id}'")
        return asset

    def require_active(self, asset_id: str) -> AssetState:
        asset = self.get(asset_id)
        if not asset.config.is_active:
            raise InvalidAsset(f"asset '{asset_id}' is not active")
        return asset

    def asset_ids(self) -> list[str]:
        return list(self._state.assets)

    # ------------------------------------------------------------------
    # Live totals
    # ------------------------------------------------------------------

    @staticmethod
    def total_supplied(asset: AssetState) -> int:
        return wad_mul(asset.total_scaled_supplied, asset.supply_index)

    @staticmethod
    def total_borrowed(asset: AssetState) -> int:
        return wad_mul(asset.total_scaled_borrowed, asset.borrow_index, Rounding.CEIL)

    def utilization(self, asset: AssetState) -> int:
        return rate_model.utilization(self.total_borrowed(asset), self.total_supplied(asset))

    def rates(self, asset: AssetState) -> tuple[int, int]:
        """Current annual (borrow, supply) rates for the asset."""
        util = self.utilization(asset)
        borrow = rate_model.borrow_rate(
            asset.config, util, self._ledger_config.max_borrow_rate_bps
        )
        return borrow, rate_model.supply_rate(borrow, util, asset.config.reserve_factor_bps)

    def market(self, asset_id: str) -> MarketView:
        asset = self.get(asset_id)
        borrow, supply = self.rates(asset)
        return MarketView(
            asset_id=asset_id,
            total_supplied=self.total_supplied(asset),
            total_borrowed=self.total_borrowed(asset),
            utilization=self.utilization(asset),
            borrow_rate=borrow,
            supply_rate=supply,
            supply_index=asset.supply_index,
            borrow_index=asset.borrow_index,
            reserves=asset.reserves,
            last_accrual_timestamp=asset.last_accrual_timestamp,
        )

    # ------------------------------------------------------------------
    # Accrual
    # ------------------------------------------------------------------

    def accrue(self, asset_id: str, now: int) -> AssetState:
        """Bring the asset's indices up to ``now``.

        Idempotent within one timestamp; a clock that moves backwards is
        treated the same way so indices never decrease.
        """
        asset = self.get(asset_id)
        if now <= asset.last_accrual_timestamp:
            return asset

        elapsed = now - asset.last_accrual_timestamp
        borrowed_before = self.total_borrowed(asset)
        borrow, supply = self.rates(asset)

        if asset.total_scaled_borrowed:
            borrow_growth = rate_model.interest_factor(borrow, elapsed, Rounding.CEIL)
            supply_growth = rate_model.interest_factor(supply, elapsed)
            asset.borrow_index = wad_mul(
                asset.borrow_index, checked_add(WAD, borrow_growth), Rounding.CEIL
            )
            asset.supply_index = wad_mul(asset.supply_index, checked_add(WAD, supply_growth))

            interest = checked_sub(self.total_borrowed(asset), borrowed_before)
            asset.reserves = checked_add(
                asset.reserves, bps_mul(interest, asset.config.reserve_factor_bps)
            )

        asset.last_accrual_timestamp = now
        logger.debug(
            "Accrued %s over %ds: borrow_index=%d supply_index=%d",
            asset_id,
            elapsed,
            asset.borrow_index,
            asset.supply_index,
        )
        return asset

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def add_asset(self, config: AssetConfig, now: int) -> AssetState:
        validate_asset(config)
        if config.asset_id in self._state.assets:
            raise ValueError(f"Asset '{config.asset_id}' already registered")
        asset = AssetState(config=config, last_accrual_timestamp=now)
        self._state.assets[config.asset_id] = asset
        logger.info("Registered asset %s", config.asset_id)
        return asset

    def update_flags(self, asset_id: str, **flags: bool) -> AssetConfig:
        unknown = set(flags) - set(_FLAG_FIELDS)
        if unknown:
            raise ValueError(f"Unknown asset flags: {sorted(unknown)}")
        asset = self.get(asset_id)
        asset.config = dataclasses.replace(asset.config, **flags)
        logger.info("Updated flags for %s: %s", asset_id, flags)
        return asset.config

    def set_rate_model(
        self,
        asset_id: str,
        now: int,
        base_rate_bps: int,
        rate_multiplier_bps: int,
        reserve_factor_bps: int | None = None,
    ) -> AssetConfig:
        """Change rate parameters; interest up to ``now`` accrues at the old ones."""
        asset = self.accrue(asset_id, now)
        changes = {
            "base_rate_bps": base_rate_bps,
            "rate_multiplier_bps": rate_multiplier_bps,
        }
        if reserve_factor_bps is not None:
            changes["reserve_factor_bps"] = reserve_factor_bps
        config = dataclasses.replace(asset.config, **changes)
        validate_asset(config)
        asset.config = config
        logger.info("Rate model for %s set to %s", asset_id, changes)
        return config

    def set_risk_parameters(
        self,
        asset_id: str,
        liquidation_threshold_bps: int,
        liquidation_bonus_bps: int,
    ) -> AssetConfig:
        asset = self.get(asset_id)
        config = dataclasses.replace(
            asset.config,
            liquidation_threshold_bps=liquidation_threshold_bps,
            liquidation_bonus_bps=liquidation_bonus_bps,
        )
        validate_asset(config)
        asset.config = config
        logger.info(
            "Risk parameters for %s: threshold=%d bonus=%d",
            asset_id,
            liquidation_threshold_bps,
            liquidation_bonus_bps,
        )
        return config
