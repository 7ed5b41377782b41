"""Unit tests for the asset registry: lookup, accrual and administration."""
from __future__ import annotations

import pytest

from lendledger.config import AssetConfig, LedgerConfig
from lendledger.core import AssetRegistry, PositionLedger
from lendledger.errors import InvalidAsset
from lendledger.fixed_point import SECONDS_PER_YEAR, WAD
from lendledger.models import LedgerState

UNIT = 10**18
T0 = 1_000


@pytest.fixture()
def state() -> LedgerState:
    return LedgerState()


@pytest.fixture()
def registry(state: LedgerState) -> AssetRegistry:
    registry = AssetRegistry(state, LedgerConfig())
    registry.add_asset(
        AssetConfig(
            asset_id="DEBT",
            base_rate_bps=200,
            rate_multiplier_bps=2000,
            reserve_factor_bps=1000,
        ),
        T0,
    )
    return registry


@pytest.fixture()
def positions(state: LedgerState) -> PositionLedger:
    return PositionLedger(state)


def _half_utilized(registry: AssetRegistry, positions: PositionLedger) -> None:
    asset = registry.get("DEBT")
    positions.add_supply("lender", asset, 1000 * UNIT, T0)
    positions.add_debt("borrower", asset, 500 * UNIT, T0)


class TestLookup:
    def test_unknown_asset(self, registry: AssetRegistry) -> None:
        with pytest.raises(InvalidAsset):
            registry.get("NOPE")

    def test_inactive_asset(self, registry: AssetRegistry) -> None:
        registry.update_flags("DEBT", is_active=False)
        assert registry.get("DEBT").config.is_active is False
        with pytest.raises(InvalidAsset, match="not active"):
            registry.require_active("DEBT")

    def test_asset_ids(self, registry: AssetRegistry) -> None:
        assert registry.asset_ids() == ["DEBT"]


class TestAccrual:
    def test_one_year_at_half_utilization(
        self, registry: AssetRegistry, positions: PositionLedger
    ) -> None:
        _half_utilized(registry, positions)

        asset = registry.accrue("DEBT", T0 + SECONDS_PER_YEAR)

        assert asset.borrow_index == WAD * 112 // 100
        assert asset.supply_index == WAD * 1054 // 1000
        assert asset.reserves == 6 * UNIT
        assert registry.total_borrowed(asset) == 560 * UNIT
        assert asset.last_accrual_timestamp == T0 + SECONDS_PER_YEAR

    def test_idempotent_within_timestamp(
        self, registry: AssetRegistry, positions: PositionLedger
    ) -> None:
        _half_utilized(registry, positions)
        registry.accrue("DEBT", T0 + 3600)
        first = registry.market("DEBT")
        registry.accrue("DEBT", T0 + 3600)
        assert registry.market("DEBT") == first

    def test_backwards_clock_is_noop(
        self, registry: AssetRegistry, positions: PositionLedger
    ) -> None:
        _half_utilized(registry, positions)
        registry.accrue("DEBT", T0 + 3600)
        before = registry.market("DEBT")
        registry.accrue("DEBT", T0)
        assert registry.market("DEBT") == before

    def test_indices_never_decrease(
        self, registry: AssetRegistry, positions: PositionLedger
    ) -> None:
        _half_utilized(registry, positions)
        last = registry.market("DEBT")
        for step in range(1, 10):
            registry.accrue("DEBT", T0 + step * 86_400)
            current = registry.market("DEBT")
            assert current.borrow_index >= last.borrow_index
            assert current.supply_index >= last.supply_index
            last = current

    def test_no_growth_without_debt(self, registry: AssetRegistry, positions: PositionLedger) -> None:
        positions.add_supply("lender", registry.get("DEBT"), 1000 * UNIT, T0)
        asset = registry.accrue("DEBT", T0 + SECONDS_PER_YEAR)
        assert asset.borrow_index == WAD
        assert asset.supply_index == WAD
        assert asset.reserves == 0

    def test_split_accrual_at_least_single_step(
        self, registry: AssetRegistry, positions: PositionLedger, state: LedgerState
    ) -> None:
        _half_utilized(registry, positions)
        snapshot = state.snapshot()

        registry.accrue("DEBT", T0 + SECONDS_PER_YEAR)
        single = registry.get("DEBT").borrow_index

        state.restore(snapshot)
        registry.accrue("DEBT", T0 + SECONDS_PER_YEAR // 2)
        registry.accrue("DEBT", T0 + SECONDS_PER_YEAR)
        assert registry.get("DEBT").borrow_index >= single


class TestMarketView:
    def test_market(self, registry: AssetRegistry, positions: PositionLedger) -> None:
        _half_utilized(registry, positions)
        view = registry.market("DEBT")
        assert view.total_supplied == 1000 * UNIT
        assert view.total_borrowed == 500 * UNIT
        assert view.utilization == WAD // 2
        assert view.borrow_rate == WAD * 12 // 100
        assert view.supply_rate == WAD * 54 // 1000


class TestAdministration:
    def test_duplicate_asset(self, registry: AssetRegistry) -> None:
        with pytest.raises(ValueError, match="already registered"):
            registry.add_asset(AssetConfig(asset_id="DEBT"), T0)

    def test_invalid_asset_config(self, registry: AssetRegistry) -> None:
        with pytest.raises(ValueError, match="liquidation_threshold_bps"):
            registry.add_asset(
                AssetConfig(asset_id="BAD", liquidation_threshold_bps=12_000), T0
            )

    def test_unknown_flag(self, registry: AssetRegistry) -> None:
        with pytest.raises(ValueError, match="Unknown asset flags"):
            registry.update_flags("DEBT", is_frozen=True)

    def test_set_rate_model_accrues_first(
        self, registry: AssetRegistry, positions: PositionLedger
    ) -> None:
        _half_utilized(registry, positions)
        config = registry.set_rate_model("DEBT", T0 + SECONDS_PER_YEAR, 0, 0)
        asset = registry.get("DEBT")
        assert config.base_rate_bps == 0
        assert asset.borrow_index == WAD * 112 // 100

        # zero-rate model: no further growth
        registry.accrue("DEBT", T0 + 2 * SECONDS_PER_YEAR)
        assert asset.borrow_index == WAD * 112 // 100

    def test_set_risk_parameters(self, registry: AssetRegistry) -> None:
        config = registry.set_risk_parameters("DEBT", 7500, 800)
        assert config.liquidation_threshold_bps == 7500
        assert config.liquidation_bonus_bps == 800
