"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from lendledger.clock import ManualClock
from lendledger.config import AppConfig, AssetConfig, LedgerConfig, PriceOracleConfig
from lendledger.core import LendingCore
from lendledger.custody import InMemoryCustody
from lendledger.fixed_point import WAD
from lendledger.oracles import StaticPriceOracle

START = 1_700_000_000
UNIT = 10**18


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger_config() -> LedgerConfig:
    return LedgerConfig(
        max_price_age=3600,
        close_factor_bps=5000,
        flash_loan_fee_bps=9,
        max_borrow_rate_bps=100_000,
    )


@pytest.fixture()
def coll_config() -> AssetConfig:
    return AssetConfig(
        asset_id="COLL",
        liquidation_threshold_bps=8000,
        liquidation_bonus_bps=500,
    )


@pytest.fixture()
def debt_config() -> AssetConfig:
    return AssetConfig(
        asset_id="DEBT",
        liquidation_threshold_bps=8000,
        liquidation_bonus_bps=500,
        reserve_factor_bps=1000,
        base_rate_bps=200,
        rate_multiplier_bps=2000,
    )


@pytest.fixture()
def sample_app_config(
    ledger_config: LedgerConfig, coll_config: AssetConfig, debt_config: AssetConfig
) -> AppConfig:
    return AppConfig(
        ledger=ledger_config,
        assets=(coll_config, debt_config),
        price_oracle=PriceOracleConfig(
            provider="static", static={"COLL": "1", "DEBT": "1"}
        ),
    )


# ---------------------------------------------------------------------------
# Ledger fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture()
def oracle(clock: ManualClock) -> StaticPriceOracle:
    oracle = StaticPriceOracle()
    oracle.set_price("COLL", WAD, clock.now)
    oracle.set_price("DEBT", WAD, clock.now)
    return oracle


@pytest.fixture()
def custody() -> InMemoryCustody:
    custody = InMemoryCustody()
    for account in ("alice", "bob", "lender", "keeper"):
        custody.mint(account, "COLL", 10_000 * UNIT)
        custody.mint(account, "DEBT", 10_000 * UNIT)
    return custody


@pytest.fixture()
def core(
    sample_app_config: AppConfig,
    oracle: StaticPriceOracle,
    custody: InMemoryCustody,
    clock: ManualClock,
) -> LendingCore:
    return LendingCore.from_config(sample_app_config, oracle, custody, clock)


@pytest.fixture()
def funded_core(core: LendingCore) -> LendingCore:
    """Core with 5000 DEBT of lender liquidity already supplied."""
    core.deposit("lender", "DEBT", 5_000 * UNIT).unwrap()
    return core


@pytest.fixture()
def reprice(oracle: StaticPriceOracle, clock: ManualClock):
    """Re-stamp every quote at the current time, overriding the given ones."""

    def _reprice(**prices: int) -> None:
        for asset_id in ("COLL", "DEBT"):
            price = prices.get(asset_id, oracle.get_price(asset_id).price)
            oracle.set_price(asset_id, price, clock.now)

    return _reprice


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    ledger:
      max_price_age: 600
      close_factor_bps: 5000
      flash_loan_fee_bps: 9
    assets:
      USDC:
        decimals: 6
        liquidation_threshold_bps: 8500
        liquidation_bonus_bps: 400
      WETH:
        decimals: 18
        base_rate_bps: 200
        rate_multiplier_bps: 2000
        is_borrow_enabled: false
    price_oracle:
      provider: static
      static: {USDC: "1", WETH: "2000"}
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {USDC: "aaa", WETH: "bbb"}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
