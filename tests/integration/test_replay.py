"""Integration tests for scenario replay."""
from __future__ import annotations

from pathlib import Path

import pytest

from lendledger.config import AppConfig, load_config
from lendledger.fixed_point import WAD
from lendledger.models import AccountSnapshot, LiquidationResult
from lendledger.services import ScenarioRunner, load_script, run_scenario

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture()
def project_config() -> AppConfig:
    return load_config(ROOT / "config.yaml")


class TestBundledScenario:
    def test_liquidation_scenario(self, project_config: AppConfig) -> None:
        script = load_script(ROOT / "scenarios" / "liquidation.yaml")
        runner, outcomes = run_scenario(project_config, script)

        codes = [(o.operation, o.code) for o in outcomes]
        assert codes == [
            ("deposit", "OK"),
            ("deposit", "OK"),
            ("borrow", "OK"),
            ("borrow", "INSUFFICIENT_COLLATERAL"),
            ("health", "OK"),
            ("advance", "OK"),
            ("market", "OK"),
            ("set_price", "OK"),
            ("health", "OK"),
            ("liquidate", "OK"),
            ("health", "OK"),
            ("flash_loan", "OK"),
            ("flash_loan", "FLASH_LOAN_NOT_REPAID"),
            ("repay", "OK"),
        ]

        before = outcomes[8].value
        liquidation = outcomes[9].value
        assert isinstance(before, AccountSnapshot)
        assert not before.is_healthy
        assert isinstance(liquidation, LiquidationResult)
        assert liquidation.debt_covered == 5_000 * 10**6
        assert liquidation.health_factor_after > liquidation.health_factor_before
        assert runner.clock.now == 1_700_000_000 + 30 * 86_400


class TestScenarioRunner:
    def test_prices_seeded_from_config(self, sample_app_config: AppConfig) -> None:
        runner = ScenarioRunner(sample_app_config, start_time=50)
        quote = runner.oracle.get_price("COLL")
        assert quote.price == WAD
        assert quote.as_of == 50

    def test_units_use_asset_decimals(self, project_config: AppConfig) -> None:
        runner = ScenarioRunner(project_config)
        assert runner.units("USDC", "1.5") == 1_500_000
        with pytest.raises(ValueError, match="Unknown asset"):
            runner.units("DOGE", "1")

    def test_advance_without_restamp_goes_stale(self, project_config: AppConfig) -> None:
        runner = ScenarioRunner(project_config)
        runner.run_step(0, {"fund": {"account": "a", "asset": "WETH", "amount": "1"}})
        runner.run_step(1, {"deposit": {"user": "a", "asset": "WETH", "amount": "1"}})
        runner.run_step(2, {"advance": {"seconds": 7200, "refresh_prices": False}})
        outcome = runner.run_step(
            3, {"borrow": {"user": "a", "asset": "WETH", "amount": "0.1"}}
        )
        assert outcome.code == "PRICE_STALE"

    def test_advance_accepts_plain_seconds(self, project_config: AppConfig) -> None:
        runner = ScenarioRunner(project_config, start_time=10)
        assert runner.run_step(0, {"advance": 5}).value == 15

    def test_multi_key_step_rejected(self, project_config: AppConfig) -> None:
        runner = ScenarioRunner(project_config)
        with pytest.raises(ValueError, match="single-key"):
            runner.run_step(0, {"advance": 1, "market": {"asset": "USDC"}})

    def test_unknown_operation(self, project_config: AppConfig) -> None:
        runner = ScenarioRunner(project_config)
        with pytest.raises(ValueError, match="unknown operation"):
            runner.run_step(0, {"mint": {}})

    def test_missing_argument(self, project_config: AppConfig) -> None:
        runner = ScenarioRunner(project_config)
        with pytest.raises(ValueError, match="missing"):
            runner.run_step(0, {"deposit": {"user": "a", "asset": "USDC"}})


class TestLoadScript:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_script(tmp_path / "nope.yaml")

    def test_steps_must_be_list(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("steps: {deposit: {}}\n")
        with pytest.raises(ValueError, match="must be a list"):
            load_script(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_script(path) == {}
