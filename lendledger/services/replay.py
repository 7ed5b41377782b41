"""Scenario replay — run a YAML script of ledger operations in memory.

A script looks like::

    start_time: 1700000000
    prices: {USDC: "1", WETH: "2000"}
    funding:
      - {account: alice, asset: WETH, amount: "10"}
    steps:
      - deposit: {user: alice, asset: WETH, amount: "10"}
      - borrow: {user: alice, asset: USDC, amount: "12000"}
      - advance: {seconds: 86400}
      - set_price: {asset: WETH, price: "1500"}
      - liquidate: {liquidator: bob, borrower: alice, debt_asset: USDC,
                    collateral_asset: WETH, amount: "3000"}
      - flash_loan: {account: arb, asset: USDC, amount: "1000", repay: true}

Amounts and prices are human decimal strings; they are converted to
integer units with each asset's configured decimals.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import yaml

from ..clock import ManualClock
from ..config import AppConfig
from ..core import LendingCore
from ..custody import InMemoryCustody
from ..fixed_point import to_units, to_wad
from ..oracles import StaticPriceOracle
from ..result import OperationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    """Result of one script step."""

    index: int
    operation: str
    ok: bool
    code: str = "OK"
    value: Any = None
    message: str = ""


class ScriptedFlashReceiver:
    """Flash-loan receiver that either returns amount plus fee or keeps it."""

    def __init__(self, account: str, custody: InMemoryCustody, repay: bool = True) -> None:
        self._account = account
        self._custody = custody
        self._repay = repay

    @property
    def account(self) -> str:
        return self._account

    def on_flash_loan(self, asset_id: str, amount: int, fee: int, payload: Any) -> bool:
        if self._repay:
            self._custody.debit(self._account, asset_id, amount + fee)
        return True


def load_script(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")
    with open(path) as f:
        script = yaml.safe_load(f) or {}
    if not isinstance(script.get("steps", []), list):
        raise ValueError("Scenario 'steps' must be a list")
    return script


class ScenarioRunner:
    """In-memory ledger wired to a manual clock, static prices and custody."""

    def __init__(self, config: AppConfig, start_time: int = 0) -> None:
        self.clock = ManualClock(start_time)
        self.oracle = StaticPriceOracle()
        self.custody = InMemoryCustody()
        self.core = LendingCore.from_config(config, self.oracle, self.custody, self.clock)
        self._decimals = {asset.asset_id: asset.decimals for asset in config.assets}
        self._prices: dict[str, int] = {}
        for asset_id, price in config.price_oracle.static.items():
            self.set_price(asset_id, price)

        self._handlers: dict[str, Callable[[dict[str, Any]], Any]] = {
            "fund": self._fund,
            "advance": self._advance,
            "set_price": self._set_price,
            "deposit": self._deposit,
            "withdraw": self._withdraw,
            "borrow": self._borrow,
            "repay": self._repay,
            "liquidate": self._liquidate,
            "flash_loan": self._flash_loan,
            "health": self._health,
            "market": self._market,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def units(self, asset_id: str, amount: Any) -> int:
        if asset_id not in self._decimals:
            raise ValueError(f"Unknown asset '{asset_id}' in scenario")
        return to_units(amount, self._decimals[asset_id])

    def set_price(self, asset_id: str, price: Any) -> None:
        self._prices[asset_id] = to_wad(price)
        self.oracle.set_price(asset_id, self._prices[asset_id], self.clock.now)

    def _restamp_prices(self) -> None:
        for asset_id, price in self._prices.items():
            self.oracle.set_price(asset_id, price, self.clock.now)

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    def _fund(self, args: dict[str, Any]) -> int:
        amount = self.units(args["asset"], args["amount"])
        self.custody.mint(args["account"], args["asset"], amount)
        return amount

    def _advance(self, args: Any) -> int:
        if not isinstance(args, dict):
            args = {"seconds": args}
        self.clock.advance(int(args["seconds"]))
        if args.get("refresh_prices", True):
            self._restamp_prices()
        return self.clock.now

    def _set_price(self, args: dict[str, Any]) -> int:
        self.set_price(args["asset"], args["price"])
        return self._prices[args["asset"]]

    def _deposit(self, args: dict[str, Any]) -> OperationResult[int]:
        return self.core.deposit(
            args["user"], args["asset"], self.units(args["asset"], args["amount"])
        )

    def _withdraw(self, args: dict[str, Any]) -> OperationResult[int]:
        return self.core.withdraw(
            args["user"], args["asset"], self.units(args["asset"], args["amount"])
        )

    def _borrow(self, args: dict[str, Any]) -> OperationResult[int]:
        return self.core.borrow(
            args["user"], args["asset"], self.units(args["asset"], args["amount"])
        )

    def _repay(self, args: dict[str, Any]) -> OperationResult[int]:
        return self.core.repay(
            args["user"],
            args["asset"],
            self.units(args["asset"], args["amount"]),
            payer=args.get("payer"),
        )

    def _liquidate(self, args: dict[str, Any]) -> OperationResult[Any]:
        return self.core.liquidate(
            args["liquidator"],
            args["borrower"],
            args["debt_asset"],
            args["collateral_asset"],
            self.units(args["debt_asset"], args["amount"]),
            receive_as_supply=bool(args.get("receive_as_supply", False)),
        )

    def _flash_loan(self, args: dict[str, Any]) -> OperationResult[Any]:
        receiver = ScriptedFlashReceiver(
            args["account"], self.custody, repay=bool(args.get("repay", True))
        )
        return self.core.flash_loan(
            receiver,
            args["asset"],
            self.units(args["asset"], args["amount"]),
            args.get("payload"),
        )

    def _health(self, args: dict[str, Any]) -> OperationResult[Any]:
        return self.core.account_snapshot(args["user"])

    def _market(self, args: dict[str, Any]) -> OperationResult[Any]:
        return self.core.market(args["asset"])

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run_step(self, index: int, step: dict[str, Any]) -> StepOutcome:
        if not isinstance(step, dict) or len(step) != 1:
            raise ValueError(f"Step {index} must be a single-key mapping, got {step!r}")
        operation, args = next(iter(step.items()))
        handler = self._handlers.get(operation)
        if handler is None:
            raise ValueError(f"Step {index}: unknown operation '{operation}'")

        try:
            outcome = handler(args)
        except KeyError as e:
            raise ValueError(f"Step {index} ({operation}) is missing {e}") from e

        if isinstance(outcome, OperationResult):
            return StepOutcome(
                index=index,
                operation=operation,
                ok=outcome.ok,
                code=outcome.code,
                value=outcome.value,
                message=outcome.error.message if outcome.error else "",
            )
        return StepOutcome(index=index, operation=operation, ok=True, value=outcome)

    def run(self, steps: list[dict[str, Any]]) -> list[StepOutcome]:
        outcomes = []
        for index, step in enumerate(steps):
            outcome = self.run_step(index, step)
            logger.info(
                "Step %d %s: %s%s",
                index,
                outcome.operation,
                outcome.code,
                f" ({outcome.message})" if outcome.message else "",
            )
            outcomes.append(outcome)
        return outcomes


def run_scenario(config: AppConfig, script: dict[str, Any]) -> tuple[ScenarioRunner, list[StepOutcome]]:
    """Build a runner for the script and execute all of its steps."""
    runner = ScenarioRunner(config, start_time=int(script.get("start_time", 0)))
    for asset_id, price in (script.get("prices") or {}).items():
        runner.set_price(asset_id, price)
    for entry in script.get("funding") or []:
        runner.run_step(-1, {"fund": entry})
    return runner, runner.run(script.get("steps") or [])
