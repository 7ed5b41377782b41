"""Command-line interface for the lending ledger."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import AppConfig, load_config
from .core import rate_model
from .fixed_point import format_bps, format_wad
from .logging_setup import configure_logging
from .models import AccountSnapshot, LiquidationResult, MarketView
from .oracles import PythPriceFeed
from .services import StepOutcome, load_script, run_scenario


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lendledger",
        description="Collateralized lending ledger tools",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    rates_parser = sub.add_parser("rates", help="Print an asset's interest rate curve")
    rates_parser.add_argument("asset", help="Asset id from the config")
    rates_parser.add_argument(
        "--points",
        type=int,
        default=11,
        help="Number of utilization points (default: 11)",
    )

    replay_parser = sub.add_parser("replay", help="Replay a YAML scenario in memory")
    replay_parser.add_argument("script", help="Path to the scenario YAML file")

    sub.add_parser("prices", help="Fetch configured Pyth prices once")

    return parser


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def _pct(wad: int) -> str:
    return f"{format_wad(wad * 100, 2)}%"


def format_outcome(outcome: StepOutcome) -> str:
    prefix = f"[{outcome.index:>3}] {outcome.operation:<11}"
    if not outcome.ok:
        return f"{prefix} FAILED {outcome.code}: {outcome.message}"

    value = outcome.value
    if isinstance(value, AccountSnapshot):
        return (
            f"{prefix} {value.user} collateral={format_wad(value.total_collateral_value, 2)}"
            f" debt={format_wad(value.total_debt_value, 2)}"
            f" HF={format_bps(value.health_factor_bps)}"
        )
    if isinstance(value, MarketView):
        return (
            f"{prefix} {value.asset_id} utilization={_pct(value.utilization)}"
            f" borrow={_pct(value.borrow_rate)} supply={_pct(value.supply_rate)}"
            f" reserves={value.reserves}"
        )
    if isinstance(value, LiquidationResult):
        return (
            f"{prefix} covered={value.debt_covered} seized={value.collateral_seized}"
            f" HF {format_bps(value.health_factor_before)}"
            f" -> {format_bps(value.health_factor_after)}"
        )
    return f"{prefix} OK {value}"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_rates(config: AppConfig, asset_id: str, points: int) -> int:
    try:
        asset = config.asset(asset_id)
    except KeyError:
        print(f"Unknown asset: {asset_id}", file=sys.stderr)
        return 1

    print(f"{asset_id} rate curve (base {asset.base_rate_bps} bps, "
          f"multiplier {asset.rate_multiplier_bps} bps, "
          f"reserve factor {asset.reserve_factor_bps} bps)")
    print(f"{'utilization':>12} {'borrow APR':>12} {'supply APR':>12}")
    for util, borrow, supply in rate_model.rate_curve(
        asset, config.ledger.max_borrow_rate_bps, points
    ):
        print(f"{_pct(util):>12} {_pct(borrow):>12} {_pct(supply):>12}")
    return 0


def _cmd_replay(config: AppConfig, script_path: str) -> int:
    script = load_script(script_path)
    _, outcomes = run_scenario(config, script)
    for outcome in outcomes:
        print(format_outcome(outcome))
    failed = sum(1 for o in outcomes if not o.ok)
    print(f"\n{len(outcomes)} steps, {failed} rejected")
    return 0


async def _cmd_prices(config: AppConfig) -> int:
    feed = PythPriceFeed(config.price_oracle.pyth)
    quotes = await feed.refresh()
    if not quotes:
        print("No prices fetched", file=sys.stderr)
        return 1
    for asset_id, quote in sorted(quotes.items()):
        print(f"{asset_id:<10} {format_wad(quote.price, 6):>20}  as of {quote.as_of}")
    return 0


def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "rates":
        return _cmd_rates(config, args.asset, args.points)
    if args.command == "replay":
        return _cmd_replay(config, args.script)
    if args.command == "prices":
        return asyncio.run(_cmd_prices(config))

    build_parser().print_help()
    return 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(_run(args))
