"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .fixed_point import BPS

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    max_price_age: int = 3600
    close_factor_bps: int = 5000
    flash_loan_fee_bps: int = 9
    max_borrow_rate_bps: int = 100_000


@dataclass(frozen=True)
class AssetConfig:
    """Per-asset risk and rate parameters; flags gate new exposure only."""

    asset_id: str
    decimals: int = 18
    is_active: bool = True
    is_borrow_enabled: bool = True
    is_collateral_enabled: bool = True
    is_flash_loan_enabled: bool = True
    liquidation_threshold_bps: int = 8000
    liquidation_bonus_bps: int = 500
    reserve_factor_bps: int = 1000
    base_rate_bps: int = 0
    rate_multiplier_bps: int = 2000


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    refresh_interval_seconds: int = 30


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "static"
    static: dict[str, str] = field(default_factory=dict)
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class AppConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    assets: tuple[AssetConfig, ...] = ()
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)

    def asset(self, asset_id: str) -> AssetConfig:
        for cfg in self.assets:
            if cfg.asset_id == asset_id:
                return cfg
        raise KeyError(asset_id)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        max_price_age=int(raw.get("max_price_age", 3600)),
        close_factor_bps=int(raw.get("close_factor_bps", 5000)),
        flash_loan_fee_bps=int(raw.get("flash_loan_fee_bps", 9)),
        max_borrow_rate_bps=int(raw.get("max_borrow_rate_bps", 100_000)),
    )


def _as_bool(value: Any) -> bool:
    # env interpolation turns everything into strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def build_asset(asset_id: str, raw: dict[str, Any]) -> AssetConfig:
    defaults = AssetConfig(asset_id=asset_id)
    return AssetConfig(
        asset_id=asset_id,
        decimals=int(raw.get("decimals", defaults.decimals)),
        is_active=_as_bool(raw.get("is_active", True)),
        is_borrow_enabled=_as_bool(raw.get("is_borrow_enabled", True)),
        is_collateral_enabled=_as_bool(raw.get("is_collateral_enabled", True)),
        is_flash_loan_enabled=_as_bool(raw.get("is_flash_loan_enabled", True)),
        liquidation_threshold_bps=int(
            raw.get("liquidation_threshold_bps", defaults.liquidation_threshold_bps)
        ),
        liquidation_bonus_bps=int(
            raw.get("liquidation_bonus_bps", defaults.liquidation_bonus_bps)
        ),
        reserve_factor_bps=int(
            raw.get("reserve_factor_bps", defaults.reserve_factor_bps)
        ),
        base_rate_bps=int(raw.get("base_rate_bps", defaults.base_rate_bps)),
        rate_multiplier_bps=int(
            raw.get("rate_multiplier_bps", defaults.rate_multiplier_bps)
        ),
    )


def _build_assets(raw: dict[str, Any]) -> tuple[AssetConfig, ...]:
    return tuple(build_asset(str(name), cfg or {}) for name, cfg in raw.items())


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "static"),
        static={str(k): str(v) for k, v in raw.get("static", {}).items()},
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
            refresh_interval_seconds=int(
                pyth_raw.get("refresh_interval_seconds", 30)
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        ledger=_build_ledger(raw.get("ledger", {})),
        assets=_build_assets(raw.get("assets", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _check_bps(name: str, value: int, upper: int = BPS) -> None:
    if not 0 <= value <= upper:
        raise ValueError(f"{name} must be within 0..{upper} bps, got {value}")


def validate_ledger(cfg: LedgerConfig) -> None:
    if cfg.max_price_age <= 0:
        raise ValueError("max_price_age must be positive")
    if not 0 < cfg.close_factor_bps <= BPS:
        raise ValueError(f"close_factor_bps must be within 1..{BPS}")
    _check_bps("flash_loan_fee_bps", cfg.flash_loan_fee_bps)
    if cfg.max_borrow_rate_bps <= 0:
        raise ValueError("max_borrow_rate_bps must be positive")


def validate_asset(cfg: AssetConfig) -> None:
    """Raise ValueError on an inconsistent asset configuration."""
    if not cfg.asset_id:
        raise ValueError("Asset id must not be empty")
    if not 0 <= cfg.decimals <= 36:
        raise ValueError(f"Asset '{cfg.asset_id}' has invalid decimals {cfg.decimals}")
    _check_bps(f"{cfg.asset_id}.liquidation_threshold_bps", cfg.liquidation_threshold_bps)
    _check_bps(f"{cfg.asset_id}.liquidation_bonus_bps", cfg.liquidation_bonus_bps)
    _check_bps(f"{cfg.asset_id}.reserve_factor_bps", cfg.reserve_factor_bps)
    if cfg.base_rate_bps < 0 or cfg.rate_multiplier_bps < 0:
        raise ValueError(f"Asset '{cfg.asset_id}' has a negative rate coefficient")


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    validate_ledger(cfg.ledger)

    if not cfg.assets:
        raise ValueError("At least one asset must be configured")

    seen: set[str] = set()
    for asset in cfg.assets:
        if asset.asset_id in seen:
            raise ValueError(f"Asset '{asset.asset_id}' configured twice")
        seen.add(asset.asset_id)
        validate_asset(asset)

    oracle = cfg.price_oracle
    if oracle.provider == "static":
        sources = oracle.static
    elif oracle.provider == "pyth":
        sources = oracle.pyth.feeds
    else:
        raise ValueError(f"Unknown price oracle provider '{oracle.provider}'")

    for asset_id in seen:
        if asset_id not in sources:
            raise ValueError(
                f"Asset '{asset_id}' has no {oracle.provider} price source"
            )
