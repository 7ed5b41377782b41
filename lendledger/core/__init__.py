"""Lending ledger core: registry, rate model, positions, health, operations."""
from .health import HEALTH_FACTOR_MAX, HEALTHY_BPS, HealthEngine
from .lending import LendingCore
from .positions import PositionLedger
from .registry import AssetRegistry

__all__ = [
    "AssetRegistry",
    "HEALTH_FACTOR_MAX",
    "HEALTHY_BPS",
    "HealthEngine",
    "LendingCore",
    "PositionLedger",
]
