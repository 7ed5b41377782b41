"""Collateralized lending ledger with utilization-based interest accrual."""
from .config import AppConfig, AssetConfig, LedgerConfig, load_config
from .core import LendingCore
from .result import OperationResult

__all__ = [
    "AppConfig",
    "AssetConfig",
    "LedgerConfig",
    "LendingCore",
    "OperationResult",
    "load_config",
]

__version__ = "0.1.0"
