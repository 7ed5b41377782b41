"""Ledger data models: mutable ledger records and frozen views."""
from __future__ import annotations

import copy
from dataclasses import dataclass, field

from .config import AssetConfig
from .fixed_point import WAD


@dataclass
class AssetState:
    """Configuration plus global accrual state for one asset.

    Totals are scaled (nominal) amounts; the live amount is
    ``total_scaled * index / WAD``.
    """

    config: AssetConfig
    total_scaled_supplied: int = 0
    total_scaled_borrowed: int = 0
    supply_index: int = WAD
    borrow_index: int = WAD
    reserves: int = 0
    last_accrual_timestamp: int = 0

    @property
    def asset_id(self) -> str:
        return self.config.asset_id


@dataclass
class Position:
    """One user's principal in one asset, with the index at last touch."""

    user: str
    asset_id: str
    principal_supplied: int = 0
    principal_borrowed: int = 0
    supply_index_snapshot: int = 0
    borrow_index_snapshot: int = 0
    last_update_timestamp: int = 0

    @property
    def is_empty(self) -> bool:
        return self.principal_supplied == 0 and self.principal_borrowed == 0


@dataclass
class StateSnapshot:
    """Asset records as they were, plus the journal of touched positions."""

    assets: dict[str, AssetState]
    positions: dict[tuple[str, str], Position | None] = field(default_factory=dict)


@dataclass
class LedgerState:
    """All ledger-owned state; the only thing a rollback has to restore.

    Positions are keyed by user, then asset. ``snapshot`` copies the asset
    records and opens a journal; ``record`` saves a position's prior value
    the first time it changes, so ``restore`` only rewrites what the
    operation touched.
    """

    assets: dict[str, AssetState] = field(default_factory=dict)
    positions: dict[str, dict[str, Position]] = field(default_factory=dict)
    _journal: dict[tuple[str, str], Position | None] | None = field(
        default=None, repr=False, compare=False
    )

    def snapshot(self) -> StateSnapshot:
        snapshot = StateSnapshot(assets=copy.deepcopy(self.assets))
        self._journal = snapshot.positions
        return snapshot

    def record(self, user: str, asset_id: str) -> None:
        if self._journal is None or (user, asset_id) in self._journal:
            return
        position = self.positions.get(user, {}).get(asset_id)
        self._journal[(user, asset_id)] = copy.copy(position)

    def commit(self) -> None:
        self._journal = None

    def restore(self, snapshot: StateSnapshot) -> None:
        self.assets = copy.deepcopy(snapshot.assets)
        for (user, asset_id), original in snapshot.positions.items():
            owned = self.positions.setdefault(user, {})
            if original is None:
                owned.pop(asset_id, None)
            else:
                owned[asset_id] = copy.copy(original)
            if not owned:
                del self.positions[user]


@dataclass(frozen=True)
class PriceQuote:
    """WAD price of one whole token, and the unix time it was observed."""

    price: int
    as_of: int


@dataclass(frozen=True)
class AssetBalance:
    """Single asset within an account view (all values WAD)."""

    asset_id: str
    supplied: int
    borrowed: int
    price: int
    collateral_value: int
    weighted_collateral_value: int
    debt_value: int


@dataclass(frozen=True)
class AccountSnapshot:
    """Aggregated account position across every asset the user touched."""

    user: str
    total_collateral_value: int
    weighted_collateral_value: int
    total_debt_value: int
    health_factor_bps: int
    balances: tuple[AssetBalance, ...] = ()

    @property
    def is_healthy(self) -> bool:
        return self.health_factor_bps >= 10_000


@dataclass(frozen=True)
class MarketView:
    """Point-in-time view of an asset's pool."""

    asset_id: str
    total_supplied: int
    total_borrowed: int
    utilization: int
    borrow_rate: int
    supply_rate: int
    supply_index: int
    borrow_index: int
    reserves: int
    last_accrual_timestamp: int


@dataclass(frozen=True)
class LiquidationResult:
    borrower: str
    liquidator: str
    debt_asset: str
    collateral_asset: str
    debt_covered: int
    collateral_seized: int
    health_factor_before: int
    health_factor_after: int


@dataclass(frozen=True)
class FlashLoanResult:
    asset_id: str
    amount: int
    fee: int
