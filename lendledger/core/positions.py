"""Per-(user, asset) principal bookkeeping against the asset indices."""
from __future__ import annotations

import logging

from ..errors import InsufficientBalance
from ..fixed_point import WAD, Rounding, checked_add, checked_sub, mul_div
from ..models import AssetState, LedgerState, Position

logger = logging.getLogger(__name__)


def _scaled_supply(position: Position) -> int:
    if not position.supply_index_snapshot:
        return 0
    return mul_div(position.principal_supplied, WAD, position.supply_index_snapshot)


def _scaled_debt(position: Position) -> int:
    if not position.borrow_index_snapshot:
        return 0
    return mul_div(
        position.principal_borrowed, WAD, position.borrow_index_snapshot, Rounding.CEIL
    )


class PositionLedger:
    """Owns the Position records inside a LedgerState.

    Every principal change goes through ``_apply``, which removes the
    position's scaled contribution from the asset totals, re-bases the
    position, applies the delta and adds the new contribution back. The
    asset totals are therefore always the exact sum of the positions.
    """

    def __init__(self, state: LedgerState) -> None:
        self._state = state

    def get(self, user: str, asset_id: str) -> Position | None:
        return self._state.positions.get(user, {}).get(asset_id)

    def _get_or_create(self, user: str, asset_id: str) -> Position:
        owned = self._state.positions.setdefault(user, {})
        position = owned.get(asset_id)
        if position is None:
            position = Position(user=user, asset_id=asset_id)
            owned[asset_id] = position
        return position

    # ------------------------------------------------------------------
    # Live balances
    # ------------------------------------------------------------------

    def current_supplied(self, user: str, asset: AssetState) -> int:
        position = self.get(user, asset.asset_id)
        if position is None or not position.supply_index_snapshot:
            return 0
        return mul_div(
            position.principal_supplied, asset.supply_index, position.supply_index_snapshot
        )

    def current_borrowed(self, user: str, asset: AssetState) -> int:
        position = self.get(user, asset.asset_id)
        if position is None or not position.borrow_index_snapshot:
            return 0
        return mul_div(
            position.principal_borrowed,
            asset.borrow_index,
            position.borrow_index_snapshot,
            Rounding.CEIL,
        )

    def assets_for(self, user: str) -> list[str]:
        """Assets in which the user holds nonzero supplied or borrowed principal."""
        return [
            asset_id
            for asset_id, position in self._state.positions.get(user, {}).items()
            if not position.is_empty
        ]

    def positions_for_asset(self, asset_id: str) -> list[Position]:
        return [
            owned[asset_id]
            for owned in self._state.positions.values()
            if asset_id in owned and not owned[asset_id].is_empty
        ]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def touch(self, user: str, asset: AssetState, now: int) -> Position:
        """Fold accrued interest into principal and reset the snapshots."""
        return self._apply(user, asset, now)

    def _rebase(self, user: str, asset: AssetState, now: int) -> Position:
        supplied = self.current_supplied(user, asset)
        borrowed = self.current_borrowed(user, asset)
        position = self._get_or_create(user, asset.asset_id)
        position.principal_supplied = supplied
        position.principal_borrowed = borrowed
        position.supply_index_snapshot = asset.supply_index
        position.borrow_index_snapshot = asset.borrow_index
        position.last_update_timestamp = now
        return position

    def _apply(
        self,
        user: str,
        asset: AssetState,
        now: int,
        supply_delta: int = 0,
        debt_delta: int = 0,
    ) -> Position:
        self._state.record(user, asset.asset_id)
        existing = self.get(user, asset.asset_id)
        old_supply = _scaled_supply(existing) if existing else 0
        old_debt = _scaled_debt(existing) if existing else 0

        position = self._rebase(user, asset, now)
        if supply_delta >= 0:
            position.principal_supplied = checked_add(position.principal_supplied, supply_delta)
        else:
            position.principal_supplied = checked_sub(position.principal_supplied, -supply_delta)
        if debt_delta >= 0:
            position.principal_borrowed = checked_add(position.principal_borrowed, debt_delta)
        else:
            position.principal_borrowed = checked_sub(position.principal_borrowed, -debt_delta)

        asset.total_scaled_supplied = checked_add(
            checked_sub(asset.total_scaled_supplied, old_supply), _scaled_supply(position)
        )
        asset.total_scaled_borrowed = checked_add(
            checked_sub(asset.total_scaled_borrowed, old_debt), _scaled_debt(position)
        )
        return position

    def add_supply(self, user: str, asset: AssetState, amount: int, now: int) -> Position:
        return self._apply(user, asset, now, supply_delta=amount)

    def remove_supply(self, user: str, asset: AssetState, amount: int, now: int) -> Position:
        available = self.current_supplied(user, asset)
        if amount > available:
            raise InsufficientBalance(
                f"{user} has {available} {asset.asset_id} supplied, requested {amount}"
            )
        return self._apply(user, asset, now, supply_delta=-amount)

    def add_debt(self, user: str, asset: AssetState, amount: int, now: int) -> Position:
        return self._apply(user, asset, now, debt_delta=amount)

    def remove_debt(self, user: str, asset: AssetState, amount: int, now: int) -> Position:
        owed = self.current_borrowed(user, asset)
        if amount > owed:
            raise InsufficientBalance(
                f"{user} owes {owed} {asset.asset_id}, cannot repay {amount}"
            )
        return self._apply(user, asset, now, debt_delta=-amount)
