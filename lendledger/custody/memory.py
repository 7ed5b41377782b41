"""In-memory token custody with account balances and one pool per asset."""
from __future__ import annotations

import logging
from typing import Any

from ..errors import CustodyError

logger = logging.getLogger(__name__)


class InMemoryCustody:
    """Reference custody used by tests, the replay tool and local runs."""

    def __init__(self) -> None:
        self._balances: dict[tuple[str, str], int] = {}
        self._pools: dict[str, int] = {}
        self._journal: dict[str, dict] | None = None

    def mint(self, account: str, asset_id: str, amount: int) -> None:
        """Create external funds for an account (test and scenario setup)."""
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        key = (account, asset_id)
        self._remember(account, asset_id)
        self._balances[key] = self._balances.get(key, 0) + amount

    def balance_of(self, account: str, asset_id: str) -> int:
        return self._balances.get((account, asset_id), 0)

    def available_liquidity(self, asset_id: str) -> int:
        return self._pools.get(asset_id, 0)

    def debit(self, account: str, asset_id: str, amount: int) -> None:
        balance = self.balance_of(account, asset_id)
        if amount > balance:
            raise CustodyError(
                f"{account} holds {balance} {asset_id}, cannot transfer {amount}"
            )
        self._remember(account, asset_id)
        self._balances[(account, asset_id)] = balance - amount
        self._pools[asset_id] = self._pools.get(asset_id, 0) + amount
        logger.debug("Custody debit %s %d %s", account, amount, asset_id)

    def credit(self, account: str, asset_id: str, amount: int) -> None:
        pool = self.available_liquidity(asset_id)
        if amount > pool:
            raise CustodyError(
                f"pool holds {pool} {asset_id}, cannot pay out {amount}"
            )
        self._remember(account, asset_id)
        self._pools[asset_id] = pool - amount
        key = (account, asset_id)
        self._balances[key] = self._balances.get(key, 0) + amount
        logger.debug("Custody credit %s %d %s", account, amount, asset_id)

    def _remember(self, account: str, asset_id: str) -> None:
        if self._journal is None:
            return
        key = (account, asset_id)
        self._journal["balances"].setdefault(key, self._balances.get(key))
        self._journal["pools"].setdefault(asset_id, self._pools.get(asset_id))

    def snapshot(self) -> Any:
        """Open a journal of the balances changed from now on."""
        self._journal = {"balances": {}, "pools": {}}
        return self._journal

    def restore(self, snapshot: Any) -> None:
        for store, saved in (
            (self._balances, snapshot["balances"]),
            (self._pools, snapshot["pools"]),
        ):
            for key, value in saved.items():
                if value is None:
                    store.pop(key, None)
                else:
                    store[key] = value
