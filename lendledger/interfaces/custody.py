"""Token custody protocol for moving value in and out of the pool."""
from typing import Any, Protocol


class TokenCustody(Protocol):
    """Abstract interface for moving real balances in and out of the pool.

    ``debit`` pulls funds from an account into the pool, ``credit`` pays
    funds out of the pool to an account. Both raise CustodyError when the
    transfer cannot happen. ``snapshot``/``restore`` let the ledger undo
    transfers made earlier in an operation that later aborts.
    """

    def debit(self, account: str, asset_id: str, amount: int) -> None: ...

    def credit(self, account: str, asset_id: str, amount: int) -> None: ...

    def available_liquidity(self, asset_id: str) -> int: ...

    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...
