"""Flash-loan receiver protocol — callback contract."""
from typing import Any, Protocol


class FlashLoanReceiver(Protocol):
    """Account that receives flash-loaned funds and must return them plus fee."""

    @property
    def account(self) -> str: ...

    def on_flash_loan(
        self, asset_id: str, amount: int, fee: int, payload: Any
    ) -> bool: ...
