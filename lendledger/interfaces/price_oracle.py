"""Price oracle protocol — price feed abstraction."""
from typing import Protocol

from ..models import PriceQuote


class PriceOracle(Protocol):
    """Abstract interface for reading the latest known price of an asset.

    Implementations return whatever they last observed; the ledger decides
    whether the quote is fresh enough to use.
    """

    def get_price(self, asset_id: str) -> PriceQuote: ...
