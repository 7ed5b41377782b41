"""In-memory price oracle with explicitly set quotes."""
from __future__ import annotations

import logging

from ..errors import PriceStale
from ..models import PriceQuote

logger = logging.getLogger(__name__)


class StaticPriceOracle:
    """Serve prices set by the caller (tests, replay scripts, fixed configs)."""

    def __init__(self, quotes: dict[str, PriceQuote] | None = None) -> None:
        self._quotes: dict[str, PriceQuote] = dict(quotes or {})

    def set_price(self, asset_id: str, price: int, as_of: int) -> None:
        if price < 0:
            raise ValueError(f"Negative price for {asset_id}: {price}")
        self._quotes[asset_id] = PriceQuote(price=price, as_of=as_of)
        logger.debug("Price set for %s: %d @ %d", asset_id, price, as_of)

    def get_price(self, asset_id: str) -> PriceQuote:
        quote = self._quotes.get(asset_id)
        if quote is None:
            raise PriceStale(f"no price published for {asset_id}")
        return quote
