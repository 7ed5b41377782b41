"""Pyth Network price feed — async refresh, synchronous cached reads."""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import PriceStale
from ..fixed_point import WAD
from ..models import PriceQuote

logger = logging.getLogger(__name__)


def pyth_to_wad(price_raw: int, expo: int) -> int:
    """Convert a Pyth ``price * 10^expo`` pair to a WAD integer (floor)."""
    shift = 18 + expo
    if shift >= 0:
        return price_raw * 10**shift
    return price_raw // 10**-shift


class PythPriceFeed:
    """Keep the latest Pyth Hermes quotes for the ledger to read.

    The ledger never waits on the network: ``refresh`` runs outside ledger
    operations and ``get_price`` only serves the cache. A failed refresh
    keeps the previous quotes, which then age out through the ledger's
    staleness check.
    """

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self._quotes: dict[str, PriceQuote] = {}

    def get_price(self, asset_id: str) -> PriceQuote:
        quote = self._quotes.get(asset_id)
        if quote is None:
            raise PriceStale(f"no Pyth quote cached for {asset_id}")
        return quote

    async def refresh(self, symbols: list[str] | None = None) -> dict[str, PriceQuote]:
        """Fetch current prices from Pyth Network and update the cache.

        Args:
            symbols: Optional list of assets to refresh. If None, refreshes
                     all configured feeds.

        Returns:
            The quotes updated by this call (empty on failure).
        """
        updated: dict[str, PriceQuote] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = list(set(feeds.values()))
        if not feed_ids:
            return updated

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return updated

                    data = await response.json()
                    parsed = data.get("parsed", [])

                    id_to_assets: dict[str, list[str]] = {}
                    for asset, feed_id in feeds.items():
                        id_to_assets.setdefault(feed_id, []).append(asset)

                    for item in parsed:
                        feed_id = item.get("id")
                        if feed_id not in id_to_assets:
                            continue
                        price_data = item.get("price", {})
                        price_raw = int(price_data.get("price", 0))
                        expo = int(price_data.get("expo", 0))
                        publish_time = int(price_data.get("publish_time", 0))

                        if price_raw <= 0:
                            logger.warning("Ignoring non-positive Pyth price for feed %s", feed_id)
                            continue

                        quote = PriceQuote(
                            price=pyth_to_wad(price_raw, expo), as_of=publish_time
                        )
                        for asset in id_to_assets[feed_id]:
                            updated[asset] = quote

        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return {}

        self._quotes.update(updated)
        logger.info("Fetched %d prices from Pyth Network", len(updated))
        for asset, quote in sorted(updated.items()):
            logger.debug("  %s: %d / %d @ %d", asset, quote.price, WAD, quote.as_of)
        return updated
