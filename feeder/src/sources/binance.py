"""Binance ticker source.

Endpoint: https://api.binance.com/api/v3/ticker/price?symbols=[...]
Rate Limit: High (no key required for public endpoints)
Symbols: Binance spot symbols, e.g. BTCUSDT, ETHUSDT
"""

import json
import logging

from ..types import Symbol
from .base import PollingSource, SourceError, register_source

logger = logging.getLogger(__name__)


@register_source
class BinanceSource(PollingSource):
    """Polls the Binance spot ticker for all tracked symbols in one request."""

    name = "binance"
    BASE_URL = "https://api.binance.com/api/v3"

    async def fetch_batch(self, symbols: list[Symbol]) -> dict[Symbol, float]:
        """Fetch prices for multiple symbols in a single API call.

        :param symbols: List of Binance symbols.
        :returns: Dict mapping symbol to price.
        :raises SourceError: On transport or parsing failure.
        """
        if not symbols:
            return {}

        url = f"{self.BASE_URL}/ticker/price"
        response = await self._get(
            url, params={"symbols": json.dumps(symbols, separators=(",", ":"))}
        )

        try:
            data = response.json()
            prices: dict[Symbol, float] = {}
            for item in data:
                if "symbol" in item and "price" in item:
                    prices[item["symbol"]] = float(item["price"])
        except (KeyError, ValueError, TypeError) as e:
            raise SourceError(f"Failed to parse batch response: {e}") from e

        missing = set(symbols) - prices.keys()
        if missing:
            logger.debug(f"[binance] No price for {sorted(missing)}")
        return prices
