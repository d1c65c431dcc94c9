"""Bitfinex ticker source.

Endpoint: https://api-pub.bitfinex.com/v2/tickers?symbols=tBTCUSD,tETHUSD
Rate Limit: Medium (no key required)
Symbols: trading symbols prefixed with "t", e.g. tBTCUSD

Each ticker row is an array:
[SYMBOL, BID, BID_SIZE, ASK, ASK_SIZE, DAILY_CHANGE,
 DAILY_CHANGE_RELATIVE, LAST_PRICE, VOLUME, HIGH, LOW]
"""

import logging

from ..types import Symbol
from .base import PollingSource, SourceError, register_source

logger = logging.getLogger(__name__)

# Position of LAST_PRICE in a trading ticker row
LAST_PRICE_INDEX = 7


@register_source
class BitfinexSource(PollingSource):
    """Polls the Bitfinex public tickers endpoint."""

    name = "bitfinex"
    BASE_URL = "https://api-pub.bitfinex.com/v2"

    async def fetch_batch(self, symbols: list[Symbol]) -> dict[Symbol, float]:
        """Fetch last prices for ``symbols`` in a single API call.

        :param symbols: Bitfinex trading symbols.
        :returns: Dict mapping symbol to last price.
        :raises SourceError: On transport or parsing failure.
        """
        if not symbols:
            return {}

        url = f"{self.BASE_URL}/tickers"
        response = await self._get(url, params={"symbols": ",".join(symbols)})

        try:
            rows = response.json()
            prices: dict[Symbol, float] = {}
            for row in rows:
                # Funding tickers ("f" prefix) have a different layout
                if not row or not str(row[0]).startswith("t"):
                    continue
                prices[row[0]] = float(row[LAST_PRICE_INDEX])
        except (IndexError, ValueError, TypeError) as e:
            raise SourceError(f"Failed to parse tickers response: {e}") from e

        return prices
