"""AggregatePriceProvider: Median aggregation across several price providers.

Algorithm for one asset pair:
    1. Ask every provider for the pair, keep the valid answers
    2. Calculate the initial median of the valid prices
    3. Exclude outliers deviating > max_deviation_percent from that median
    4. Return the median of the remaining prices as a valid Price
    5. With fewer than min_sources valid prices, return an invalid Price

.. code-block:: python

    >>> aggregate = AggregatePriceProvider([binance, bitfinex])
    >>> aggregate.get_price(AssetPair("ubtc", "unusd"))
    Price(pair=AssetPair('ubtc', 'unusd'), price=100000.5, source_name='binance,bitfinex', valid=True)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from statistics import median as _median

from .AssetPair import AssetPair
from .PriceProvider import PriceProvider
from .types import ABSTAIN_PRICE, Price

logger = logging.getLogger(__name__)


class AggregatePriceProvider:
    """Combines several PriceProviders behind the single-provider contract.

    :ivar providers: Wrapped providers, one per exchange.
    :ivar min_sources: Minimum valid prices required for a valid answer.
    :ivar max_deviation_percent: Max allowed deviation from the median.
    """

    def __init__(
        self,
        providers: Sequence[PriceProvider],
        min_sources: int = 1,
        max_deviation_percent: float = 5.0,
    ) -> None:
        """Initialize the aggregate provider.

        :param providers: Providers to aggregate.
        :param min_sources: Minimum number of valid prices (default: 1).
        :param max_deviation_percent: Deviation from the initial median above
            which a price is dropped as an outlier (default: 5.0).
        :raises ValueError: If parameters are invalid.
        """
        if not providers:
            raise ValueError("At least one price provider is required")
        if min_sources < 1:
            raise ValueError("min_sources must be at least 1")
        if max_deviation_percent <= 0:
            raise ValueError("max_deviation_percent must be positive")

        self.providers = list(providers)
        self.min_sources = min_sources
        self.max_deviation_percent = max_deviation_percent
        self._closed = False

    def start(self) -> None:
        """Start every wrapped provider."""
        for provider in self.providers:
            provider.start()

    def get_price(self, pair: AssetPair) -> Price:
        """Return the aggregated price for ``pair``.

        :param pair: Chain asset pair to look up.
        :returns: Median Price across valid sources, or an invalid Price.
        """
        answers = [provider.get_price(pair) for provider in self.providers]
        valid = [(p.source_name, p.price) for p in answers if p.valid]

        if len(valid) < self.min_sources:
            unmapped = all(p.price == ABSTAIN_PRICE for p in answers)
            return Price(
                pair=pair,
                price=ABSTAIN_PRICE if unmapped else 0.0,
                source_name=",".join(p.source_name for p in answers),
                valid=False,
            )

        initial_median = _median(price for _, price in valid)

        filtered: list[tuple[str, float]] = []
        dropped: list[tuple[str, float]] = []
        for source, price in valid:
            if initial_median == 0:
                deviation = 0.0 if price == 0 else float("inf")
            else:
                deviation = abs(price - initial_median) / abs(initial_median) * 100
            if deviation <= self.max_deviation_percent:
                filtered.append((source, price))
            else:
                dropped.append((source, price))

        if dropped:
            logger.warning(f"{pair}: dropped outliers {dropped} (median {initial_median})")

        if len(filtered) < self.min_sources:
            return Price(
                pair=pair,
                price=0.0,
                source_name=",".join(source for source, _ in valid),
                valid=False,
            )

        return Price(
            pair=pair,
            price=_median(price for _, price in filtered),
            source_name=",".join(source for source, _ in filtered),
            valid=True,
        )

    async def close(self) -> None:
        """Close every wrapped provider exactly once.

        All providers are closed even if one of them fails; the first error
        is re-raised afterwards.
        """
        if self._closed:
            return
        self._closed = True

        first_error: Exception | None = None
        for provider in self.providers:
            try:
                await provider.close()
            except Exception as e:
                logger.error(f"[{provider.source_name}] Close failed: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
